# app/workflow/document_qa.py
import logging
from typing import Dict, Optional, Sequence

from app.config import (
    CHAT_HISTORY_MESSAGES,
    MIN_SIMILARITY,
    RETRY_MAX_HISTORY_MESSAGES,
    RETRY_MAX_TOKENS,
)
from app.memory.retriever import SearchOptions
from app.memory.store import DocumentStore, IndexedDocument
from app.prompts.prompt_builder import build_chat_messages
from app.prompts.system_prompts import (
    CHAT_SYSTEM_PROMPT,
    NO_READABLE_TEXT_MESSAGE,
    NO_RELEVANT_SECTION_MESSAGE,
)
from app.workflow.citations import build_citations
from app.workflow.policy import (
    QuestionIntent,
    chat_search_options,
    classify_intent,
    is_request_too_large_error,
    retrieve_for_chat,
    select_confident,
    tightened_search_options,
)
from app.workflow.summarizer import get_or_create_summary

logger = logging.getLogger(__name__)


def _response(document_id: str, answer: str, kind: str, sources=None, retried: bool = False) -> Dict:
    return {
        "answer": answer,
        "document_id": document_id,
        "kind": kind,
        "sources": sources or [],
        "retried": retried,
    }


def answer_question(
    question: str,
    entry: IndexedDocument,
    llm_client,
    store: DocumentStore,
    messages: Sequence[Dict[str, str]] = (),
    options: Optional[SearchOptions] = None,
    min_similarity: float = MIN_SIMILARITY,
) -> Dict:
    """
    Answer a question about one document with retrieval-augmented generation.

    • documents without text get a fixed message and no LLM call
    • summary-style questions go to the map-reduce summarizer
    • an oversized-payload error is retried once with tighter budgets;
      any other LLM failure propagates
    """
    document_id = entry.id
    messages = list(messages or [])

    if not entry.document.has_usable_text:
        return _response(document_id, NO_READABLE_TEXT_MESSAGE, kind="empty")

    if classify_intent(question) == QuestionIntent.SUMMARY_REQUEST:
        summary = get_or_create_summary(store, entry, llm_client, question=question)
        return _response(
            document_id,
            summary["summary"],
            kind="summary_cached" if summary["cached"] else "summary",
            sources=summary["sources"],
        )

    options = options or chat_search_options()

    query, retrieved = retrieve_for_chat(entry, question, messages, options)

    candidates = select_confident(retrieved, min_similarity)

    if not candidates:
        return _response(document_id, NO_RELEVANT_SECTION_MESSAGE, kind="no_match")

    logger.info(
        "Chat retrieval completed",
        extra={
            "doc_id": document_id,
            "query_length": len(query),
            "retrieved": len(retrieved),
            "used": len(candidates),
            "top_score": round(candidates[0].score, 4),
        },
    )

    history = messages[-CHAT_HISTORY_MESSAGES:]

    try:
        answer = llm_client.generate(
            CHAT_SYSTEM_PROMPT,
            build_chat_messages(question, candidates, history),
        )
    except Exception as e:
        if not is_request_too_large_error(e):
            raise

        logger.warning(
            "Prompt too large, retrying with tighter retrieval",
            extra={"doc_id": document_id, "error": str(e)},
        )

        _, tighter = retrieve_for_chat(
            entry, question, messages, tightened_search_options(options)
        )
        retry_history = messages[-min(RETRY_MAX_HISTORY_MESSAGES, CHAT_HISTORY_MESSAGES):]

        answer = llm_client.generate(
            CHAT_SYSTEM_PROMPT,
            build_chat_messages(question, tighter, retry_history),
            max_tokens=RETRY_MAX_TOKENS,
        )

        return _response(
            document_id,
            answer,
            kind="answer",
            sources=build_citations(tighter),
            retried=True,
        )

    return _response(document_id, answer, kind="answer", sources=build_citations(candidates))
