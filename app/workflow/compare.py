# app/workflow/compare.py

import json
import logging
import re
from typing import Dict, Optional, Tuple

from app.config import COMPARE_MAX_TOKENS
from app.memory.store import IndexedDocument
from app.prompts.prompt_builder import build_compare_messages
from app.prompts.system_prompts import COMPARE_SYSTEM_PROMPT
from app.workflow.citations import build_citations
from app.workflow.policy import (
    CompareMode,
    default_compare_prompt,
    retrieve_for_compare,
)

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"<JSON>\s*([\s\S]*?)\s*</JSON>", re.IGNORECASE)

ALLOWED_VERDICTS = {"same", "different", "onlyA", "onlyB", "unclear"}


def extract_structured_json(text: str) -> Tuple[str, Optional[object]]:
    """
    Split a comparison reply into (markdown, parsed JSON).

    The JSON lives in a <JSON>...</JSON> block. When the block is missing
    or does not parse, the whole reply is the markdown and JSON is None.
    """

    raw = (text or "").strip()

    if not raw:
        return "", None

    match = _JSON_BLOCK.search(raw)

    if not match:
        return raw, None

    markdown = raw.replace(match.group(0), "").strip()

    try:
        structured = json.loads(match.group(1).strip())
    except ValueError:
        logger.warning("Comparison JSON block did not parse")
        return raw, None

    return markdown or raw, structured


def _str_or(value, default):
    return value if isinstance(value, str) else default


def normalize_compare_structured(structured, mode: str, task: str) -> Dict:
    """
    Coerce model JSON into the comparison schema.

    Unknown verdicts become "unclear", topics without a name are dropped,
    anything that is not an object yields an empty topic list.
    """

    if not isinstance(structured, dict):
        return {"mode": mode, "task": task, "topics": [], "summary": None}

    raw_topics = structured.get("topics")

    if not isinstance(raw_topics, list):
        raw_topics = []

    topics = []

    for topic in raw_topics:

        if not isinstance(topic, dict):
            continue

        name = _str_or(topic.get("topic"), "")

        if not name:
            continue

        verdict = _str_or(topic.get("verdict"), "unclear")

        topics.append(
            {
                "topic": name,
                "doc_a": _str_or(topic.get("docA", topic.get("doc_a")), ""),
                "doc_b": _str_or(topic.get("docB", topic.get("doc_b")), ""),
                "verdict": verdict if verdict in ALLOWED_VERDICTS else "unclear",
                "notes": _str_or(topic.get("notes"), None),
            }
        )

    return {
        "mode": _str_or(structured.get("mode"), mode),
        "task": _str_or(structured.get("task"), task),
        "topics": topics,
        "summary": _str_or(structured.get("summary"), None),
    }


def compare_documents(
    entry_a: IndexedDocument,
    entry_b: IndexedDocument,
    llm_client,
    mode: CompareMode = CompareMode.CONTENT,
    prompt: str = "",
) -> Dict:
    """
    Compare two documents with independent per-document retrieval.

    Raises:
        Whatever the LLM client raises.
    """

    mode = CompareMode(mode)
    task = (prompt or "").strip() or default_compare_prompt(mode)

    results_a, results_b = retrieve_for_compare(entry_a, entry_b, mode, task)

    logger.info(
        "Comparison retrieval completed",
        extra={
            "doc_id_a": entry_a.id,
            "doc_id_b": entry_b.id,
            "mode": mode.value,
            "results_a": len(results_a),
            "results_b": len(results_b),
        },
    )

    raw = llm_client.generate(
        COMPARE_SYSTEM_PROMPT,
        build_compare_messages(mode.value, task, results_a, results_b),
        max_tokens=COMPARE_MAX_TOKENS,
    )

    answer, structured = extract_structured_json(raw)

    return {
        "answer": answer,
        "mode": mode.value,
        "task": task,
        "structured": normalize_compare_structured(structured, mode=mode.value, task=task),
        "sources_a": build_citations(results_a),
        "sources_b": build_citations(results_b),
    }
