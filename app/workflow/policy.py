# app/workflow/policy.py

"""
Retrieval policy: how each request mode turns user input into a
retrieval query and a set of SearchOptions.

Modes:
• plain / follow-up chat
• two-document comparison (six modes)
• summarization chunk selection
"""

import logging
import re
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from app.config import (
    TOP_K,
    MIN_SIMILARITY,
    MAX_CHUNK_CHARS,
    MAX_TOTAL_CONTEXT_CHARS,
    PREV_USER_MAX_CHARS,
    PREV_ASSISTANT_MAX_CHARS,
    RETRY_TOP_K_CAP,
    RETRY_SCALE,
    RETRY_MIN_CHUNK_CHARS,
    RETRY_MIN_TOTAL_CHARS,
    COMPARE_TOP_K_BONUS,
    COMPARE_TOP_K_MAX,
    COMPARE_CONTEXT_SPLIT,
    SUMMARY_MAX_CHUNKS,
    SUMMARY_TOP_MATCHES,
    SUMMARY_PER_CHUNK_CHARS,
    SUMMARY_SELECTION_MAX_TOTAL_CHARS,
    DEFAULT_SUMMARY_QUERY,
)
from app.memory.retriever import SearchOptions, search
from app.memory.store import IndexedDocument
from app.memory.types import Chunk, RetrievalResult

logger = logging.getLogger(__name__)


# ============================================================
# INTENT CLASSIFICATION
# ============================================================

class QuestionIntent(str, Enum):
    PLAIN = "plain"
    FOLLOW_UP = "follow_up"
    SUMMARY_REQUEST = "summary_request"


FOLLOW_UP_PRONOUN_PATTERN = re.compile(
    r"\b(second|third|first|former|latter|that|this|those|them|it|one)\b"
)

FOLLOW_UP_PREFIXES = ("elaborate", "expand", "can you elaborate", "tell me more")

FOLLOW_UP_PHRASES = ("as you said", "compare to previous", "previous research")

# "summarize" only counts at the start of the question
SUMMARY_PREFIXES = ("summarize",)

SUMMARY_PHRASES = (
    "key findings",
    "key takeaways",
    "main findings",
    "main results",
    "summarise",
    "summary",
    "tl;dr",
)


def is_follow_up_question(question: str) -> bool:

    text = (question or "").lower().strip()

    if not text:
        return False

    return (
        FOLLOW_UP_PRONOUN_PATTERN.search(text) is not None
        or text.startswith(FOLLOW_UP_PREFIXES)
        or any(phrase in text for phrase in FOLLOW_UP_PHRASES)
    )


def is_summary_question(question: str) -> bool:

    text = (question or "").lower().strip()

    return text.startswith(SUMMARY_PREFIXES) or any(
        phrase in text for phrase in SUMMARY_PHRASES
    )


def classify_intent(question: str) -> QuestionIntent:
    """Summary requests win over follow-up wording ("summarize that")."""

    if is_summary_question(question):
        return QuestionIntent.SUMMARY_REQUEST

    if is_follow_up_question(question):
        return QuestionIntent.FOLLOW_UP

    return QuestionIntent.PLAIN


# ============================================================
# CHAT
# ============================================================

def clamp_chars(text: str, max_chars: int) -> str:
    text = text or ""
    return text if len(text) <= max_chars else text[:max_chars]


def last_message_of(role: str, messages: Sequence[Dict[str, str]]) -> str:

    for message in reversed(messages or []):
        if message.get("role") == role:
            return message.get("content") or ""

    return ""


def build_retrieval_query(question: str, messages: Sequence[Dict[str, str]]) -> str:
    """
    Widen follow-up questions with the previous exchange.

    "explain the second point" has no content terms of its own, so the
    previous user question and assistant answer are appended (clamped)
    to give TF-IDF something to match.
    """

    query = (question or "").strip()

    if not messages or classify_intent(query) != QuestionIntent.FOLLOW_UP:
        return query

    previous_user = clamp_chars(last_message_of("user", messages), PREV_USER_MAX_CHARS)
    previous_answer = clamp_chars(
        last_message_of("assistant", messages), PREV_ASSISTANT_MAX_CHARS
    )

    parts = [
        query,
        "",
        "Context from conversation (for retrieval only):",
        f"Previous user question: {previous_user}" if previous_user else "",
        f"Previous assistant answer: {previous_answer}" if previous_answer else "",
    ]

    return "\n".join(part for part in parts if part)


def chat_search_options() -> SearchOptions:
    # the floor is applied afterwards by select_confident
    return SearchOptions(
        top_k=TOP_K,
        max_chunk_chars=MAX_CHUNK_CHARS,
        max_total_chars=MAX_TOTAL_CONTEXT_CHARS,
    )


def tightened_search_options(options: SearchOptions) -> SearchOptions:
    """Smaller budgets for the single retry after an oversized-payload error."""

    return replace(
        options,
        top_k=max(1, min(RETRY_TOP_K_CAP, options.top_k)),
        max_chunk_chars=max(RETRY_MIN_CHUNK_CHARS, int(options.max_chunk_chars * RETRY_SCALE)),
        max_total_chars=max(RETRY_MIN_TOTAL_CHARS, int(options.max_total_chars * RETRY_SCALE)),
    )


def select_confident(
    results: Sequence[RetrievalResult],
    min_similarity: float = MIN_SIMILARITY,
) -> List[RetrievalResult]:
    """
    Apply the advisory floor.

    Keeps results at or above the floor when there are any; otherwise
    keeps everything and lets the model refuse on weak sources.
    """

    strong = [r for r in results if r.score >= min_similarity]

    return strong if strong else list(results)


def retrieve_for_chat(
    entry: IndexedDocument,
    question: str,
    messages: Sequence[Dict[str, str]],
    options: Optional[SearchOptions] = None,
) -> Tuple[str, List[RetrievalResult]]:

    query = build_retrieval_query(question, messages)

    results = search(entry.index, entry.chunks, query, options or chat_search_options())

    return query, results


# ============================================================
# COMPARISON
# ============================================================

class CompareMode(str, Enum):
    CONTENT = "content"
    METHODOLOGY = "methodology"
    CONCLUSIONS = "conclusions"
    STRUCTURE = "structure"
    LITERAL = "literal"
    CUSTOM = "custom"


DEFAULT_COMPARE_PROMPTS = {
    CompareMode.CONTENT: "Compare the documents: key similarities and key differences.",
    CompareMode.METHODOLOGY: (
        "Compare the methodology: data, experimental setup, evaluation, and limitations."
    ),
    CompareMode.CONCLUSIONS: "Compare the main conclusions, results, and key takeaways.",
    CompareMode.STRUCTURE: (
        "Compare the document structure: sections, organization, and coverage."
    ),
    CompareMode.LITERAL: (
        "Compare literal wording differences: definitions, requirements, numbers, and constraints."
    ),
    CompareMode.CUSTOM: "Compare the documents: key similarities and key differences.",
}

COMPARE_MODE_KEYWORDS = {
    CompareMode.METHODOLOGY: (
        "Keywords: methodology methods data dataset sampling experiment evaluation "
        "metrics baselines ablation limitations"
    ),
    CompareMode.CONCLUSIONS: (
        "Keywords: conclusion conclusions results findings takeaways contributions "
        "limitations future work discussion"
    ),
    CompareMode.STRUCTURE: (
        "Keywords: table of contents outline structure sections headings chapters "
        "overview introduction conclusion appendix"
    ),
    CompareMode.LITERAL: (
        "Keywords: definition shall must should requirements constraints thresholds "
        "numbers units version compatibility"
    ),
}

BROAD_COVERAGE_MODES = {CompareMode.LITERAL, CompareMode.STRUCTURE}


def default_compare_prompt(mode: CompareMode) -> str:
    return DEFAULT_COMPARE_PROMPTS.get(
        CompareMode(mode), DEFAULT_COMPARE_PROMPTS[CompareMode.CONTENT]
    )


def build_compare_retrieval_query(mode: CompareMode, task: str) -> str:
    """Content and custom modes search with the task text alone."""

    base = (task or "").strip()
    keywords = COMPARE_MODE_KEYWORDS.get(CompareMode(mode))

    return f"{base}\n\n{keywords}" if keywords else base


def top_k_for_mode(mode: CompareMode, base_top_k: int = TOP_K) -> int:

    if CompareMode(mode) in BROAD_COVERAGE_MODES:
        return min(COMPARE_TOP_K_MAX, base_top_k + COMPARE_TOP_K_BONUS)

    return base_top_k


def compare_search_options(mode: CompareMode) -> SearchOptions:
    """Each document gets half of the global context budget."""

    return SearchOptions(
        top_k=top_k_for_mode(mode),
        min_score=MIN_SIMILARITY,
        max_chunk_chars=MAX_CHUNK_CHARS,
        max_total_chars=MAX_TOTAL_CONTEXT_CHARS // COMPARE_CONTEXT_SPLIT,
    )


def retrieve_for_compare(
    entry_a: IndexedDocument,
    entry_b: IndexedDocument,
    mode: CompareMode,
    task: str,
) -> Tuple[List[RetrievalResult], List[RetrievalResult]]:
    """Two independent searches, one per document index."""

    query = build_compare_retrieval_query(mode, task)
    options = compare_search_options(mode)

    results_a = search(entry_a.index, entry_a.chunks, query, options)
    results_b = search(entry_b.index, entry_b.chunks, query, options)

    return results_a, results_b


# ============================================================
# SUMMARIZATION SELECTION
# ============================================================

def sample_evenly(chunks: Sequence[Chunk], max_items: int) -> List[Chunk]:
    """Evenly strided sample across the whole chunk sequence."""

    if not chunks or max_items <= 0:
        return []

    if len(chunks) <= max_items:
        return list(chunks)

    step = len(chunks) / max_items

    return [chunks[int(i * step)] for i in range(max_items)]


def unique_by_chunk_id(results: Sequence[RetrievalResult]) -> List[RetrievalResult]:
    """Drop repeated chunk ids, keeping the first occurrence."""

    seen = set()
    unique = []

    for result in results:

        if result.chunk.id in seen:
            continue

        seen.add(result.chunk.id)
        unique.append(result)

    return unique


def select_summary_chunks(
    entry: IndexedDocument,
    question: Optional[str] = None,
    max_selected_chunks: int = SUMMARY_MAX_CHUNKS,
    per_chunk_chars: int = SUMMARY_PER_CHUNK_CHARS,
) -> List[RetrievalResult]:
    """
    Pick the chunks to summarize.

    Top lexical matches for a findings-oriented query, topped up with an
    even sample so sections the query misses are still covered.
    """

    if not entry.chunks or max_selected_chunks <= 0:
        return []

    query = (question or "").strip() or DEFAULT_SUMMARY_QUERY

    top = search(
        entry.index,
        entry.chunks,
        query,
        SearchOptions(
            top_k=min(SUMMARY_TOP_MATCHES, max_selected_chunks),
            max_chunk_chars=per_chunk_chars,
            max_total_chars=SUMMARY_SELECTION_MAX_TOTAL_CHARS,
        ),
    )

    coverage = sample_evenly(entry.chunks, max(0, max_selected_chunks - len(top)))

    sampled = [
        RetrievalResult(chunk=replace(c, text=c.text[:per_chunk_chars]), score=0.0)
        for c in coverage
    ]

    selected = unique_by_chunk_id([*top, *sampled])[:max_selected_chunks]

    logger.info(
        "Summary chunks selected",
        extra={
            "doc_id": entry.id,
            "top_matches": len(top),
            "coverage_sampled": len(sampled),
            "selected": len(selected),
        },
    )

    return selected


# ============================================================
# OVERSIZED PAYLOAD DETECTION
# ============================================================

REQUEST_TOO_LARGE_MARKERS = ("request too large", "413", "tpm", "tokens per minute")


def is_request_too_large_error(error: BaseException) -> bool:

    if getattr(error, "status_code", None) == 413:
        return True

    message = str(error).lower()

    return any(marker in message for marker in REQUEST_TOO_LARGE_MARKERS)
