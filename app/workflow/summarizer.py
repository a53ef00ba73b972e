# app/workflow/summarizer.py

"""
Map-reduce summarization for large PDFs.

Select → Map → Reduce, strictly in that order:

1. Select a bounded chunk set (top TF-IDF matches + even coverage sample)
2. Map: summarize each selected chunk, several excerpts per LLM call,
   at most SUMMARY_MAP_CONCURRENCY batches in flight. Any chunk missing
   from a batch reply is summarized on its own.
3. Reduce: one call turns the map-summaries into the final write-up.

Map-summaries are cached per (model, excerpt length, chunk id); the final
summary is cached on the document itself.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Sequence

from app.config import (
    SUMMARY_MAX_CHUNKS,
    SUMMARY_PER_CHUNK_CHARS,
    SUMMARY_PER_CHUNK_MAX_TOKENS,
    SUMMARY_REDUCE_MAX_TOKENS,
    SUMMARY_MAP_BATCH_SIZE,
    SUMMARY_MAP_CONCURRENCY,
    SUMMARY_MAP_CACHE,
    SUMMARY_MAP_CACHE_MAX,
    SUMMARY_MAP_CACHE_TTL_SECONDS,
    MAP_SUMMARY_MAX_CHARS,
)
from app.memory.cache import MapSummaryKey, TTLCache
from app.memory.store import DocumentStore, IndexedDocument
from app.memory.types import MapSummary, RetrievalResult
from app.prompts.prompt_builder import (
    build_map_batch_prompt,
    build_map_single_prompt,
    build_reduce_prompt,
)
from app.prompts.system_prompts import (
    MAP_SYSTEM_PROMPT,
    MAP_BATCH_SYSTEM_PROMPT,
    REDUCE_SYSTEM_PROMPT,
    NO_CHUNKS_TO_SUMMARIZE_MESSAGE,
    NO_READABLE_TEXT_MESSAGE,
)
from app.workflow.policy import select_summary_chunks

logger = logging.getLogger(__name__)

MAP_SUMMARY_CACHE = TTLCache(
    max_entries=SUMMARY_MAP_CACHE_MAX,
    ttl_seconds=SUMMARY_MAP_CACHE_TTL_SECONDS,
)

# Output budget for one batched map call
MIN_BATCH_MAX_TOKENS = 250
MAX_BATCH_MAX_TOKENS = 1400


def clip(text: str, max_chars: int) -> str:
    text = text or ""
    return text if len(text) <= max_chars else text[:max_chars]


def parse_json_array(text: str) -> Optional[list]:
    """
    Best-effort JSON array parse.

    Falls back to the outermost [...] span when the model wraps the
    array in prose or fences. Returns None if nothing parses.
    """

    raw = (text or "").strip()

    if not raw:
        return None

    candidates = [raw]

    start = raw.find("[")
    end = raw.rfind("]")

    if 0 <= start < end:
        candidates.append(raw[start:end + 1])

    for candidate in candidates:

        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue

        if isinstance(parsed, list):
            return parsed

    return None


def _model_name(llm_client) -> str:
    return str(getattr(llm_client, "model", "unknown"))


def summarize_document(
    entry: IndexedDocument,
    llm_client,
    question: Optional[str] = None,
    max_selected_chunks: int = SUMMARY_MAX_CHUNKS,
    per_chunk_chars: int = SUMMARY_PER_CHUNK_CHARS,
    per_chunk_max_tokens: int = SUMMARY_PER_CHUNK_MAX_TOKENS,
    reduce_max_tokens: int = SUMMARY_REDUCE_MAX_TOKENS,
    map_batch_size: int = SUMMARY_MAP_BATCH_SIZE,
    map_concurrency: int = SUMMARY_MAP_CONCURRENCY,
    map_cache: TTLCache = MAP_SUMMARY_CACHE,
    enable_map_cache: bool = SUMMARY_MAP_CACHE,
) -> Dict:
    """
    Run the full map-reduce pipeline for one document.

    Returns:
        {"summary": str, "sources": [{chunk_id, page_start, page_end}],
         "map_cache_hits": int}

    Raises:
        Whatever the LLM client raises, from any map or reduce call.
        Map results cached before the failure stay cached.
    """

    if not entry.chunks:
        return {"summary": NO_CHUNKS_TO_SUMMARIZE_MESSAGE, "sources": [], "map_cache_hits": 0}

    selected = select_summary_chunks(
        entry,
        question=question,
        max_selected_chunks=max_selected_chunks,
        per_chunk_chars=per_chunk_chars,
    )

    model = _model_name(llm_client)

    def cache_key(chunk_id: str) -> MapSummaryKey:
        return MapSummaryKey(model=model, per_chunk_chars=per_chunk_chars, chunk_id=chunk_id)

    def remember(chunk_id: str, summary: str) -> None:
        if enable_map_cache:
            map_cache.set(cache_key(chunk_id), summary)

    # ========================================================
    # MAP: CACHE LOOKUP
    # ========================================================

    got: Dict[str, str] = {}

    if enable_map_cache:

        for item in selected:

            cached = map_cache.get(cache_key(item.chunk.id))

            if isinstance(cached, str) and cached.strip():
                got[item.chunk.id] = cached

    cache_hits = len(got)

    missing = [item for item in selected if item.chunk.id not in got]

    # ========================================================
    # MAP: BATCHED CALLS
    # ========================================================

    batch_size = max(1, map_batch_size)

    batches = [missing[i:i + batch_size] for i in range(0, len(missing), batch_size)]

    def summarize_batch(batch: Sequence[RetrievalResult]) -> Dict[str, str]:

        raw = llm_client.generate(
            MAP_BATCH_SYSTEM_PROMPT,
            [{"role": "user", "content": build_map_batch_prompt(batch)}],
            max_tokens=max(
                MIN_BATCH_MAX_TOKENS,
                min(MAX_BATCH_MAX_TOKENS, per_chunk_max_tokens * len(batch)),
            ),
        )

        wanted = {item.chunk.id for item in batch}
        parsed: Dict[str, str] = {}

        for reply_item in parse_json_array(raw) or []:

            if not isinstance(reply_item, dict):
                continue

            chunk_id = str(reply_item.get("chunkId") or reply_item.get("chunk_id") or "")
            summary = str(reply_item.get("summary") or "").strip()

            if chunk_id in wanted and summary:
                parsed[chunk_id] = clip(summary, MAP_SUMMARY_MAX_CHARS)
                remember(chunk_id, parsed[chunk_id])

        if len(parsed) < len(wanted):
            logger.warning(
                "Batched map output incomplete",
                extra={"expected": len(wanted), "parsed": len(parsed)},
            )

        return parsed

    if batches:

        with ThreadPoolExecutor(max_workers=max(1, map_concurrency)) as executor:

            for parsed in executor.map(summarize_batch, batches):
                got.update(parsed)

    # ========================================================
    # MAP: PER-CHUNK FALLBACK
    # ========================================================

    fallbacks = 0

    for item in selected:

        if item.chunk.id in got:
            continue

        text = llm_client.generate(
            MAP_SYSTEM_PROMPT,
            [{"role": "user", "content": build_map_single_prompt(item)}],
            max_tokens=per_chunk_max_tokens,
        )

        got[item.chunk.id] = clip(text, MAP_SUMMARY_MAX_CHARS)
        remember(item.chunk.id, got[item.chunk.id])

        fallbacks += 1

    map_summaries = [
        MapSummary(
            chunk_id=item.chunk.id,
            page_start=item.chunk.page_start,
            page_end=item.chunk.page_end,
            summary=got.get(item.chunk.id, ""),
        )
        for item in selected
    ]

    # ========================================================
    # REDUCE
    # ========================================================

    final = llm_client.generate(
        REDUCE_SYSTEM_PROMPT,
        [{"role": "user", "content": build_reduce_prompt(question, map_summaries)}],
        max_tokens=reduce_max_tokens,
    )

    logger.info(
        "Summarization completed",
        extra={
            "doc_id": entry.id,
            "selected_chunks": len(selected),
            "map_cache_hits": cache_hits,
            "map_batches": len(batches),
            "map_fallbacks": fallbacks,
        },
    )

    return {
        "summary": (final or "").strip(),
        "sources": [
            {
                "chunk_id": s.chunk_id,
                "page_start": s.page_start,
                "page_end": s.page_end,
            }
            for s in map_summaries
        ],
        "map_cache_hits": cache_hits,
    }


def get_or_create_summary(
    store: DocumentStore,
    entry: IndexedDocument,
    llm_client,
    question: Optional[str] = None,
) -> Dict:
    """
    Document-level summary with caching.

    A stored summary short-circuits map and reduce entirely, whatever
    the question. Documents without text get the fixed message and no
    LLM call.
    """

    document = entry.document

    if not document.has_usable_text:
        return {"summary": NO_READABLE_TEXT_MESSAGE, "sources": [], "cached": False}

    if document.summary and document.summary.strip():

        logger.info("Serving cached summary", extra={"doc_id": document.id})

        return {
            "summary": document.summary,
            "sources": list(document.summary_sources),
            "cached": True,
        }

    result = summarize_document(entry, llm_client, question=question)

    store.save_summary(entry, result["summary"], result["sources"])

    return {
        "summary": result["summary"],
        "sources": result["sources"],
        "cached": False,
        "map_cache_hits": result["map_cache_hits"],
    }
