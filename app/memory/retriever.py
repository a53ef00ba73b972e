# app/memory/retriever.py

import logging
from dataclasses import dataclass, replace
from typing import List, Sequence

import numpy as np

from app.config import (
    TOP_K,
    MAX_CHUNK_CHARS,
    MAX_TOTAL_CONTEXT_CHARS,
)
from app.memory.index import LexicalIndex
from app.memory.types import Chunk, RetrievalResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchOptions:
    """
    Retrieval parameters.

    min_score is advisory: if nothing clears it, the single best chunk
    is still returned.
    """

    top_k: int = TOP_K
    min_score: float = float("-inf")
    max_chunk_chars: int = MAX_CHUNK_CHARS
    max_total_chars: int = MAX_TOTAL_CONTEXT_CHARS


def search(
    index: LexicalIndex,
    chunks: Sequence[Chunk],
    query: str,
    options: SearchOptions = None,
) -> List[RetrievalResult]:
    """
    Rank chunks against a query and return budget-bounded excerpts.

    Args:
        index: Index built from exactly `chunks`
        chunks: The document's chunk list
        query: Free-text query
        options: SearchOptions (defaults used when omitted)

    Returns:
        Results in descending score order. Each excerpt is at most
        max_chunk_chars long and the excerpts together never exceed
        max_total_chars. Non-empty whenever `chunks` is non-empty.
    """

    options = options or SearchOptions()

    if not chunks:
        return []

    if not index.matches(chunks):
        raise ValueError("Index was built for a different chunk list; rebuild it")

    query_vector = index.vectorize(query)

    scores = index.vectors @ query_vector

    # stable sort keeps chunk order for ties
    order = np.argsort(-scores, kind="stable")

    top_k = max(1, options.top_k)
    remaining = max(0, options.max_total_chars)

    results: List[RetrievalResult] = []

    for position in order:

        if len(results) >= top_k:
            break

        score = float(scores[position])

        if score < options.min_score:
            continue

        if remaining <= 0:
            break

        allowance = min(options.max_chunk_chars, remaining)

        chunk = chunks[position]
        excerpt = chunk.text[: max(0, allowance)]

        if not excerpt:
            continue

        results.append(RetrievalResult(chunk=replace(chunk, text=excerpt), score=score))

        remaining -= len(excerpt)

    if not results:

        best = int(order[0])
        allowance = max(0, min(options.max_chunk_chars, options.max_total_chars))

        results.append(
            RetrievalResult(
                chunk=replace(chunks[best], text=chunks[best].text[:allowance]),
                score=float(scores[best]),
            )
        )

        logger.info(
            "Retrieval fell back to best chunk",
            extra={
                "chunk_id": chunks[best].id,
                "score": round(float(scores[best]), 4),
                "min_score": options.min_score,
            },
        )

    logger.debug(
        "Retrieval completed",
        extra={
            "results": len(results),
            "top_score": round(results[0].score, 4),
            "top_k": top_k,
        },
    )

    return results
