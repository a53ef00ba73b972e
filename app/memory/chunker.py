# app/memory/chunker.py

import logging
from typing import Iterable, List, Tuple

from app.config import (
    CHUNK_TARGET_CHARS,
    CHUNK_OVERLAP_CHARS,
)
from app.memory.types import Chunk, Page

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"


def chunk_pages(
    pages: Iterable[Page],
    doc_id: str,
    target_chars: int = CHUNK_TARGET_CHARS,
    overlap_chars: int = CHUNK_OVERLAP_CHARS,
) -> List[Chunk]:
    """
    Page-aware overlapping chunker.

    Architecture contract:
    loader → chunker → index → retriever

    Pages are accumulated until the buffer reaches `target_chars`, then
    emitted as one chunk spanning the buffered page range. The next buffer
    is seeded with the trailing `overlap_chars` of the emitted text.

    Guarantees:
    • deterministic chunk ids (`{doc_id}:{n}`)
    • pages are never split, so one long page is one chunk
    • empty pages are skipped
    • no empty chunks
    """

    if target_chars <= 0:
        raise ValueError(f"Invalid chunk target size: {target_chars}")

    chunks: List[Chunk] = []

    # (page_number, text) pairs; `fresh` is False while the buffer
    # holds nothing but the overlap seed of the previous chunk
    buffer: List[Tuple[int, str]] = []
    buffer_len = 0
    fresh = False

    def flush() -> None:

        nonlocal buffer, buffer_len, fresh

        if not buffer or not fresh:
            return

        page_start = buffer[0][0]
        page_end = buffer[-1][0]

        text = PAGE_SEPARATOR.join(part for _, part in buffer).strip()

        if text:
            chunks.append(
                Chunk(
                    id=f"{doc_id}:{len(chunks)}",
                    doc_id=doc_id,
                    page_start=page_start,
                    page_end=page_end,
                    text=text,
                )
            )

        buffer = []
        buffer_len = 0
        fresh = False

        if overlap_chars <= 0 or not text:
            return

        tail = text[-overlap_chars:]

        if not tail.strip():
            return

        buffer = [(page_end, tail)]
        buffer_len = len(tail)

    page_count = 0

    for page in pages:

        if not page.text:
            continue

        page_count += 1

        buffer.append((page.page_number, page.text))
        buffer_len += len(page.text)
        fresh = True

        if buffer_len >= target_chars:
            flush()

    flush()

    logger.info(
        "Chunking completed",
        extra={
            "doc_id": doc_id,
            "pages_with_text": page_count,
            "target_chars": target_chars,
            "overlap_chars": overlap_chars,
            "chunks_created": len(chunks),
        },
    )

    return chunks
