# app/memory/loader.py

"""
PDF extraction.

Architecture contract preserved:
loader → chunker → index → retriever

Produces page-numbered, whitespace-normalized text. Scanned (image-only)
PDFs come back as pages with empty text; callers detect that with
`is_probably_scanned` rather than treating it as an error.
"""

import io
import logging
import re
from typing import List, Sequence

from pypdf import PdfReader

from app.config import NON_EMPTY_PAGE_MIN_CHARS
from app.memory.types import ExtractionResult, Page

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Below this many total characters, the non-empty page ratio decides
SCANNED_TEXT_THRESHOLD = 2000
SCANNED_NON_EMPTY_RATIO = 0.2


def normalize_text(text: str) -> str:

    if not text:
        return ""

    return _WHITESPACE.sub(" ", text.replace("\x00", " ")).strip()


# ============================================================
# PDF LOADER
# ============================================================

def extract_pages(raw_bytes: bytes, max_pages: int = 0) -> ExtractionResult:
    """
    Extract text per page.

    Args:
        raw_bytes: PDF file content
        max_pages: Extract at most this many pages (0 = all)

    Raises:
        pypdf errors for unreadable files; the caller decides how to report.
    """

    reader = PdfReader(io.BytesIO(raw_bytes))

    total = len(reader.pages)

    limit = total if max_pages <= 0 else min(total, max_pages)

    pages: List[Page] = []

    for number in range(1, limit + 1):

        text = reader.pages[number - 1].extract_text() or ""

        pages.append(Page(page_number=number, text=normalize_text(text)))

    logger.info(
        "PDF extraction completed",
        extra={
            "total_pages": total,
            "extracted_pages": len(pages),
            "extracted_chars": sum(len(p.text) for p in pages),
        },
    )

    return ExtractionResult(pages=pages, total_page_count=total)


# ============================================================
# TEXT QUALITY
# ============================================================

def count_non_empty_pages(pages: Sequence[Page]) -> int:
    return sum(1 for page in pages if len(page.text or "") >= NON_EMPTY_PAGE_MIN_CHARS)


def is_probably_scanned(pages: Sequence[Page]) -> bool:

    joined = " ".join(page.text for page in pages).strip()

    if not joined:
        return True

    if len(joined) > SCANNED_TEXT_THRESHOLD:
        return False

    return count_non_empty_pages(pages) / max(1, len(pages)) < SCANNED_NON_EMPTY_RATIO
