# app/workflow/citations.py
from typing import Dict, List, Sequence

from app.config import SOURCE_EXCERPT_CHARS
from app.memory.types import RetrievalResult


def build_citations(results: Sequence[RetrievalResult]) -> List[Dict]:
    """Per-excerpt citation metadata returned alongside every answer."""
    return [
        {
            "chunk_id": r.chunk.id,
            "page_start": r.chunk.page_start,
            "page_end": r.chunk.page_end,
            "score": r.score,
            "excerpt": r.chunk.text[:SOURCE_EXCERPT_CHARS],
        }
        for r in results
    ]
