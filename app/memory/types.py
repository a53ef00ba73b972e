# app/memory/types.py
"""Common data structures shared by the chunker, index and retriever."""

from dataclasses import dataclass, asdict
from typing import Dict, List


@dataclass(frozen=True)
class Page:
    """One extracted PDF page. Page numbers start at 1."""

    page_number: int
    text: str


@dataclass(frozen=True)
class ExtractionResult:
    pages: List[Page]
    total_page_count: int


@dataclass(frozen=True)
class Chunk:
    """
    A contiguous, page-range-tagged window of document text.

    `id` is `{doc_id}:{position}` so re-chunking the same pages
    reproduces the same ids.
    """

    id: str
    doc_id: str
    page_start: int
    page_end: int
    text: str

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Chunk":
        return cls(
            id=str(data["id"]),
            doc_id=str(data["doc_id"]),
            page_start=int(data["page_start"]),
            page_end=int(data["page_end"]),
            text=str(data.get("text") or ""),
        )


@dataclass(frozen=True)
class RetrievalResult:
    """A scored chunk whose text may have been truncated to fit a budget."""

    chunk: Chunk
    score: float


@dataclass(frozen=True)
class MapSummary:
    chunk_id: str
    page_start: int
    page_end: int
    summary: str
