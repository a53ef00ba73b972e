# app/memory/store.py

import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.memory.index import LexicalIndex, build_index
from app.memory.types import Chunk, Page

logger = logging.getLogger(__name__)


def stable_doc_id(raw_bytes: bytes) -> str:
    """Content hash, so re-uploading the same file maps to the same document."""
    return hashlib.sha256(raw_bytes).hexdigest()[:16]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Document:

    id: str
    name: str
    created_at: str
    num_pages: int
    pages: List[Page]
    chunks: List[Chunk]
    scanned_likely: bool = False
    total_extracted_chars: int = 0
    non_empty_pages: int = 0
    summary: Optional[str] = None
    summary_sources: List[Dict] = field(default_factory=list)
    summary_updated_at: Optional[str] = None

    @property
    def has_usable_text(self) -> bool:
        return bool(self.chunks) and self.total_extracted_chars > 0

    def to_dict(self) -> Dict:

        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "num_pages": self.num_pages,
            "pages": [
                {"page_number": p.page_number, "text": p.text} for p in self.pages
            ],
            "chunks": [c.to_dict() for c in self.chunks],
            "scanned_likely": self.scanned_likely,
            "total_extracted_chars": self.total_extracted_chars,
            "non_empty_pages": self.non_empty_pages,
            "summary": self.summary,
            "summary_sources": list(self.summary_sources),
            "summary_updated_at": self.summary_updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Document":

        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            created_at=data.get("created_at") or "",
            num_pages=int(data.get("num_pages") or 0),
            pages=[
                Page(page_number=int(p["page_number"]), text=p.get("text") or "")
                for p in data.get("pages") or []
            ],
            chunks=[Chunk.from_dict(c) for c in data.get("chunks") or []],
            scanned_likely=bool(data.get("scanned_likely", False)),
            total_extracted_chars=int(data.get("total_extracted_chars") or 0),
            non_empty_pages=int(data.get("non_empty_pages") or 0),
            summary=data.get("summary"),
            summary_sources=list(data.get("summary_sources") or []),
            summary_updated_at=data.get("summary_updated_at"),
        )


@dataclass(frozen=True)
class IndexedDocument:
    """A document together with the index built from its chunks."""

    document: Document
    index: LexicalIndex

    @property
    def id(self) -> str:
        return self.document.id

    @property
    def chunks(self) -> List[Chunk]:
        return self.document.chunks


# ============================================================
# PERSISTENCE (JSON FILE PER DOCUMENT)
# ============================================================

class JsonDocumentRepository:
    """
    Durable document storage: one JSON file per document.

    Only pages, chunks and metadata are persisted; the lexical
    index is always recomputed on load.
    """

    def __init__(self, storage_dir: str):

        self._dir = os.path.join(storage_dir, "documents")

        os.makedirs(self._dir, exist_ok=True)

    def _path(self, doc_id: str) -> str:

        safe_id = "".join(ch for ch in doc_id if ch.isalnum() or ch in "-_")

        if not safe_id or safe_id != doc_id:
            raise ValueError(f"Invalid document id: {doc_id!r}")

        return os.path.join(self._dir, f"{safe_id}.json")

    def get(self, doc_id: str) -> Optional[Document]:

        path = self._path(doc_id)

        if not os.path.exists(path):
            return None

        with open(path, "r", encoding="utf-8") as f:
            return Document.from_dict(json.load(f))

    def upsert(self, document: Document) -> None:

        path = self._path(document.id)
        tmp_path = f"{path}.tmp"

        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document.to_dict(), f)

        os.replace(tmp_path, path)

    def list(self) -> List[Document]:

        documents = []

        for filename in sorted(os.listdir(self._dir)):

            if not filename.endswith(".json"):
                continue

            with open(os.path.join(self._dir, filename), "r", encoding="utf-8") as f:
                documents.append(Document.from_dict(json.load(f)))

        return documents


# ============================================================
# IN-PROCESS CACHE
# ============================================================

class DocumentStore:
    """
    Working-memory view of documents, each paired with its lexical index.

    An entry is published only after its index is fully built, so
    concurrent readers never see a half-built index. Concurrent writers
    for the same id are not serialized: last writer wins.
    """

    def __init__(self, repository):

        self._repository = repository
        self._cache: Dict[str, IndexedDocument] = {}
        self._lock = threading.Lock()

    def _publish(self, document: Document) -> IndexedDocument:

        entry = IndexedDocument(document=document, index=build_index(document.chunks))

        with self._lock:
            self._cache[document.id] = entry

        return entry

    def get(self, doc_id: str) -> Optional[IndexedDocument]:

        with self._lock:
            cached = self._cache.get(doc_id)

        if cached is not None:
            return cached

        try:
            document = self._repository.get(doc_id)
        except ValueError:
            # not a storable id, so it cannot name a stored document
            return None

        if document is None:
            return None

        logger.info(
            "Document loaded from storage",
            extra={"doc_id": doc_id, "chunks": len(document.chunks)},
        )

        return self._publish(document)

    def upsert(self, document: Document) -> IndexedDocument:

        self._repository.upsert(document)

        entry = self._publish(document)

        logger.info(
            "Document stored",
            extra={"doc_id": document.id, "chunks": len(document.chunks)},
        )

        return entry

    def save_summary(
        self,
        entry: IndexedDocument,
        summary: str,
        sources: List[Dict],
    ) -> IndexedDocument:
        """
        Attach a document-level summary.

        Writing it back to storage is best-effort; the in-process entry
        is updated either way.
        """

        document = replace(
            entry.document,
            summary=summary,
            summary_sources=list(sources),
            summary_updated_at=utc_now_iso(),
        )

        try:

            self._repository.upsert(document)

        except Exception as e:

            logger.warning(
                "Summary persistence failed",
                extra={"doc_id": document.id, "error": str(e)},
            )

        updated = IndexedDocument(document=document, index=entry.index)

        with self._lock:
            self._cache[document.id] = updated

        return updated

    def list(self) -> List[Document]:
        return self._repository.list()

    def get_stats(self) -> Dict:

        with self._lock:
            cached = list(self._cache.values())

        return {
            "cached_documents": len(cached),
            "cached_chunks": sum(len(entry.chunks) for entry in cached),
        }
