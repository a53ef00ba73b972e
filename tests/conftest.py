# tests/conftest.py
import json
import os
import re
import sys
import tempfile
import threading

import pytest

# Keep logs, metrics and documents out of the working tree.
# Must happen before anything under app/ is imported.
_TEST_ROOT = tempfile.mkdtemp(prefix="pdf-chat-tests-")
os.environ["LOG_FILE"] = ""
os.environ["METRICS_PATH"] = ""
os.environ["STORAGE_DIR"] = os.path.join(_TEST_ROOT, "storage")
os.environ.pop("POSTHOG_API_KEY", None)

# Add app directory to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient

from app.main import app
from app.api import routes
from app.memory.chunker import chunk_pages
from app.memory.store import (
    Document,
    DocumentStore,
    JsonDocumentRepository,
    utc_now_iso,
)
from app.memory.types import ExtractionResult, Page
from app.prompts.system_prompts import MAP_BATCH_SYSTEM_PROMPT
from app.workflow.summarizer import MAP_SUMMARY_CACHE


_CHUNK_ID = re.compile(r"chunkId=([^,]+),")


class FakeLLM:
    """
    Scripted stand-in for LLMClient.

    • every call is recorded in `calls`
    • `errors` are raised in order (None entries mean "succeed")
    • batched map calls answer with one summary per chunkId in the prompt,
      unless `batch_reply` overrides it
    • every other call pops `replies`, then falls back to `default_reply`
    """

    model = "fake-model"

    def __init__(self, replies=None, errors=None, batch_reply=None, default_reply="fake answer"):
        self.calls = []
        self.replies = list(replies or [])
        self.errors = list(errors or [])
        self.batch_reply = batch_reply
        self.default_reply = default_reply
        self._lock = threading.Lock()

    def generate(self, system_prompt, messages, max_tokens=800, temperature=0.2):

        with self._lock:

            self.calls.append(
                {
                    "system_prompt": system_prompt,
                    "messages": [dict(m) for m in messages],
                    "max_tokens": max_tokens,
                }
            )

            error = self.errors.pop(0) if self.errors else None

        if error is not None:
            raise error

        if system_prompt == MAP_BATCH_SYSTEM_PROMPT:

            chunk_ids = _CHUNK_ID.findall(messages[-1]["content"])

            if self.batch_reply is not None:
                return self.batch_reply(chunk_ids)

            return json.dumps(
                [{"chunkId": chunk_id, "summary": f"findings of {chunk_id}"} for chunk_id in chunk_ids]
            )

        with self._lock:
            if self.replies:
                return self.replies.pop(0)

        return self.default_reply

    def calls_with(self, system_prompt):
        return [call for call in self.calls if call["system_prompt"] == system_prompt]


def make_pages(*texts):
    """Pages numbered from 1."""
    return [Page(page_number=i, text=text) for i, text in enumerate(texts, 1)]


def make_document(doc_id, pages, target_chars=3500, overlap_chars=0, name=None):

    chunks = chunk_pages(pages, doc_id, target_chars=target_chars, overlap_chars=overlap_chars)

    return Document(
        id=doc_id,
        name=name or f"{doc_id}.pdf",
        created_at=utc_now_iso(),
        num_pages=len(pages),
        pages=list(pages),
        chunks=chunks,
        total_extracted_chars=sum(len(p.text) for p in pages),
        non_empty_pages=sum(1 for p in pages if p.text),
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def store(tmp_path):
    return DocumentStore(JsonDocumentRepository(str(tmp_path / "storage")))


@pytest.fixture
def add_document(store):
    """Store a document built from page texts (one chunk per page by default)."""

    def _add(doc_id, *texts, target_chars=1, overlap_chars=0):
        return store.upsert(
            make_document(doc_id, make_pages(*texts), target_chars=target_chars, overlap_chars=overlap_chars)
        )

    return _add


@pytest.fixture(autouse=True)
def reset_map_cache():
    """Map-summaries must not leak between tests."""

    MAP_SUMMARY_CACHE.clear()

    yield

    MAP_SUMMARY_CACHE.clear()


@pytest.fixture
def extracted_pages():
    """Pages the fake extractor returns for the next upload."""
    return make_pages(
        "Photosynthesis converts light energy into chemical energy in plants.",
        "Quarterly revenue increased 12 percent driven by strong exports.",
    )


@pytest.fixture
def client(store, fake_llm, extracted_pages):
    """
    FastAPI test client.

    Store, LLM client and PDF extractor are replaced through
    dependency overrides, so no network or real PDF is needed.
    """

    def fake_extractor(raw_bytes, max_pages=0):
        if raw_bytes.startswith(b"broken"):
            raise ValueError("cannot parse PDF")
        return ExtractionResult(pages=list(extracted_pages), total_page_count=len(extracted_pages))

    app.dependency_overrides[routes.get_document_store] = lambda: store
    app.dependency_overrides[routes.get_llm_client] = lambda: fake_llm
    app.dependency_overrides[routes.get_extractor] = lambda: fake_extractor

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


@pytest.fixture
def upload_document(client):
    """Upload bytes as a PDF and return the document id."""

    def _upload(content=b"%PDF-1.4 sample", filename="sample.pdf"):
        response = client.post(
            "/upload",
            files={"file": (filename, content, "application/pdf")}
        )
        assert response.status_code == 200, f"Upload failed: {response.json()}"
        return response.json()["document_id"]

    return _upload
