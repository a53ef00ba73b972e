# tests/test_store.py
import json
import os

import pytest

from app.memory.store import (
    Document,
    DocumentStore,
    JsonDocumentRepository,
    stable_doc_id,
)

from conftest import make_document, make_pages


@pytest.fixture
def repository(tmp_path):
    return JsonDocumentRepository(str(tmp_path / "storage"))


class TestStableDocId:

    def test_same_bytes_same_id(self):
        assert stable_doc_id(b"pdf bytes") == stable_doc_id(b"pdf bytes")
        assert len(stable_doc_id(b"pdf bytes")) == 16

    def test_different_bytes_different_id(self):
        assert stable_doc_id(b"one") != stable_doc_id(b"two")


class TestJsonDocumentRepository:

    def test_round_trip(self, repository):
        document = make_document("doc1", make_pages("first page", "second page"))

        repository.upsert(document)

        assert repository.get("doc1") == document

    def test_missing_document(self, repository):
        assert repository.get("nope") is None

    def test_list(self, repository):
        repository.upsert(make_document("b", make_pages("bee")))
        repository.upsert(make_document("a", make_pages("ay")))

        assert [d.id for d in repository.list()] == ["a", "b"]

    def test_rejects_unsafe_ids(self, repository):
        with pytest.raises(ValueError):
            repository.get("../..")

    @pytest.mark.parametrize("doc_id", ["ab!", "a b", "doc1.json"])
    def test_rejects_ids_that_would_be_rewritten(self, repository, doc_id):
        repository.upsert(make_document("ab", make_pages("stored page")))

        with pytest.raises(ValueError):
            repository.get(doc_id)

    def test_no_temp_files_left_behind(self, repository, tmp_path):
        repository.upsert(make_document("doc1", make_pages("text")))

        files = os.listdir(tmp_path / "storage" / "documents")

        assert files == ["doc1.json"]

    def test_index_is_not_persisted(self, repository, tmp_path):
        repository.upsert(make_document("doc1", make_pages("text")))

        with open(tmp_path / "storage" / "documents" / "doc1.json") as f:
            data = json.load(f)

        assert "index" not in data
        assert "vectors" not in data

    def test_old_records_without_summary_fields_load(self, repository, tmp_path):
        record = {
            "id": "legacy",
            "name": "legacy.pdf",
            "num_pages": 1,
            "pages": [{"page_number": 1, "text": "hello"}],
            "chunks": [
                {"id": "legacy:0", "doc_id": "legacy", "page_start": 1, "page_end": 1, "text": "hello"}
            ],
        }
        with open(tmp_path / "storage" / "documents" / "legacy.json", "w") as f:
            json.dump(record, f)

        document = repository.get("legacy")

        assert document.summary is None
        assert document.summary_sources == []
        assert len(document.chunks) == 1


class TestDocumentStore:

    def test_upsert_publishes_indexed_entry(self, store):
        entry = store.upsert(make_document("doc1", make_pages("alpha beta", "gamma"), target_chars=1))

        assert entry.index.matches(entry.chunks)
        assert store.get("doc1") is entry

    def test_cold_load_rebuilds_index(self, store, tmp_path):
        store.upsert(make_document("doc1", make_pages("alpha beta", "gamma"), target_chars=1))

        fresh = DocumentStore(JsonDocumentRepository(str(tmp_path / "storage")))
        entry = fresh.get("doc1")

        assert entry is not None
        assert entry.index.size == 2
        assert entry.index.matches(entry.chunks)

    def test_unknown_document(self, store):
        assert store.get("missing") is None

    def test_unstorable_id_is_unknown(self, store):
        store.upsert(make_document("ab", make_pages("stored page")))

        assert store.get("ab!") is None

    def test_reupload_replaces_document(self, store):
        store.upsert(make_document("doc1", make_pages("old text")))
        store.upsert(make_document("doc1", make_pages("new text")))

        assert store.get("doc1").chunks[0].text == "new text"
        assert len(store.list()) == 1

    def test_save_summary(self, store):
        entry = store.upsert(make_document("doc1", make_pages("text")))
        sources = [{"chunk_id": "doc1:0", "page_start": 1, "page_end": 1}]

        updated = store.save_summary(entry, "the summary", sources)

        assert updated.document.summary == "the summary"
        assert updated.document.summary_updated_at
        assert updated.index is entry.index
        assert store.get("doc1").document.summary_sources == sources

    def test_save_summary_survives_storage_failure(self, store, monkeypatch):
        entry = store.upsert(make_document("doc1", make_pages("text")))

        def broken_upsert(document):
            raise OSError("disk full")

        monkeypatch.setattr(store._repository, "upsert", broken_upsert)

        updated = store.save_summary(entry, "kept in memory", [])

        assert updated.document.summary == "kept in memory"
        assert store.get("doc1").document.summary == "kept in memory"

    def test_stats(self, store):
        store.upsert(make_document("doc1", make_pages("a1", "b2"), target_chars=1))

        assert store.get_stats() == {"cached_documents": 1, "cached_chunks": 2}


class TestDocument:

    def test_usable_text(self):
        assert make_document("d", make_pages("words")).has_usable_text
        assert not make_document("d", make_pages("", "")).has_usable_text

    def test_from_dict_round_trip(self):
        document = make_document("d", make_pages("words", "more"))

        assert Document.from_dict(document.to_dict()) == document
