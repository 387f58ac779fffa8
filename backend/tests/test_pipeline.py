"""Tests for the ingestion pipeline."""

from __future__ import annotations

import sqlite3
import threading
from typing import Sequence

import pytest

from conftest import TEST_DIM, BrokenProvider, make_client
from ragline.core.errors import IndexWriteError, NotFoundError, StatusTransitionError
from ragline.ingest.pipeline import CANCELLED_REASON, INTERRUPTED_REASON
from ragline.models.entities import STATUS_TRANSITIONS, DocumentStatus
from ragline.providers import HashedEmbeddingProvider
from ragline.retrieval.vector_index import VectorIndex


class GatedProvider:
    """Blocks inside ``embed`` until released."""

    name = "gated"

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self._inner = HashedEmbeddingProvider(dim=TEST_DIM)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.entered.set()
        self.release.wait(timeout=10)
        return self._inner.embed(texts)


class FailingIndex(VectorIndex):
    def insert(self, entries) -> None:
        raise IndexWriteError("disk full")


class StatusLog:
    """Wraps ``DocumentStore.transition`` to record every status written."""

    def __init__(self, store) -> None:
        self.statuses: dict[str, list[DocumentStatus]] = {}
        self._original = store.transition
        self._lock = threading.Lock()
        store.transition = self

    def __call__(self, document_id, status, **kwargs):
        document = self._original(document_id, status, **kwargs)
        with self._lock:
            self.statuses.setdefault(document_id, []).append(status)
        return document


def test_upload_processes_to_ready(pipeline, store, vector_index, sample_text: str) -> None:
    document = pipeline.upload("notes.txt", sample_text, {"team": "search"})
    assert document.status is DocumentStatus.PROCESSING

    done = pipeline.wait(document.id, timeout=10)

    assert done.status is DocumentStatus.READY
    assert done.failure_reason is None
    assert done.metadata == {"team": "search"}
    chunks = store.chunks_for(document.id)
    assert done.chunk_count == len(chunks) > 1
    assert {entry.chunk_id for entry in vector_index.entries_for(document.id)} == {c.id for c in chunks}
    for chunk in chunks:
        assert chunk.text == sample_text[chunk.start_char : chunk.end_char]


def test_status_only_moves_forward(pipeline, store, sample_text: str) -> None:
    log = StatusLog(store)
    document = pipeline.upload("a.txt", sample_text)
    pipeline.wait(document.id, timeout=10)

    assert log.statuses[document.id] == [DocumentStatus.PROCESSING, DocumentStatus.READY]
    with pytest.raises(StatusTransitionError):
        store.transition(document.id, DocumentStatus.PROCESSING)


def test_transition_table_has_no_backward_moves() -> None:
    order = [DocumentStatus.PENDING, DocumentStatus.PROCESSING, DocumentStatus.READY]
    for status, targets in STATUS_TRANSITIONS.items():
        for target in targets:
            if target is DocumentStatus.FAILED:
                continue
            assert order.index(target) > order.index(status)
    assert not STATUS_TRANSITIONS[DocumentStatus.READY]
    assert not STATUS_TRANSITIONS[DocumentStatus.FAILED]


def test_embedding_failure_rolls_back(make_pipeline, store, vector_index, sample_text: str) -> None:
    pipeline = make_pipeline(client=make_client(BrokenProvider()))
    document = pipeline.upload("broken.txt", sample_text)

    done = pipeline.wait(document.id, timeout=10)

    assert done.status is DocumentStatus.FAILED
    assert "EmbeddingProviderError" in done.failure_reason
    assert store.chunks_for(document.id) == []
    assert not vector_index.contains_document(document.id)


def test_rollback_fault_still_settles_as_failed(
    make_pipeline, store, monkeypatch: pytest.MonkeyPatch, sample_text: str
) -> None:
    def broken_delete(document_id: str) -> None:
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store, "delete_chunks", broken_delete)
    pipeline = make_pipeline(client=make_client(BrokenProvider()))
    document = pipeline.upload("broken.txt", sample_text)

    done = pipeline.wait(document.id, timeout=10)

    assert done.status is DocumentStatus.FAILED
    assert "EmbeddingProviderError" in done.failure_reason


def test_index_failure_rolls_back(make_pipeline, store, sample_text: str) -> None:
    index = FailingIndex(dim=TEST_DIM)
    pipeline = make_pipeline(index=index)
    document = pipeline.upload("index.txt", sample_text)

    done = pipeline.wait(document.id, timeout=10)

    assert done.status is DocumentStatus.FAILED
    assert "IndexWriteError" in done.failure_reason
    assert store.chunks_for(document.id) == []
    assert index.size == 0


def test_failure_is_isolated_to_one_document(make_pipeline, store, sample_text: str) -> None:
    good = make_pipeline()
    bad = make_pipeline(client=make_client(BrokenProvider()))
    ok_doc = good.upload("good.txt", sample_text)
    bad_doc = bad.upload("bad.txt", sample_text)

    assert good.wait(ok_doc.id, timeout=10).status is DocumentStatus.READY
    assert bad.wait(bad_doc.id, timeout=10).status is DocumentStatus.FAILED


def test_concurrent_uploads_do_not_mix(pipeline, store, vector_index) -> None:
    contents = {
        f"doc-{n}.txt": " ".join(f"Topic{n} sentence {i} about subject{n}." for i in range(15))
        for n in range(8)
    }
    ids: dict[str, str] = {}
    threads = []

    def upload(filename: str, content: str) -> None:
        ids[filename] = pipeline.upload(filename, content).id

    for filename, content in contents.items():
        threads.append(threading.Thread(target=upload, args=(filename, content)))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    for filename, document_id in ids.items():
        document = pipeline.wait(document_id, timeout=10)
        assert document.status is DocumentStatus.READY
        chunks = store.chunks_for(document_id)
        assert chunks
        for chunk in chunks:
            assert chunk.document_id == document_id
            assert chunk.text == contents[filename][chunk.start_char : chunk.end_char]
        assert {e.chunk_id for e in vector_index.entries_for(document_id)} == {c.id for c in chunks}
    assert vector_index.document_count == len(contents)


def test_cancel_marks_document_failed(make_pipeline, store, vector_index, sample_text: str) -> None:
    provider = GatedProvider()
    pipeline = make_pipeline(client=make_client(provider, batch_size=64))
    document = pipeline.upload("slow.txt", sample_text)
    assert provider.entered.wait(timeout=5)

    assert pipeline.cancel(document.id) is True
    provider.release.set()
    done = pipeline.wait(document.id, timeout=10)

    assert done.status is DocumentStatus.FAILED
    assert done.failure_reason == CANCELLED_REASON
    assert store.chunks_for(document.id) == []
    assert not vector_index.contains_document(document.id)
    assert pipeline.cancel(document.id) is False


def test_delete_removes_document_and_entries(pipeline, ingest, store, vector_index, sample_text: str) -> None:
    document_id = ingest("delete-me.txt", sample_text)
    assert vector_index.contains_document(document_id)

    pipeline.delete(document_id)

    with pytest.raises(NotFoundError):
        pipeline.get(document_id)
    assert store.chunks_for(document_id) == []
    assert not vector_index.contains_document(document_id)
    with pytest.raises(NotFoundError):
        pipeline.delete(document_id)


def test_reserved_metadata_rejected(pipeline) -> None:
    with pytest.raises(ValueError):
        pipeline.upload("a.txt", "text", {"ragline.status": "ready"})
    assert pipeline.list_documents() == []


def test_empty_content_is_ready_without_chunks(pipeline, ingest) -> None:
    document_id = ingest("empty.txt", "")
    document = pipeline.get(document_id)
    assert document.status is DocumentStatus.READY
    assert document.chunk_count == 0


def test_list_documents_in_upload_order(pipeline, ingest) -> None:
    first = ingest("one.txt", "First document.")
    second = ingest("two.txt", "Second document.")
    assert [doc.id for doc in pipeline.list_documents()] == [first, second]


def test_recover_interrupted_fails_stale_documents(pipeline, store) -> None:
    stale = store.create_document("stale.txt", "left over", {})
    store.transition(stale.id, DocumentStatus.PROCESSING)

    assert pipeline.recover_interrupted() == 1

    document = store.get_document(stale.id)
    assert document.status is DocumentStatus.FAILED
    assert document.failure_reason == INTERRUPTED_REASON


def test_index_rebuild_restores_ready_documents(ingest, store, vector_index, sample_text: str) -> None:
    document_id = ingest("persisted.txt", sample_text)
    rebuilt = VectorIndex(dim=TEST_DIM)

    loaded = rebuilt.rebuild(store)

    assert loaded == vector_index.size
    assert {e.chunk_id for e in rebuilt.entries_for(document_id)} == {
        e.chunk_id for e in vector_index.entries_for(document_id)
    }
