"""Ingest pipeline orchestration.

Each upload is persisted as ``pending``, moved to ``processing`` and handed to
the worker pool. A worker takes the document through chunk → embed → persist
→ index and marks it ``ready``; any failure marks it ``failed`` and removes
whatever had been written for it.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Mapping

from ragline.core.cancellation import CancellationToken, check
from ragline.core.config import Settings
from ragline.core.errors import NotFoundError, OperationCancelled
from ragline.core.logging import get_logger
from ragline.core.metrics import INDEX_SIZE, INGEST_DURATION, INGEST_OUTCOMES
from ragline.db.documents import DocumentStore
from ragline.ingest.chunker import build_chunks, chunk_text, validate_chunking
from ragline.ingest.embeddings import EmbeddingClient, Priority
from ragline.ingest.workers import WorkerPool
from ragline.models.entities import Document, DocumentStatus, IndexEntry
from ragline.retrieval.vector_index import VectorIndex
from ragline.utils.time import elapsed_ms

logger = get_logger(__name__)

RESERVED_METADATA_PREFIX = "ragline."
CANCELLED_REASON = "cancelled"
INTERRUPTED_REASON = "interrupted"


@dataclass(slots=True)
class _Task:
    document_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    future: Future | None = None


class IngestPipeline:
    """Coordinate chunking, embeddings, persistence and indexing per document."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        embedding_client: EmbeddingClient,
        vector_index: VectorIndex,
        workers: WorkerPool | None = None,
    ) -> None:
        validate_chunking(settings.chunk_max_size, settings.chunk_overlap)
        self.store = store
        self.settings = settings
        self.embedding_client = embedding_client
        self.vector_index = vector_index
        self.workers = workers or WorkerPool(settings.ingest_workers)
        self._tasks: dict[str, _Task] = {}
        self._lock = threading.Lock()

    @property
    def active_workers(self) -> int:
        return self.workers.active

    def upload(self, filename: str, content: str, metadata: Mapping[str, str] | None = None) -> Document:
        """Persist the document and schedule processing; returns without waiting."""
        metadata = dict(metadata or {})
        reserved = [key for key in metadata if key.startswith(RESERVED_METADATA_PREFIX)]
        if reserved:
            raise ValueError(f"Metadata keys {reserved} use the reserved '{RESERVED_METADATA_PREFIX}' prefix")

        document = self.store.create_document(filename, content, metadata)
        document = self.store.transition(document.id, DocumentStatus.PROCESSING)
        task = _Task(document_id=document.id)
        with self._lock:
            task.future = self.workers.submit(self._process, task)
            self._tasks[document.id] = task
        logger.info(
            "Accepted %s for processing",
            filename,
            extra={"ctx_document_id": document.id, "ctx_chars": len(content)},
        )
        return document

    def get(self, document_id: str) -> Document:
        return self.store.get_document(document_id)

    def list_documents(self) -> list[Document]:
        return self.store.list_documents()

    def cancel(self, document_id: str) -> bool:
        """Signal an in-flight task to stop; False when nothing is running."""
        with self._lock:
            task = self._tasks.get(document_id)
        if task is None:
            return False
        task.token.cancel()
        return True

    def delete(self, document_id: str) -> None:
        self.store.get_document(document_id)
        self.cancel(document_id)
        self.vector_index.remove(document_id)
        self.store.delete_document(document_id)
        INDEX_SIZE.set(self.vector_index.size)
        logger.info("Deleted document", extra={"ctx_document_id": document_id})

    def wait(self, document_id: str, timeout: float | None = None) -> Document:
        """Block until the document's processing settles, then return it."""
        with self._lock:
            task = self._tasks.get(document_id)
        if task is not None and task.future is not None:
            task.future.result(timeout=timeout)
        return self.store.get_document(document_id)

    def recover_interrupted(self) -> int:
        """Fail documents left mid-flight by a previous process."""
        recovered = 0
        for document in self.store.list_documents():
            if document.status.terminal:
                continue
            with self._lock:
                if document.id in self._tasks:
                    continue
            self._fail(document.id, INTERRUPTED_REASON)
            recovered += 1
        if recovered:
            logger.warning("Marked %s interrupted documents as failed", recovered)
        return recovered

    def shutdown(self, cancel_pending: bool = False) -> None:
        if cancel_pending:
            with self._lock:
                tasks = list(self._tasks.values())
            for task in tasks:
                task.token.cancel()
        self.workers.shutdown(wait=True)

    # Internal helpers -------------------------------------------------

    def _process(self, task: _Task) -> None:
        document_id = task.document_id
        token = task.token
        started = time.perf_counter()
        outcome = DocumentStatus.FAILED.value
        try:
            document = self.store.get_document(document_id)
            check(token)

            spans = chunk_text(document.content, self.settings.chunk_max_size, self.settings.chunk_overlap)
            chunks = build_chunks(document_id, spans)
            vectors = self.embedding_client.embed_batch(
                [chunk.text for chunk in chunks],
                priority=Priority.BULK,
                cancel=token,
            )
            check(token)

            self.store.save_chunks(document_id, chunks, vectors, model=self.embedding_client.model_name)
            self.vector_index.insert(
                [
                    IndexEntry(chunk_id=chunk.id, document_id=document_id, vector=tuple(vector))
                    for chunk, vector in zip(chunks, vectors)
                ]
            )
            check(token)

            self.store.transition(document_id, DocumentStatus.READY, chunk_count=len(chunks))
            outcome = DocumentStatus.READY.value
            logger.info(
                "Document ready",
                extra={
                    "ctx_document_id": document_id,
                    "ctx_chunks": len(chunks),
                    "ctx_elapsed_ms": elapsed_ms(started),
                },
            )
        except NotFoundError:
            # deleted while processing
            self.vector_index.remove(document_id)
            outcome = "deleted"
            logger.info("Document deleted during processing", extra={"ctx_document_id": document_id})
        except OperationCancelled:
            self._fail(document_id, CANCELLED_REASON)
        except Exception as exc:
            logger.exception(
                "Ingest failed: %s",
                exc,
                extra={"ctx_document_id": document_id, "ctx_error": type(exc).__name__},
            )
            self._fail(document_id, f"{type(exc).__name__}: {exc}")
        finally:
            INGEST_DURATION.labels(outcome=outcome).observe(time.perf_counter() - started)
            INGEST_OUTCOMES.labels(status=outcome).inc()
            INDEX_SIZE.set(self.vector_index.size)
            with self._lock:
                if self._tasks.get(document_id) is task:
                    del self._tasks[document_id]

    def _fail(self, document_id: str, reason: str) -> None:
        """Roll back index entries and chunks, then record the failure.

        A rollback fault is logged; the document still settles as failed.
        """
        try:
            self.vector_index.remove(document_id)
            self.store.delete_chunks(document_id)
        except Exception:
            logger.exception("Rollback failed", extra={"ctx_document_id": document_id})
        try:
            self.store.transition(document_id, DocumentStatus.FAILED, failure_reason=reason)
        except NotFoundError:
            logger.info("Failed document already deleted", extra={"ctx_document_id": document_id})
            return
        logger.warning(
            "Document failed: %s",
            reason,
            extra={"ctx_document_id": document_id},
        )


__all__ = ["IngestPipeline", "RESERVED_METADATA_PREFIX", "CANCELLED_REASON", "INTERRUPTED_REASON"]
