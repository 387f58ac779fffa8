"""Durable store for documents, chunks, embeddings and answer history."""

from __future__ import annotations

import sqlite3
from array import array
from typing import Any, Iterator, Mapping, Sequence

import orjson

from ragline.core.errors import IndexWriteError, NotFoundError, StatusTransitionError
from ragline.db.sqlite import SQLiteDatabase
from ragline.models.entities import (
    STATUS_TRANSITIONS,
    AnswerResult,
    AnswerSource,
    Chunk,
    Document,
    DocumentStatus,
    IndexEntry,
)
from ragline.utils.ids import new_id
from ragline.utils.time import now_ms

_DOCUMENT_COLUMNS = (
    "id, filename, content, meta_json, status, failure_reason, chunk_count, created_at, updated_at"
)


class DocumentStore:
    """Create/read/list/delete keyed by document id, on top of ``SQLiteDatabase``."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    # Documents --------------------------------------------------------

    def create_document(self, filename: str, content: str, metadata: Mapping[str, str]) -> Document:
        now = now_ms()
        document = Document(
            id=new_id("doc"),
            filename=filename,
            content=content,
            metadata=dict(metadata),
            status=DocumentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        with self.db.transaction() as tx:
            tx.execute(
                f"INSERT INTO documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    document.id,
                    document.filename,
                    document.content,
                    orjson.dumps(document.metadata).decode("utf-8"),
                    document.status.value,
                    None,
                    0,
                    now,
                    now,
                ],
            )
        return document

    def find_document(self, document_id: str) -> Document | None:
        row = self.db.query_one(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", [document_id])
        return _row_to_document(row) if row else None

    def get_document(self, document_id: str) -> Document:
        document = self.find_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def list_documents(self) -> list[Document]:
        rows = self.db.query(f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at, rowid")
        return [_row_to_document(row) for row in rows]

    def transition(
        self,
        document_id: str,
        status: DocumentStatus,
        failure_reason: str | None = None,
        chunk_count: int | None = None,
    ) -> Document:
        """Move a document forward; regressions raise ``StatusTransitionError``."""
        with self.db.transaction() as tx:
            row = tx.execute("SELECT status FROM documents WHERE id = ?", [document_id]).fetchone()
            if row is None:
                raise NotFoundError(f"Document {document_id} not found")
            current = DocumentStatus(row["status"])
            if status not in STATUS_TRANSITIONS[current]:
                raise StatusTransitionError(
                    f"Document {document_id} cannot move from {current.value} to {status.value}"
                )
            tx.execute(
                """
                UPDATE documents
                SET status = ?, failure_reason = ?, chunk_count = COALESCE(?, chunk_count), updated_at = ?
                WHERE id = ?
                """,
                [
                    status.value,
                    failure_reason if status is DocumentStatus.FAILED else None,
                    chunk_count,
                    now_ms(),
                    document_id,
                ],
            )
        return self.get_document(document_id)

    def delete_document(self, document_id: str) -> None:
        with self.db.transaction() as tx:
            cursor = tx.execute("DELETE FROM documents WHERE id = ?", [document_id])
            if cursor.rowcount == 0:
                raise NotFoundError(f"Document {document_id} not found")

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in DocumentStatus}
        for row in self.db.query("SELECT status, COUNT(*) AS count FROM documents GROUP BY status"):
            counts[row["status"]] = int(row["count"])
        return counts

    # Chunks and embeddings --------------------------------------------

    def save_chunks(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
        model: str,
    ) -> None:
        """Persist a document's chunks and their vectors in one transaction."""
        if len(chunks) != len(vectors):
            raise IndexWriteError(f"{len(chunks)} chunks but {len(vectors)} vectors for {document_id}")
        now = now_ms()
        try:
            with self.db.transaction() as tx:
                tx.executemany(
                    """
                    INSERT INTO chunks (id, document_id, ordinal, start_char, end_char, text, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (chunk.id, document_id, chunk.ordinal, chunk.start_char, chunk.end_char, chunk.text, now)
                        for chunk in chunks
                    ],
                )
                tx.executemany(
                    "INSERT INTO embeddings (chunk_id, model, dim, vector, created_at) VALUES (?, ?, ?, ?, ?)",
                    [
                        (chunk.id, model, len(vector), _vector_to_bytes(vector), now)
                        for chunk, vector in zip(chunks, vectors)
                    ],
                )
        except sqlite3.Error as exc:
            raise IndexWriteError(f"Failed to persist chunks for {document_id}: {exc}") from exc

    def delete_chunks(self, document_id: str) -> int:
        with self.db.transaction() as tx:
            cursor = tx.execute("DELETE FROM chunks WHERE document_id = ?", [document_id])
            return cursor.rowcount

    def chunks_for(self, document_id: str) -> list[Chunk]:
        rows = self.db.query(
            "SELECT id, document_id, ordinal, start_char, end_char, text FROM chunks "
            "WHERE document_id = ? ORDER BY ordinal",
            [document_id],
        )
        return [_row_to_chunk(row) for row in rows]

    def get_chunks(self, chunk_ids: Sequence[str]) -> dict[str, Chunk]:
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" for _ in chunk_ids)
        rows = self.db.query(
            f"SELECT id, document_id, ordinal, start_char, end_char, text FROM chunks WHERE id IN ({placeholders})",
            list(chunk_ids),
        )
        return {row["id"]: _row_to_chunk(row) for row in rows}

    def iter_index_entries(self) -> Iterator[list[IndexEntry]]:
        """Yield persisted entries of ready documents, one list per document, oldest first."""
        rows = self.db.query(
            """
            SELECT chunks.id AS chunk_id, chunks.document_id, embeddings.vector
            FROM chunks
            JOIN documents ON documents.id = chunks.document_id
            JOIN embeddings ON embeddings.chunk_id = chunks.id
            WHERE documents.status = ?
            ORDER BY documents.created_at, documents.rowid, chunks.ordinal
            """,
            [DocumentStatus.READY.value],
        )
        batch: list[IndexEntry] = []
        for row in rows:
            if batch and batch[-1].document_id != row["document_id"]:
                yield batch
                batch = []
            batch.append(
                IndexEntry(
                    chunk_id=row["chunk_id"],
                    document_id=row["document_id"],
                    vector=_vector_from_bytes(row["vector"]),
                )
            )
        if batch:
            yield batch

    # Answer history ---------------------------------------------------

    def record_answer(self, result: AnswerResult) -> None:
        sources = [
            {"document_id": s.document_id, "filename": s.filename, "excerpt": s.excerpt}
            for s in result.sources
        ]
        with self.db.transaction() as tx:
            tx.execute(
                """
                INSERT INTO answers (id, query, model, answer, confidence, sources_json, search_results, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    new_id("ans"),
                    result.query,
                    result.model,
                    result.answer,
                    result.confidence,
                    orjson.dumps(sources).decode("utf-8"),
                    result.search_results,
                    result.error,
                    result.created_at or now_ms(),
                ],
            )

    def list_answers(self, limit: int | None = None) -> list[AnswerResult]:
        sql = (
            "SELECT query, model, answer, confidence, sources_json, search_results, error, created_at "
            "FROM answers ORDER BY seq"
        )
        params: list[Any] = []
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        results: list[AnswerResult] = []
        for row in self.db.query(sql, params):
            sources = [
                AnswerSource(document_id=s["document_id"], filename=s["filename"], excerpt=s["excerpt"])
                for s in orjson.loads(row["sources_json"])
            ]
            results.append(
                AnswerResult(
                    query=row["query"],
                    model=row["model"],
                    answer=row["answer"],
                    confidence=float(row["confidence"]),
                    sources=sources,
                    search_results=int(row["search_results"]),
                    error=row["error"],
                    created_at=int(row["created_at"]),
                )
            )
        return results


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        filename=row["filename"],
        content=row["content"],
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
        status=DocumentStatus(row["status"]),
        failure_reason=row["failure_reason"],
        chunk_count=int(row["chunk_count"]),
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        ordinal=int(row["ordinal"]),
        start_char=int(row["start_char"]),
        end_char=int(row["end_char"]),
        text=row["text"],
    )


def _vector_to_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def _vector_from_bytes(payload: bytes) -> tuple[float, ...]:
    floats = array("f")
    floats.frombytes(payload)
    return tuple(floats)


__all__ = ["DocumentStore"]
