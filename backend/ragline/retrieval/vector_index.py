"""In-memory cosine-similarity vector index."""

from __future__ import annotations

import heapq
import itertools
import math
import threading
from dataclasses import dataclass
from typing import Mapping, Sequence

from ragline.core.errors import IndexWriteError
from ragline.db.documents import DocumentStore
from ragline.models.entities import IndexEntry, IndexHit

_LOCK_STRIPES = 64


@dataclass(slots=True, frozen=True)
class _Stored:
    entry: IndexEntry
    norm: float
    sequence: int


class VectorIndex:
    """Per-document entry batches published through an immutable snapshot.

    Writers build a new ``document_id -> entries`` mapping and swap it in with
    a single attribute assignment, so a search iterating the previous mapping
    never sees a half-written batch. Writes to the same document are
    serialised by one of a fixed set of striped locks.
    """

    def __init__(self, dim: int | None = None) -> None:
        self.dim = dim
        self._snapshot: Mapping[str, tuple[_Stored, ...]] = {}
        self._sequence = itertools.count()
        self._swap_lock = threading.Lock()
        self._document_locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))

    @property
    def size(self) -> int:
        return sum(len(entries) for entries in self._snapshot.values())

    @property
    def document_count(self) -> int:
        return len(self._snapshot)

    def contains_document(self, document_id: str) -> bool:
        return document_id in self._snapshot

    def entries_for(self, document_id: str) -> list[IndexEntry]:
        return [stored.entry for stored in self._snapshot.get(document_id, ())]

    def insert(self, entries: Sequence[IndexEntry]) -> None:
        """Add one document's entries as a single visible batch."""
        if not entries:
            return
        document_ids = {entry.document_id for entry in entries}
        if len(document_ids) != 1:
            raise IndexWriteError("An index batch must belong to exactly one document")
        (document_id,) = document_ids

        with self._document_lock(document_id):
            with self._swap_lock:
                dim = self.dim if self.dim is not None else len(entries[0].vector)
            for entry in entries:
                if len(entry.vector) != dim:
                    raise IndexWriteError(
                        f"Vector dimension mismatch for chunk {entry.chunk_id}: expected {dim}, got {len(entry.vector)}"
                    )
            stored = tuple(
                _Stored(entry=entry, norm=_norm(entry.vector), sequence=next(self._sequence))
                for entry in entries
            )
            with self._swap_lock:
                if self.dim is None:
                    self.dim = dim
                elif self.dim != dim:
                    raise IndexWriteError(f"Index dimension is {self.dim}, batch has {dim}")
                updated = dict(self._snapshot)
                updated[document_id] = updated.get(document_id, ()) + stored
                self._snapshot = updated

    def remove(self, document_id: str) -> int:
        """Drop every entry for ``document_id``; returns how many were removed."""
        with self._document_lock(document_id):
            with self._swap_lock:
                if document_id not in self._snapshot:
                    return 0
                updated = dict(self._snapshot)
                removed = updated.pop(document_id)
                self._snapshot = updated
        return len(removed)

    def search(self, vector: Sequence[float], k: int = 8) -> list[IndexHit]:
        """Top ``k`` entries by descending cosine similarity; earlier inserts win ties."""
        if k <= 0:
            return []
        snapshot = self._snapshot
        if not snapshot:
            return []
        if self.dim is not None and len(vector) != self.dim:
            raise ValueError(f"Query vector dimension mismatch: expected {self.dim}, got {len(vector)}")
        query_norm = _norm(vector)
        if query_norm == 0:
            return []

        scored: list[tuple[float, int, IndexEntry]] = []
        for entries in snapshot.values():
            for stored in entries:
                if stored.norm == 0:
                    continue
                similarity = _dot(stored.entry.vector, vector) / (stored.norm * query_norm)
                scored.append((max(-1.0, min(1.0, similarity)), stored.sequence, stored.entry))

        best = heapq.nsmallest(k, scored, key=lambda item: (-item[0], item[1]))
        return [IndexHit(entry=entry, similarity=similarity, sequence=seq) for similarity, seq, entry in best]

    def rebuild(self, store: DocumentStore) -> int:
        """Replace the index contents with persisted vectors of ready documents."""
        with self._swap_lock:
            self._snapshot = {}
        loaded = 0
        for batch in store.iter_index_entries():
            self.insert(batch)
            loaded += len(batch)
        return loaded

    def _document_lock(self, document_id: str) -> threading.Lock:
        return self._document_locks[hash(document_id) % len(self._document_locks)]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(_dot(vector, vector))


__all__ = ["VectorIndex"]
