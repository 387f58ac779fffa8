"""Internal dataclasses representing pipeline entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.FAILED)


# Allowed forward moves; anything else is a regression.
STATUS_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.FAILED}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.FAILED}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


@dataclass(slots=True)
class Document:
    """Uploaded document and its processing state.

    ``metadata`` is an open string-to-string mapping supplied by the client.
    Keys under the ``ragline.`` prefix are reserved for the service.
    """

    id: str
    filename: str
    content: str
    metadata: dict[str, str]
    status: DocumentStatus
    created_at: int
    updated_at: int
    failure_reason: str | None = None
    chunk_count: int = 0


@dataclass(slots=True, frozen=True)
class TextSpan:
    start: int
    end: int
    text: str


@dataclass(slots=True, frozen=True)
class Chunk:
    id: str
    document_id: str
    ordinal: int
    start_char: int
    end_char: int
    text: str


@dataclass(slots=True, frozen=True)
class IndexEntry:
    """Unit stored by the vector index."""

    chunk_id: str
    document_id: str
    vector: tuple[float, ...]


@dataclass(slots=True, frozen=True)
class IndexHit:
    entry: IndexEntry
    similarity: float
    sequence: int


@dataclass(slots=True)
class ChunkHit:
    chunk: Chunk
    similarity: float


@dataclass(slots=True)
class SearchResult:
    document: Document
    score: float
    chunks: list[ChunkHit] = field(default_factory=list)


@dataclass(slots=True)
class AnswerSource:
    document_id: str
    filename: str
    excerpt: str


@dataclass(slots=True)
class AnswerResult:
    query: str
    model: str
    answer: str | None
    confidence: float
    sources: list[AnswerSource]
    search_results: int
    error: str | None = None
    created_at: int | None = None


__all__ = [
    "DocumentStatus",
    "STATUS_TRANSITIONS",
    "Document",
    "TextSpan",
    "Chunk",
    "IndexEntry",
    "IndexHit",
    "ChunkHit",
    "SearchResult",
    "AnswerSource",
    "AnswerResult",
]
