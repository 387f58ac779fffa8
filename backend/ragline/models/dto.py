"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ragline.models.entities import AnswerResult, Document, SearchResult


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadRequest(ApiModel):
    filename: str = Field(min_length=1, max_length=512)
    content: str = Field(min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def _reject_reserved_keys(cls, value: dict[str, str]) -> dict[str, str]:
        reserved = [key for key in value if key.startswith("ragline.")]
        if reserved:
            raise ValueError(f"metadata keys {reserved} use the reserved 'ragline.' prefix")
        return value


class UploadResponse(ApiModel):
    document_id: str
    filename: str
    status: str


class DocumentResponse(ApiModel):
    id: str
    filename: str
    status: Literal["pending", "processing", "ready", "failed"]
    failure_reason: str | None = None
    metadata: dict[str, str]
    chunk_count: int
    created_at: int
    updated_at: int

    @classmethod
    def from_entity(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            filename=document.filename,
            status=document.status.value,
            failure_reason=document.failure_reason,
            metadata=document.metadata,
            chunk_count=document.chunk_count,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DeleteResponse(ApiModel):
    status: Literal["ok"] = "ok"
    document_id: str


class SearchRequest(ApiModel):
    query: str = Field(min_length=1)
    max_results: int = Field(default=5, ge=1, le=50)


class ChunkResult(ApiModel):
    id: str
    text: str
    start_char: int
    end_char: int
    similarity: float


class DocumentSummary(ApiModel):
    id: str
    filename: str
    metadata: dict[str, str]


class SearchResultItem(ApiModel):
    document: DocumentSummary
    similarity: float
    chunks: list[ChunkResult]

    @classmethod
    def from_entity(cls, result: SearchResult) -> "SearchResultItem":
        return cls(
            document=DocumentSummary(
                id=result.document.id,
                filename=result.document.filename,
                metadata=result.document.metadata,
            ),
            similarity=result.score,
            chunks=[
                ChunkResult(
                    id=hit.chunk.id,
                    text=hit.chunk.text,
                    start_char=hit.chunk.start_char,
                    end_char=hit.chunk.end_char,
                    similarity=hit.similarity,
                )
                for hit in result.chunks
            ],
        )


class SearchResponse(ApiModel):
    total_results: int
    results: list[SearchResultItem]


class AskRequest(ApiModel):
    query: str = Field(min_length=1)
    model: str | None = None


class SourceItem(ApiModel):
    document_id: str
    filename: str
    chunk: str


class AskResponse(ApiModel):
    query: str
    model: str
    answer: str | None
    confidence: float = Field(ge=0.0, le=1.0)
    sources: list[SourceItem]
    search_results: int
    error: str | None = None
    created_at: int | None = None

    @classmethod
    def from_entity(cls, result: AnswerResult) -> "AskResponse":
        return cls(
            query=result.query,
            model=result.model,
            answer=result.answer,
            confidence=result.confidence,
            sources=[
                SourceItem(document_id=s.document_id, filename=s.filename, chunk=s.excerpt)
                for s in result.sources
            ],
            search_results=result.search_results,
            error=result.error,
            created_at=result.created_at,
        )


class ErrorBody(ApiModel):
    type: str
    message: str


class ErrorResponse(ApiModel):
    error: ErrorBody


class MetricsResponse(ApiModel):
    uptime: float
    memory: dict[str, int]
    active_workers: int
    queued_documents: int
    total_requests: int
    documents: dict[str, int]
    indexed_chunks: int
    embedding: dict[str, int] = Field(default_factory=dict)


__all__ = [
    "UploadRequest",
    "UploadResponse",
    "DocumentResponse",
    "DeleteResponse",
    "SearchRequest",
    "SearchResponse",
    "SearchResultItem",
    "ChunkResult",
    "AskRequest",
    "AskResponse",
    "SourceItem",
    "ErrorBody",
    "ErrorResponse",
    "MetricsResponse",
]
