"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from ragline.core.config import Settings, get_settings
from ragline.core.metrics import INDEX_SIZE, RuntimeStats
from ragline.db.documents import DocumentStore
from ragline.db.sqlite import SQLiteDatabase
from ragline.ingest.embeddings import EmbeddingClient
from ragline.ingest.pipeline import IngestPipeline
from ragline.providers import (
    EmbeddingProvider,
    ExtractiveGenerationProvider,
    GenerationProvider,
    HashedEmbeddingProvider,
    HttpEmbeddingProvider,
    HttpGenerationProvider,
)
from ragline.retrieval import RetrievalService, VectorIndex
from ragline.synthesis.answer import AnswerSynthesizer

_DB: SQLiteDatabase | None = None
_STORE: DocumentStore | None = None
_EMBEDDING_CLIENT: EmbeddingClient | None = None
_GENERATOR: GenerationProvider | None = None
_VECTOR_INDEX: VectorIndex | None = None
_PIPELINE: IngestPipeline | None = None
_RETRIEVAL: RetrievalService | None = None
_SYNTHESIZER: AnswerSynthesizer | None = None
_RUNTIME_STATS: RuntimeStats | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        db = SQLiteDatabase(get_app_settings().db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_document_store() -> DocumentStore:
    global _STORE
    if _STORE is None:
        _STORE = DocumentStore(get_database())
    return _STORE


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "http":
        return HttpEmbeddingProvider(
            api_url=settings.embedding_api_url,
            model=settings.embedding_model,
            api_key=settings.embedding_api_key,
            timeout=settings.embedding_timeout,
        )
    return HashedEmbeddingProvider(dim=settings.embedding_dim)


def build_generation_provider(settings: Settings) -> GenerationProvider:
    if settings.llm_provider == "http":
        return HttpGenerationProvider(
            api_url=settings.llm_api_url,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout,
        )
    return ExtractiveGenerationProvider()


def get_embedding_client() -> EmbeddingClient:
    global _EMBEDDING_CLIENT
    if _EMBEDDING_CLIENT is None:
        settings = get_app_settings()
        _EMBEDDING_CLIENT = EmbeddingClient(
            provider=build_embedding_provider(settings),
            batch_size=settings.embedding_batch_size,
            max_attempts=settings.embedding_max_attempts,
            backoff_base=settings.embedding_backoff_base,
            backoff_max=settings.embedding_backoff_max,
            max_in_flight=settings.embedding_max_in_flight,
            dim=settings.embedding_dim,
        )
    return _EMBEDDING_CLIENT


def get_generator() -> GenerationProvider:
    global _GENERATOR
    if _GENERATOR is None:
        _GENERATOR = build_generation_provider(get_app_settings())
    return _GENERATOR


def get_vector_index() -> VectorIndex:
    global _VECTOR_INDEX
    if _VECTOR_INDEX is None:
        index = VectorIndex(dim=get_embedding_client().dim)
        index.rebuild(get_document_store())
        INDEX_SIZE.set(index.size)
        _VECTOR_INDEX = index
    return _VECTOR_INDEX


def get_ingest_pipeline() -> IngestPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        pipeline = IngestPipeline(
            store=get_document_store(),
            settings=get_app_settings(),
            embedding_client=get_embedding_client(),
            vector_index=get_vector_index(),
        )
        pipeline.recover_interrupted()
        _PIPELINE = pipeline
    return _PIPELINE


def get_retrieval_service() -> RetrievalService:
    global _RETRIEVAL
    if _RETRIEVAL is None:
        _RETRIEVAL = RetrievalService(
            store=get_document_store(),
            settings=get_app_settings(),
            vector_index=get_vector_index(),
            embedding_client=get_embedding_client(),
        )
    return _RETRIEVAL


def get_synthesizer() -> AnswerSynthesizer:
    global _SYNTHESIZER
    if _SYNTHESIZER is None:
        _SYNTHESIZER = AnswerSynthesizer(
            retrieval=get_retrieval_service(),
            generator=get_generator(),
            store=get_document_store(),
            settings=get_app_settings(),
        )
    return _SYNTHESIZER


def get_runtime_stats() -> RuntimeStats:
    global _RUNTIME_STATS
    if _RUNTIME_STATS is None:
        _RUNTIME_STATS = RuntimeStats()
    return _RUNTIME_STATS


def reset_state() -> None:
    """Shut down workers and drop every cached component."""
    global _DB, _STORE, _EMBEDDING_CLIENT, _GENERATOR, _VECTOR_INDEX
    global _PIPELINE, _RETRIEVAL, _SYNTHESIZER, _RUNTIME_STATS
    if _PIPELINE is not None:
        _PIPELINE.shutdown(cancel_pending=True)
    if _DB is not None:
        _DB.close()
    get_app_settings.cache_clear()
    get_settings.cache_clear()
    _DB = None
    _STORE = None
    _EMBEDDING_CLIENT = None
    _GENERATOR = None
    _VECTOR_INDEX = None
    _PIPELINE = None
    _RETRIEVAL = None
    _SYNTHESIZER = None
    _RUNTIME_STATS = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_document_store",
    "get_embedding_client",
    "get_generator",
    "get_vector_index",
    "get_ingest_pipeline",
    "get_retrieval_service",
    "get_synthesizer",
    "get_runtime_stats",
    "reset_state",
]
