"""Test fixtures for Ragline."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Callable, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from ragline.core.config import Settings  # noqa: E402
from ragline.core.errors import ProviderError  # noqa: E402
from ragline.db.documents import DocumentStore  # noqa: E402
from ragline.db.sqlite import SQLiteDatabase  # noqa: E402
from ragline.ingest.embeddings import EmbeddingClient  # noqa: E402
from ragline.ingest.pipeline import IngestPipeline  # noqa: E402
from ragline.providers import ExtractiveGenerationProvider, HashedEmbeddingProvider  # noqa: E402
from ragline.retrieval import RetrievalService, VectorIndex  # noqa: E402
from ragline.synthesis.answer import AnswerSynthesizer  # noqa: E402

TEST_DIM = 4096


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("RAGLINE_DB_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("RAGLINE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("RAGLINE_CHUNK_MAX_SIZE", "200")
    monkeypatch.setenv("RAGLINE_CHUNK_OVERLAP", "40")
    monkeypatch.setenv("RAGLINE_EMBEDDING_DIM", str(TEST_DIM))

    from ragline.api import dependencies as deps

    deps.reset_state()
    yield
    deps.reset_state()


class RecordingProvider:
    """Hashed embeddings plus a log of every batch requested."""

    name = "recording"

    def __init__(self, dim: int = TEST_DIM) -> None:
        self._inner = HashedEmbeddingProvider(dim=dim)
        self.batches: list[list[str]] = []
        self._lock = threading.Lock()

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        with self._lock:
            self.batches.append(list(texts))
        return self._inner.embed(texts)


class BrokenProvider:
    """Always fails with a terminal provider error."""

    name = "broken"

    def __init__(self) -> None:
        self.calls = 0

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls += 1
        raise ProviderError("provider rejected the request")


class StaticGenerator:
    """Returns a fixed completion or raises a given error."""

    name = "static"

    def __init__(self, text: str = "An answer. [1]", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str, model: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "ragline.db",
        embedding_dim=TEST_DIM,
        chunk_max_size=200,
        chunk_overlap=40,
        ingest_workers=2,
        embedding_backoff_base=0.0,
        embedding_backoff_max=0.0,
    )


@pytest.fixture
def store(settings: Settings) -> DocumentStore:
    db = SQLiteDatabase(settings.db_path)
    db.ensure_schema()
    yield DocumentStore(db)
    db.close()


def make_client(provider, dim: int | None = TEST_DIM, **kwargs) -> EmbeddingClient:
    kwargs.setdefault("sleep", lambda _seconds: None)
    return EmbeddingClient(provider=provider, dim=dim, **kwargs)


@pytest.fixture
def embedding_client() -> EmbeddingClient:
    return make_client(HashedEmbeddingProvider(dim=TEST_DIM))


@pytest.fixture
def vector_index() -> VectorIndex:
    return VectorIndex(dim=TEST_DIM)


@pytest.fixture
def make_pipeline(
    store: DocumentStore,
    settings: Settings,
    vector_index: VectorIndex,
) -> Callable[..., IngestPipeline]:
    created: list[IngestPipeline] = []

    def factory(
        client: EmbeddingClient | None = None,
        index: VectorIndex | None = None,
    ) -> IngestPipeline:
        pipeline = IngestPipeline(
            store=store,
            settings=settings,
            embedding_client=client or make_client(HashedEmbeddingProvider(dim=TEST_DIM)),
            vector_index=index or vector_index,
        )
        created.append(pipeline)
        return pipeline

    yield factory
    for pipeline in created:
        pipeline.shutdown(cancel_pending=True)


@pytest.fixture
def pipeline(make_pipeline, embedding_client: EmbeddingClient) -> IngestPipeline:
    return make_pipeline(client=embedding_client)


@pytest.fixture
def retrieval(
    store: DocumentStore,
    settings: Settings,
    vector_index: VectorIndex,
    embedding_client: EmbeddingClient,
) -> RetrievalService:
    return RetrievalService(
        store=store,
        settings=settings,
        vector_index=vector_index,
        embedding_client=embedding_client,
    )


@pytest.fixture
def make_synthesizer(retrieval: RetrievalService, store: DocumentStore, settings: Settings):
    def factory(generator=None) -> AnswerSynthesizer:
        return AnswerSynthesizer(
            retrieval=retrieval,
            generator=generator or ExtractiveGenerationProvider(),
            store=store,
            settings=settings,
        )

    return factory


@pytest.fixture
def ingest(pipeline: IngestPipeline) -> Callable[..., str]:
    """Upload a document and block until it settles; returns its id."""

    def _ingest(filename: str, content: str, metadata: dict[str, str] | None = None) -> str:
        document = pipeline.upload(filename, content, metadata)
        pipeline.wait(document.id, timeout=10)
        return document.id

    return _ingest


@pytest.fixture(scope="session")
def sample_text() -> str:
    return (
        "Retrieval systems split documents into chunks. Each chunk is embedded as a vector.\n\n"
        "At query time the question is embedded the same way. The closest chunks are returned "
        "together with their parent documents.\n\n"
        "An answer is then written from the retrieved evidence. Sources are cited so readers "
        "can check the claims."
    )
