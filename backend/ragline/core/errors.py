"""Error taxonomy shared across the pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ragline.models.entities import AnswerResult


class RaglineError(Exception):
    """Base class for errors surfaced to callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "message": self.message}


class ConfigurationError(RaglineError):
    """Invalid chunking or index parameters. Fatal at startup."""


class EmbeddingProviderError(RaglineError):
    """Embedding provider failed after retries or returned malformed vectors."""

    status_code = 503


class IndexWriteError(RaglineError):
    """Storage fault while inserting or removing index entries."""


class NotFoundError(RaglineError):
    """Unknown document id."""

    status_code = 404


class StatusTransitionError(RaglineError):
    """Attempted to move a document's status backwards or out of a terminal state."""

    status_code = 409


class SynthesisError(RaglineError):
    """Language-model call failed; ``result`` still carries the retrieval outcome."""

    status_code = 502

    def __init__(self, message: str, result: "AnswerResult | None" = None) -> None:
        super().__init__(message)
        self.result = result


class OperationCancelled(RaglineError):
    """Raised inside a task once its cancellation token fires."""

    def __init__(self, message: str = "cancelled") -> None:
        super().__init__(message)


class ProviderError(Exception):
    """Terminal provider failure; never retried."""


class TransientProviderError(ProviderError):
    """Retryable provider failure (timeouts, throttling, 5xx)."""


__all__ = [
    "RaglineError",
    "ConfigurationError",
    "EmbeddingProviderError",
    "IndexWriteError",
    "NotFoundError",
    "StatusTransitionError",
    "SynthesisError",
    "OperationCancelled",
    "ProviderError",
    "TransientProviderError",
]
