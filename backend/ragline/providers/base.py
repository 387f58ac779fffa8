"""Capability interfaces for the external embedding and generation providers."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns a batch of texts into an equal-length batch of vectors.

    Implementations raise ``TransientProviderError`` for retryable faults and
    ``ProviderError`` for everything else.
    """

    name: str

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


@runtime_checkable
class GenerationProvider(Protocol):
    """Produces text for a prompt; raises ``ProviderError`` on failure."""

    name: str

    def generate(self, prompt: str, model: str) -> str: ...


__all__ = ["EmbeddingProvider", "GenerationProvider"]
