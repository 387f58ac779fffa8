"""External embedding and generation providers."""

from .base import EmbeddingProvider, GenerationProvider
from .extractive import ExtractiveGenerationProvider
from .hashed import HashedEmbeddingProvider
from .http import HttpEmbeddingProvider, HttpGenerationProvider

__all__ = [
    "EmbeddingProvider",
    "GenerationProvider",
    "ExtractiveGenerationProvider",
    "HashedEmbeddingProvider",
    "HttpEmbeddingProvider",
    "HttpGenerationProvider",
]
