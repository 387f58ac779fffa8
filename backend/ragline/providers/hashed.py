"""Deterministic offline embedding provider."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Sequence

_TOKEN_RE = re.compile(r"\w+")


class HashedEmbeddingProvider:
    """Bag-of-words hashing into a fixed number of slots, L2-normalised.

    Identical texts map to identical vectors, and texts sharing no tokens are
    (barring slot collisions) orthogonal. Empty or token-free text yields a
    zero vector.
    """

    name = "hashed"

    def __init__(self, dim: int = 384) -> None:
        self.dim = dim

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in _tokenize(text):
                vector[_hash_token(token, self.dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["HashedEmbeddingProvider"]
