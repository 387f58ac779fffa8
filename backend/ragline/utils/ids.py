"""ID helpers."""

from __future__ import annotations

import hashlib
import uuid


def new_id(prefix: str) -> str:
    """Random identifier such as ``doc_<uuid4 hex>``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def stable_id(prefix: str, *parts: object, length: int = 32) -> str:
    """Deterministic identifier derived from ``parts``; same inputs, same id."""
    digest = hashlib.sha256(":".join(str(part) for part in parts).encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:length]}"
