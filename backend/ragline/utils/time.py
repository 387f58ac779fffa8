"""Time helpers."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Return current wall-clock timestamp in milliseconds."""
    return int(time.time() * 1000)


def elapsed_ms(started: float) -> float:
    """Milliseconds since ``started``, a ``time.perf_counter()`` reading."""
    return round((time.perf_counter() - started) * 1000, 2)
