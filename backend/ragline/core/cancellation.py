"""Cooperative cancellation signal passed alongside long-running tasks."""

from __future__ import annotations

import threading

from ragline.core.errors import OperationCancelled


class CancellationToken:
    """Thin wrapper around ``threading.Event``."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def check(token: CancellationToken | None) -> None:
    """Raise ``OperationCancelled`` when ``token`` has fired; ``None`` never fires."""
    if token is not None:
        token.raise_if_cancelled()


__all__ = ["CancellationToken", "check"]
