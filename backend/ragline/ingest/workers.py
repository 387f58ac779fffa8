"""Bounded worker pool for per-document processing."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class WorkerPool:
    """ThreadPoolExecutor wrapper that tracks how many tasks are running."""

    def __init__(self, max_workers: int, thread_name_prefix: str = "ragline-ingest") -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._lock = threading.Lock()
        self._active = 0
        self._pending: set[Future] = set()
        self._closed = False

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def queued(self) -> int:
        with self._lock:
            return len(self._pending) - self._active

    def submit(self, fn: Callable[..., T], *args, **kwargs) -> Future[T]:
        with self._lock:
            if self._closed:
                raise RuntimeError("Worker pool is shut down")
            future = self._executor.submit(self._run, fn, *args, **kwargs)
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        logger.info("Worker pool shut down")

    def _run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        with self._lock:
            self._active += 1
        try:
            return fn(*args, **kwargs)
        finally:
            with self._lock:
                self._active -= 1

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)


__all__ = ["WorkerPool"]
