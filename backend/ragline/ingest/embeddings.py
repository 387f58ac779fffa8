"""Embedding client: batching, retry with backoff, and a shared in-flight cap."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from contextlib import contextmanager
from enum import IntEnum
from typing import Callable, Iterable, Iterator

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ragline.core.cancellation import CancellationToken, check
from ragline.core.errors import (
    EmbeddingProviderError,
    OperationCancelled,
    ProviderError,
    TransientProviderError,
)
from ragline.core.metrics import EMBEDDING_RETRIES
from ragline.providers.base import EmbeddingProvider

logger = logging.getLogger(__name__)

_RETRYABLE = (TransientProviderError, TimeoutError)
_CANCEL_POLL_SECONDS = 0.05


class Priority(IntEnum):
    """Lower value is admitted first."""

    INTERACTIVE = 0
    BULK = 1


class RequestGate:
    """Caps concurrent provider calls; waiting interactive calls jump ahead of bulk ones."""

    def __init__(self, max_in_flight: int) -> None:
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive")
        self.capacity = max_in_flight
        self._in_flight = 0
        self._waiters: list[tuple[int, int]] = []
        self._sequence = itertools.count()
        self._cond = threading.Condition()

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    @property
    def waiting(self) -> int:
        with self._cond:
            return len(self._waiters)

    def acquire(self, priority: Priority, cancel: CancellationToken | None = None) -> None:
        with self._cond:
            ticket = (int(priority), next(self._sequence))
            heapq.heappush(self._waiters, ticket)
            try:
                while self._waiters[0] != ticket or self._in_flight >= self.capacity:
                    check(cancel)
                    self._cond.wait(timeout=_CANCEL_POLL_SECONDS if cancel is not None else None)
            except BaseException:
                self._waiters.remove(ticket)
                heapq.heapify(self._waiters)
                self._cond.notify_all()
                raise
            heapq.heappop(self._waiters)
            self._in_flight += 1
            self._cond.notify_all()

    def release(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    @contextmanager
    def slot(self, priority: Priority, cancel: CancellationToken | None = None) -> Iterator[None]:
        self.acquire(priority, cancel)
        try:
            yield
        finally:
            self.release()


class EmbeddingClient:
    """Wraps an ``EmbeddingProvider`` for use by ingestion and query paths.

    Results are all-or-nothing: a batch either comes back complete, in input
    order, with the client's fixed dimensionality, or an
    ``EmbeddingProviderError`` is raised.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = 16,
        max_attempts: int = 4,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        max_in_flight: int = 4,
        dim: int | None = None,
        gate: RequestGate | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.gate = gate or RequestGate(max_in_flight)
        self._sleep = sleep
        self._dim = dim
        self._dim_lock = threading.Lock()

    @property
    def dim(self) -> int | None:
        return self._dim

    @property
    def model_name(self) -> str:
        return getattr(self.provider, "model", None) or getattr(self.provider, "name", "unknown")

    def embed_batch(
        self,
        texts: Iterable[str],
        priority: Priority = Priority.BULK,
        cancel: CancellationToken | None = None,
    ) -> list[list[float]]:
        items = list(texts)
        vectors: list[list[float]] = []
        for start in range(0, len(items), self.batch_size):
            check(cancel)
            vectors.extend(self._call(items[start : start + self.batch_size], priority, cancel))
        return vectors

    def embed_query(self, text: str, cancel: CancellationToken | None = None) -> list[float]:
        return self._call([text], Priority.INTERACTIVE, cancel)[0]

    def _call(
        self,
        batch: list[str],
        priority: Priority,
        cancel: CancellationToken | None,
    ) -> list[list[float]]:
        retrying = Retrying(
            retry=retry_if_exception_type(_RETRYABLE),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            before_sleep=self._before_retry,
            sleep=self._sleep,
            reraise=True,
        )
        vectors: list[list[float]] = []
        try:
            for attempt in retrying:
                with attempt:
                    check(cancel)
                    with self.gate.slot(priority, cancel):
                        vectors = self.provider.embed(batch)
        except OperationCancelled:
            raise
        except _RETRYABLE as exc:
            raise EmbeddingProviderError(
                f"Embedding provider failed after {self.max_attempts} attempts: {exc}"
            ) from exc
        except ProviderError as exc:
            raise EmbeddingProviderError(f"Embedding provider error: {exc}") from exc
        return self._validate(batch, vectors)

    def _validate(self, batch: list[str], vectors: list[list[float]]) -> list[list[float]]:
        if len(vectors) != len(batch):
            raise EmbeddingProviderError(
                f"Provider returned {len(vectors)} vectors for {len(batch)} texts"
            )
        with self._dim_lock:
            if self._dim is None and vectors:
                self._dim = len(vectors[0])
            expected = self._dim
        for vector in vectors:
            if len(vector) != expected:
                raise EmbeddingProviderError(
                    f"Embedding dimension mismatch: expected {expected}, got {len(vector)}"
                )
        return vectors

    def _before_retry(self, state: RetryCallState) -> None:
        EMBEDDING_RETRIES.inc()
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Embedding attempt %s/%s failed: %s",
            state.attempt_number,
            self.max_attempts,
            exc,
            extra={"ctx_provider": getattr(self.provider, "name", "unknown")},
        )


__all__ = ["EmbeddingClient", "Priority", "RequestGate"]
