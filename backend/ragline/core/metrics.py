"""Prometheus metrics instrumentation and process-wide runtime counters."""

from __future__ import annotations

import resource
import sys
import threading
import time
from typing import Any

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "ragline_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "ragline_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "ragline_ingest_duration_seconds",
    "Per-document ingest duration",
    labelnames=("outcome",),
    registry=REGISTRY,
)

INGEST_OUTCOMES = Counter(
    "ragline_ingest_documents_total",
    "Documents that finished processing",
    labelnames=("status",),
    registry=REGISTRY,
)

EMBEDDING_RETRIES = Counter(
    "ragline_embedding_retries_total",
    "Retried embedding provider calls",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "ragline_index_chunks",
    "Number of chunk vectors held by the index",
    registry=REGISTRY,
)


class RuntimeStats:
    """Uptime plus lock-guarded request counter, created once at startup."""

    def __init__(self) -> None:
        self._started = time.monotonic()
        self._lock = threading.Lock()
        self._total_requests = 0

    def record_request(self) -> None:
        with self._lock:
            self._total_requests += 1

    @property
    def total_requests(self) -> int:
        with self._lock:
            return self._total_requests

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started

    def snapshot(self, active_workers: int) -> dict[str, Any]:
        # heapUsed is kept for clients that read it
        rss = _peak_rss_bytes()
        return {
            "uptime": self.uptime,
            "memory": {"rss": rss, "heapUsed": rss},
            "activeWorkers": active_workers,
            "totalRequests": self.total_requests,
        }


def _peak_rss_bytes() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux kilobytes
    return int(usage if sys.platform == "darwin" else usage * 1024)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGEST_DURATION",
    "INGEST_OUTCOMES",
    "EMBEDDING_RETRIES",
    "INDEX_SIZE",
    "RuntimeStats",
    "metrics_response",
]
