"""Administrative routes for Ragline."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ragline.api.dependencies import (
    get_document_store,
    get_embedding_client,
    get_ingest_pipeline,
    get_runtime_stats,
    get_vector_index,
)
from ragline.core.metrics import RuntimeStats, metrics_response
from ragline.db.documents import DocumentStore
from ragline.ingest.embeddings import EmbeddingClient
from ragline.ingest.pipeline import IngestPipeline
from ragline.models.dto import MetricsResponse
from ragline.retrieval.vector_index import VectorIndex

router = APIRouter()


@router.get("/metrics", response_model=MetricsResponse, summary="Runtime snapshot")
def get_metrics(
    stats: RuntimeStats = Depends(get_runtime_stats),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
    store: DocumentStore = Depends(get_document_store),
    index: VectorIndex = Depends(get_vector_index),
    embeddings: EmbeddingClient = Depends(get_embedding_client),
) -> MetricsResponse:
    snapshot = stats.snapshot(active_workers=pipeline.active_workers)
    return MetricsResponse(
        uptime=snapshot["uptime"],
        memory=snapshot["memory"],
        active_workers=snapshot["activeWorkers"],
        queued_documents=pipeline.workers.queued,
        total_requests=snapshot["totalRequests"],
        documents=store.status_counts(),
        indexed_chunks=index.size,
        embedding={
            "capacity": embeddings.gate.capacity,
            "inFlight": embeddings.gate.in_flight,
            "waiting": embeddings.gate.waiting,
        },
    )


@router.get("/prometheus", summary="Prometheus metrics")
def get_prometheus_metrics():
    return metrics_response()


__all__ = ["router"]
