"""Search orchestration."""

from __future__ import annotations

import time
from collections import OrderedDict

from ragline.core.cancellation import CancellationToken
from ragline.core.config import Settings
from ragline.core.logging import get_logger
from ragline.core.metrics import REQUEST_LATENCY
from ragline.db.documents import DocumentStore
from ragline.ingest.embeddings import EmbeddingClient
from ragline.models.entities import ChunkHit, DocumentStatus, IndexHit, SearchResult
from ragline.retrieval.vector_index import VectorIndex

logger = get_logger(__name__)


class RetrievalService:
    """Embeds a query, searches chunk vectors, and ranks parent documents."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        vector_index: VectorIndex,
        embedding_client: EmbeddingClient,
    ) -> None:
        self.store = store
        self.settings = settings
        self.vector_index = vector_index
        self.embedding_client = embedding_client

    def search(
        self,
        query: str,
        max_results: int,
        cancel: CancellationToken | None = None,
    ) -> list[SearchResult]:
        if max_results <= 0:
            return []
        start_time = time.perf_counter()
        if self.vector_index.size == 0:
            return []

        query_vector = self.embedding_client.embed_query(query, cancel=cancel)
        candidates = self.vector_index.search(query_vector, k=max_results * self.settings.search_fan_out)
        grouped = self._group_by_document(candidates)
        results = self._hydrate(grouped)

        # stable: equal scores keep best-chunk insertion order from the index
        results.sort(key=lambda result: result.score, reverse=True)
        results = results[:max_results]

        REQUEST_LATENCY.labels(endpoint="retrieval", method="search").observe(time.perf_counter() - start_time)
        logger.debug(
            "Search returned %s documents from %s candidates",
            len(results),
            len(candidates),
            extra={"ctx_query_chars": len(query)},
        )
        return results

    # ------------------------------------------------------------------

    def _group_by_document(self, candidates: list[IndexHit]) -> "OrderedDict[str, list[IndexHit]]":
        grouped: OrderedDict[str, list[IndexHit]] = OrderedDict()
        for hit in candidates:
            if hit.similarity <= self.settings.search_min_similarity:
                continue
            grouped.setdefault(hit.entry.document_id, []).append(hit)
        return grouped

    def _hydrate(self, grouped: "OrderedDict[str, list[IndexHit]]") -> list[SearchResult]:
        if not grouped:
            return []
        preview = self.settings.search_chunk_preview
        chunk_ids = [hit.entry.chunk_id for hits in grouped.values() for hit in hits[:preview]]
        chunk_map = self.store.get_chunks(chunk_ids)

        results: list[SearchResult] = []
        for document_id, hits in grouped.items():
            document = self.store.find_document(document_id)
            # removed or not yet ready documents are never returned
            if document is None or document.status is not DocumentStatus.READY:
                continue
            chunk_hits = [
                ChunkHit(chunk=chunk_map[hit.entry.chunk_id], similarity=hit.similarity)
                for hit in hits[:preview]
                if hit.entry.chunk_id in chunk_map
            ]
            if not chunk_hits:
                continue
            results.append(SearchResult(document=document, score=hits[0].similarity, chunks=chunk_hits))
        return results


__all__ = ["RetrievalService"]
