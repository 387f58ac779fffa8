"""Answer synthesis over retrieved evidence."""

from __future__ import annotations

from typing import Sequence

from ragline.core.cancellation import CancellationToken
from ragline.core.config import Settings
from ragline.core.errors import OperationCancelled, ProviderError, SynthesisError
from ragline.core.logging import get_logger
from ragline.db.documents import DocumentStore
from ragline.models.entities import AnswerResult, AnswerSource, SearchResult
from ragline.providers.base import GenerationProvider
from ragline.retrieval.search import RetrievalService
from ragline.synthesis.prompt import build_prompt
from ragline.utils.text import normalize, truncate
from ragline.utils.time import now_ms

logger = get_logger(__name__)


def compute_confidence(
    results: Sequence[SearchResult],
    similarity_weight: float,
    corroboration_threshold: float,
    corroboration_target: int,
) -> float:
    """Weighted blend of the top score and how many documents clear the threshold.

    Both terms are clamped to [0, 1], so the blend is too. A lone weak match
    scores low on both; several strong independent matches score high.
    """
    if not results:
        return 0.0
    top = max(0.0, min(1.0, results[0].score))
    corroborating = sum(1 for result in results if result.score >= corroboration_threshold)
    corroboration = min(1.0, corroborating / corroboration_target)
    confidence = similarity_weight * top + (1.0 - similarity_weight) * corroboration
    return max(0.0, min(1.0, confidence))


class AnswerSynthesizer:
    """Runs retrieval, asks the language model for a grounded answer, records the outcome."""

    def __init__(
        self,
        retrieval: RetrievalService,
        generator: GenerationProvider,
        store: DocumentStore,
        settings: Settings,
    ) -> None:
        self.retrieval = retrieval
        self.generator = generator
        self.store = store
        self.settings = settings

    def answer(
        self,
        query: str,
        model: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> AnswerResult:
        model = model or self.settings.llm_default_model
        try:
            results = self.retrieval.search(query, self.settings.answer_max_results, cancel=cancel)
        except OperationCancelled:
            return self._finish(self._empty(query, model, []))

        sources = self._sources(results)
        if not results:
            logger.info("No evidence for query; skipping generation", extra={"ctx_model": model})
            return self._finish(self._empty(query, model, []))
        if cancel is not None and cancel.cancelled:
            return self._finish(self._empty(query, model, sources, len(results)))

        prompt = build_prompt(query, results)
        try:
            text = self.generator.generate(prompt, model)
            if not text or not text.strip():
                raise ProviderError("Language model returned an empty completion")
        except (ProviderError, TimeoutError, OSError) as exc:
            partial = self._empty(query, model, sources, len(results))
            partial.error = str(exc)
            self._finish(partial)
            logger.warning("Synthesis failed: %s", exc, extra={"ctx_model": model})
            raise SynthesisError(f"Language model call failed: {exc}", result=partial) from exc

        if cancel is not None and cancel.cancelled:
            return self._finish(self._empty(query, model, sources, len(results)))

        confidence = compute_confidence(
            results,
            self.settings.confidence_similarity_weight,
            self.settings.corroboration_threshold,
            self.settings.corroboration_target,
        )
        return self._finish(
            AnswerResult(
                query=query,
                model=model,
                answer=text.strip(),
                confidence=confidence,
                sources=sources,
                search_results=len(results),
                created_at=now_ms(),
            )
        )

    def history(self, limit: int | None = None) -> list[AnswerResult]:
        return self.store.list_answers(limit=limit)

    def _sources(self, results: Sequence[SearchResult]) -> list[AnswerSource]:
        sources: list[AnswerSource] = []
        for result in results:
            excerpt = normalize(result.chunks[0].chunk.text) if result.chunks else ""
            sources.append(
                AnswerSource(
                    document_id=result.document.id,
                    filename=result.document.filename,
                    excerpt=truncate(excerpt, self.settings.answer_excerpt_chars),
                )
            )
        return sources

    @staticmethod
    def _empty(
        query: str,
        model: str,
        sources: list[AnswerSource],
        search_results: int = 0,
    ) -> AnswerResult:
        return AnswerResult(
            query=query,
            model=model,
            answer=None,
            confidence=0.0,
            sources=sources,
            search_results=search_results,
            created_at=now_ms(),
        )

    def _finish(self, result: AnswerResult) -> AnswerResult:
        self.store.record_answer(result)
        return result


__all__ = ["AnswerSynthesizer", "compute_confidence"]
