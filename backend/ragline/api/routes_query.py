"""Search and question-answering routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ragline.api.dependencies import get_retrieval_service, get_synthesizer
from ragline.core.errors import SynthesisError
from ragline.models.dto import (
    AskRequest,
    AskResponse,
    ErrorResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
)
from ragline.retrieval.search import RetrievalService
from ragline.synthesis.answer import AnswerSynthesizer

router = APIRouter(responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})


@router.post("/search", response_model=SearchResponse, summary="Semantic search over ready documents")
def search_documents(
    request: SearchRequest,
    service: RetrievalService = Depends(get_retrieval_service),
) -> SearchResponse:
    results = service.search(request.query, request.max_results)
    return SearchResponse(
        total_results=len(results),
        results=[SearchResultItem.from_entity(result) for result in results],
    )


@router.post(
    "/ask-documents",
    response_model=AskResponse,
    responses={502: {"model": AskResponse, "description": "Generation failed; partial result"}},
    summary="Answer a question from the indexed documents",
)
def ask_documents(
    request: AskRequest,
    synthesizer: AnswerSynthesizer = Depends(get_synthesizer),
):
    try:
        result = synthesizer.answer(request.query, model=request.model)
    except SynthesisError as exc:
        if exc.result is None:
            raise
        body = AskResponse.from_entity(exc.result)
        return JSONResponse(status_code=502, content=body.model_dump(mode="json", by_alias=True))
    return AskResponse.from_entity(result)


@router.get(
    "/ask-documents/history",
    response_model=list[AskResponse],
    summary="Recorded answers in the order they were produced",
)
def answer_history(
    limit: int | None = Query(default=None, ge=1),
    synthesizer: AnswerSynthesizer = Depends(get_synthesizer),
) -> list[AskResponse]:
    return [AskResponse.from_entity(result) for result in synthesizer.history(limit=limit)]


__all__ = ["router"]
