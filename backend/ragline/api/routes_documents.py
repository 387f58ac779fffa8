"""Document upload and lifecycle routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ragline.api.dependencies import get_ingest_pipeline
from ragline.ingest.pipeline import IngestPipeline
from ragline.models.dto import DeleteResponse, DocumentResponse, ErrorResponse, UploadRequest, UploadResponse

router = APIRouter(responses={422: {"model": ErrorResponse}})

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown document"}}


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a document for background ingestion",
)
def upload_document(
    request: UploadRequest,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> UploadResponse:
    document = pipeline.upload(request.filename, request.content, request.metadata)
    return UploadResponse(
        document_id=document.id,
        filename=document.filename,
        status=document.status.value,
    )


@router.get("", response_model=list[DocumentResponse], summary="List documents")
def list_documents(pipeline: IngestPipeline = Depends(get_ingest_pipeline)) -> list[DocumentResponse]:
    return [DocumentResponse.from_entity(document) for document in pipeline.list_documents()]


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    responses=NOT_FOUND,
    summary="Fetch a single document",
)
def get_document(
    document_id: str,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> DocumentResponse:
    return DocumentResponse.from_entity(pipeline.get(document_id))


@router.delete(
    "/{document_id}",
    response_model=DeleteResponse,
    responses=NOT_FOUND,
    summary="Delete a document and its chunks",
)
def delete_document(
    document_id: str,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> DeleteResponse:
    pipeline.delete(document_id)
    return DeleteResponse(document_id=document_id)


__all__ = ["router"]
