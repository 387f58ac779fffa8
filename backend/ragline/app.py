"""FastAPI application setup for Ragline."""

from __future__ import annotations

import time

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ragline.api.dependencies import (
    get_app_settings,
    get_database,
    get_embedding_client,
    get_ingest_pipeline,
    get_runtime_stats,
    get_synthesizer,
    reset_state,
)
from ragline.api.routes_admin import router as admin_router
from ragline.api.routes_documents import router as documents_router
from ragline.api.routes_query import router as query_router
from ragline.core.errors import RaglineError
from ragline.core.logging import configure_logging, get_logger, reset_request_id, set_request_id
from ragline.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from ragline.models.dto import ErrorBody, ErrorResponse
from ragline.utils.ids import new_id
from ragline.utils.time import elapsed_ms

configure_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Count, time and tag every request, labelled by route template."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_id("req")
        token = set_request_id(request_id)
        get_runtime_stats().record_request()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(status_code)).inc()
            REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start)
            logger.info(
                "%s %s - %s",
                request.method,
                request.url.path,
                status_code,
                extra={"ctx_endpoint": endpoint, "ctx_elapsed_ms": elapsed_ms(start)},
            )
            reset_request_id(token)


app = FastAPI(
    title="Ragline",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestMetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://127.0.0.1:3000", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents_router, prefix="/api/documents", tags=["documents"])
app.include_router(query_router, prefix="/api", tags=["query"])
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])


@app.exception_handler(RaglineError)
async def ragline_error_handler(request: Request, exc: RaglineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    body = ErrorResponse(error=ErrorBody(**exc.to_dict()))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    body = ErrorResponse(error=ErrorBody(type="ValidationError", message=message))
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body.model_dump())


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_runtime_stats()
    get_embedding_client()
    get_ingest_pipeline()
    get_synthesizer()


@app.on_event("shutdown")
async def shutdown() -> None:
    reset_state()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
