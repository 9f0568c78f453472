"""FastAPI API routes for ragingest.

Provides REST endpoints for document upload, live progress (SSE), progress
snapshots, listing, deletion and health checks.  Service dependencies are
resolved from ``app.state`` via FastAPI's ``Depends`` using the
``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents/upload              POST    Upload a document → 202 + id
# /api/v1/documents/{id}/progress       GET     Server-Sent Events progress
# /api/v1/documents/{id}/status         GET     Current progress snapshot
# /api/v1/documents                     GET     Recent records (+ stats)
# /api/v1/documents/{id}                DELETE  Delete document and chunks
# /api/v1/health                        GET     Health check + providers
# /ws/documents/{id}/progress           WS      Progress over WebSocket
#                                               (mounted in main.py)
#
# DEPENDENCY INJECTION PATTERN:
# Each route function declares its dependencies as type-annotated params.
# FastAPI resolves these via Depends() which calls helper functions that
# read from app.state (populated at startup in main.py's _build_all).
#
# The calling user comes from the X-User-Id header, which an upstream
# authentication layer is expected to set ("anonymous" when absent).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from ragingest import __version__
from ragingest.api.schemas import (
    DeleteResponse,
    DocumentListResponse,
    ErrorResponse,
    HealthResponse,
    ProgressStatusResponse,
    UploadResponse,
)
from ragingest.api.sse import progress_event_response
from ragingest.services.document_service import MAX_LIST_LIMIT, DocumentService
from ragingest.services.progress_stream import ProgressStreamServer
from ragingest.utils.errors import ValidationError
from ragingest.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

# The multipart parser has already spooled the body by the time the handler
# runs.  Reading it back in 64 KB pieces caps how much of an oversized file
# is copied into process memory before the 413.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_ANONYMOUS_USER = "anonymous"


# ---------------------------------------------------------------------------
# Dependencies (populated on app.state by main._build_all)
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


def _get_progress_stream(request: Request) -> ProgressStreamServer:
    return request.app.state.progress_stream


def _get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    return (x_user_id or "").strip() or _ANONYMOUS_USER


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
ProgressStreamDep = Annotated[ProgressStreamServer, Depends(_get_progress_stream)]
UserIdDep = Annotated[str, Depends(_get_user_id)]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    status_code=202,
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a markdown, JSON or text document for ingestion",
)
async def upload_document(
    file: UploadFile,
    service: DocumentServiceDep,
    user_id: UserIdDep,
) -> UploadResponse:
    """Accept a document and start processing it in the background."""
    limit = service.max_upload_bytes
    pieces: list[bytes] = []
    total_size = 0
    while True:
        piece = await file.read(_UPLOAD_CHUNK_SIZE)
        if not piece:
            break
        total_size += len(piece)
        if total_size > limit:
            raise HTTPException(
                status_code=413,
                detail=(
                    f"File too large: >{limit // (1024 * 1024)} MB. "
                    f"Maximum: {limit} bytes."
                ),
            )
        pieces.append(piece)
    data = b"".join(pieces)
    del pieces

    filename = file.filename or "upload"
    try:
        accepted = await service.accept_upload(
            data,
            filename,
            user_id=user_id,
            content_type=file.content_type,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    return UploadResponse(
        document_id=accepted.document_id,
        filename=accepted.filename,
        file_type=accepted.file_type,
    )


@router.get(
    "/documents/{document_id}/progress",
    responses={404: {"model": ErrorResponse}},
    summary="Stream processing progress as Server-Sent Events",
)
async def stream_progress(document_id: str, stream: ProgressStreamDep) -> StreamingResponse:
    if not stream.exists(document_id):
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return progress_event_response(stream, document_id)


@router.get(
    "/documents/{document_id}/status",
    response_model=ProgressStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Current processing progress snapshot",
)
async def get_progress_status(
    document_id: str,
    service: DocumentServiceDep,
) -> ProgressStatusResponse:
    state = service.get_progress(document_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return ProgressStatusResponse(
        document_id=state.document_id,
        filename=state.filename,
        stage=state.stage,
        progress=state.progress,
        status=state.status,
        error=state.error,
        updated_at=state.updated_at,
    )


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List the caller's recently processed documents",
)
async def list_documents(
    service: DocumentServiceDep,
    user_id: UserIdDep,
    limit: Annotated[int, Query(ge=1, le=MAX_LIST_LIMIT)] = 10,
    stats: bool = False,
) -> DocumentListResponse:
    records = await service.list_documents(user_id, limit)
    summary = await service.get_stats(user_id) if stats else None
    return DocumentListResponse(documents=records, total=len(records), stats=summary)


@router.delete(
    "/documents/{document_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document and all of its chunks",
)
async def delete_document(
    document_id: str,
    service: DocumentServiceDep,
    user_id: UserIdDep,
) -> DeleteResponse:
    deleted = await service.delete_document(document_id, user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    _logger.info("document_delete_requested", document_id=document_id, user_id=user_id)
    return DeleteResponse(document_id=document_id)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is not None:
        providers["active_jobs"] = supervisor.active_count

    status = "healthy" if providers.get("embedding", False) else "degraded"
    return HealthResponse(status=status, version=__version__, providers=providers)
