"""ragingest API layer: routes, schemas, SSE, WebSocket, and middleware."""

from ragingest.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from ragingest.api.routes import router
from ragingest.api.schemas import (
    DeleteResponse,
    DocumentListResponse,
    ErrorResponse,
    HealthResponse,
    ProgressStatusResponse,
    UploadResponse,
)
from ragingest.api.websocket import websocket_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_progress",
    "DeleteResponse",
    "DocumentListResponse",
    "ErrorResponse",
    "HealthResponse",
    "ProgressStatusResponse",
    "UploadResponse",
]
