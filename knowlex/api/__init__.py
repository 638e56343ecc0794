"""Knowlex API layer: routes, schemas, WebSocket, and middleware."""

from knowlex.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from knowlex.api.routes import router
from knowlex.api.schemas import (
    ErrorResponse,
    FileListResponse,
    HealthResponse,
    ProjectFileResponse,
    QueueStatusResponse,
    UploadResponse,
)
from knowlex.api.websocket import websocket_events

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_events",
    "ErrorResponse",
    "FileListResponse",
    "HealthResponse",
    "ProjectFileResponse",
    "QueueStatusResponse",
    "UploadResponse",
]
