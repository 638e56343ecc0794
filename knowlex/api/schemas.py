"""Pydantic request/response schemas for the Knowlex API.

Defines the public contract for every REST endpoint: upload, listing,
chunk retrieval, file actions, queue status and health.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# Domain models (knowlex.models) are internal; the API converts them into
# these response models so storage details (content hash, absolute file
# paths) never leak to clients.  Convention: response schemas end with
# "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from knowlex.models.project_file import FileChunk, FileStatus, ProjectFile


class ProjectFileResponse(BaseModel):
    """A project file as exposed over HTTP."""

    id: str
    project_id: str
    filename: str
    status: FileStatus
    chunk_count: int = Field(ge=0)
    size: int = Field(ge=0)
    mime_type: str
    created_at: datetime
    updated_at: datetime
    error: str | None = None

    @classmethod
    def from_model(cls, project_file: ProjectFile) -> ProjectFileResponse:
        return cls(
            id=project_file.id,
            project_id=project_file.project_id,
            filename=project_file.filename,
            status=project_file.status,
            chunk_count=project_file.chunk_count,
            size=project_file.size,
            mime_type=project_file.mime_type,
            created_at=project_file.created_at,
            updated_at=project_file.updated_at,
            error=project_file.error,
        )


class FileListResponse(BaseModel):
    """Files belonging to one project."""

    project_id: str
    files: list[ProjectFileResponse] = Field(default_factory=list)
    total: int = 0


class UploadResponse(BaseModel):
    """Files accepted by an upload, all initially ``pending``."""

    project_id: str
    files: list[ProjectFileResponse] = Field(default_factory=list)


class FileChunkResponse(BaseModel):
    """One stored chunk of a file's extracted text."""

    id: str
    chunk_index: int
    content: str
    start_offset: int
    end_offset: int
    mime_type: str
    parser_metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_model(cls, chunk: FileChunk) -> FileChunkResponse:
        return cls(
            id=chunk.id,
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            start_offset=chunk.metadata.start_offset,
            end_offset=chunk.metadata.end_offset,
            mime_type=chunk.metadata.mime_type,
            parser_metadata=chunk.metadata.parser_metadata,
        )


class ChunkListResponse(BaseModel):
    file_id: str
    chunks: list[FileChunkResponse] = Field(default_factory=list)
    total: int = 0


class FileActionResponse(BaseModel):
    """Result of a pause / resume / delete request."""

    file_id: str
    action: str
    applied: bool


class QueueStatusResponse(BaseModel):
    pending: int
    processing: int
    total: int
    scheduled_retries: int = 0


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    store: str
    supported_extensions: list[str] = Field(default_factory=list)
    queue: QueueStatusResponse


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
