"""FastAPI routes for project file ingestion.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  Domain errors raised by the
service are translated to HTTP status codes by
:class:`~knowlex.api.middleware.ErrorHandlingMiddleware`.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/projects/{project_id}/files        POST    Upload files (multipart)
# /api/v1/projects/{project_id}/files        GET     List a project's files
# /api/v1/files/{file_id}                    GET     Get one file
# /api/v1/files/{file_id}                    DELETE  Delete file, chunks, original
# /api/v1/files/{file_id}/chunks             GET     Stored chunks, in order
# /api/v1/files/{file_id}/retry              POST    Re-process a failed file
# /api/v1/files/{file_id}/pause              POST    Drop a queued task
# /api/v1/files/{file_id}/resume             POST    Re-enqueue a paused file
# /api/v1/queue/status                       GET     Queue counts
# /api/v1/health                             GET     Health check
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, Request, UploadFile

from knowlex.api.schemas import (
    ChunkListResponse,
    ErrorResponse,
    FileActionResponse,
    FileChunkResponse,
    FileListResponse,
    HealthResponse,
    ProjectFileResponse,
    QueueStatusResponse,
    UploadResponse,
)
from knowlex.models.project_file import UploadedFile
from knowlex.services.ingestion.parser_registry import ParserRegistry
from knowlex.services.ingestion.project_file_service import ProjectFileService
from knowlex.utils.errors import ValidationError
from knowlex.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# All routes in this file are prefixed with /api/v1.
router = APIRouter(prefix="/api/v1")

_UPLOAD_CHUNK_SIZE = 64 * 1024

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_file_service(request: Request) -> ProjectFileService:
    return request.app.state.file_service


def _get_parser_registry(request: Request) -> ParserRegistry:
    return request.app.state.parser_registry


FileServiceDep = Annotated[ProjectFileService, Depends(_get_file_service)]
ParserRegistryDep = Annotated[ParserRegistry, Depends(_get_parser_registry)]


async def _read_upload(upload: UploadFile, max_size: int) -> UploadedFile:
    """Buffer *upload* in chunks, rejecting it as soon as it exceeds *max_size*."""
    name = upload.filename or "upload"
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await upload.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise ValidationError(
                f"File {name} exceeds the {max_size} byte limit"
            )
        chunks.append(chunk)
    return UploadedFile(name=name, content=b"".join(chunks), mime_type=upload.content_type)


# ---------------------------------------------------------------------------
# Project files
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/files",
    response_model=UploadResponse,
    status_code=201,
    responses=_ERROR_RESPONSES,
    summary="Upload one or more files to a project",
)
async def upload_files(
    project_id: str,
    service: FileServiceDep,
    files: Annotated[list[UploadFile], File(description="Files to ingest")],
) -> UploadResponse:
    """Validate and store the files; processing continues in the background."""
    uploads = [await _read_upload(f, service.limits.max_file_size) for f in files]
    created = await service.upload_project_files(project_id, uploads)
    return UploadResponse(
        project_id=project_id,
        files=[ProjectFileResponse.from_model(f) for f in created],
    )


@router.get(
    "/projects/{project_id}/files",
    response_model=FileListResponse,
    summary="List a project's files",
)
async def list_files(project_id: str, service: FileServiceDep) -> FileListResponse:
    files = await service.list_project_files(project_id)
    return FileListResponse(
        project_id=project_id,
        files=[ProjectFileResponse.from_model(f) for f in files],
        total=len(files),
    )


# ---------------------------------------------------------------------------
# Single file
# ---------------------------------------------------------------------------


@router.get(
    "/files/{file_id}",
    response_model=ProjectFileResponse,
    responses=_ERROR_RESPONSES,
    summary="Get a file's status",
)
async def get_file(file_id: str, service: FileServiceDep) -> ProjectFileResponse:
    return ProjectFileResponse.from_model(await service.get_project_file(file_id))


@router.get(
    "/files/{file_id}/chunks",
    response_model=ChunkListResponse,
    responses=_ERROR_RESPONSES,
    summary="Get a file's stored chunks",
)
async def get_file_chunks(file_id: str, service: FileServiceDep) -> ChunkListResponse:
    chunks = await service.get_file_chunks(file_id)
    return ChunkListResponse(
        file_id=file_id,
        chunks=[FileChunkResponse.from_model(c) for c in chunks],
        total=len(chunks),
    )


@router.post(
    "/files/{file_id}/retry",
    response_model=ProjectFileResponse,
    responses=_ERROR_RESPONSES,
    summary="Re-process a failed file",
)
async def retry_file(file_id: str, service: FileServiceDep) -> ProjectFileResponse:
    return ProjectFileResponse.from_model(await service.retry_file_processing(file_id))


@router.post(
    "/files/{file_id}/pause",
    response_model=FileActionResponse,
    responses=_ERROR_RESPONSES,
    summary="Remove a file's queued task",
)
async def pause_file(file_id: str, service: FileServiceDep) -> FileActionResponse:
    applied = await service.pause_file_processing(file_id)
    return FileActionResponse(file_id=file_id, action="pause", applied=applied)


@router.post(
    "/files/{file_id}/resume",
    response_model=FileActionResponse,
    responses=_ERROR_RESPONSES,
    summary="Re-enqueue a paused file",
)
async def resume_file(file_id: str, service: FileServiceDep) -> FileActionResponse:
    applied = await service.resume_file_processing(file_id)
    return FileActionResponse(file_id=file_id, action="resume", applied=applied)


@router.delete(
    "/files/{file_id}",
    response_model=FileActionResponse,
    responses=_ERROR_RESPONSES,
    summary="Delete a file, its chunks and its stored original",
)
async def delete_file(file_id: str, service: FileServiceDep) -> FileActionResponse:
    await service.delete_project_file(file_id)
    return FileActionResponse(file_id=file_id, action="delete", applied=True)


# ---------------------------------------------------------------------------
# Queue / health
# ---------------------------------------------------------------------------


@router.get(
    "/queue/status",
    response_model=QueueStatusResponse,
    summary="Processing queue counts",
)
async def queue_status(service: FileServiceDep) -> QueueStatusResponse:
    status = service.get_processing_queue_status()
    return QueueStatusResponse(**status.model_dump())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(
    request: Request,
    service: FileServiceDep,
    parsers: ParserRegistryDep,
) -> HealthResponse:
    status = service.get_processing_queue_status()
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        store=request.app.state.store.get_provider_name(),
        supported_extensions=parsers.supported_extensions(),
        queue=QueueStatusResponse(**status.model_dump()),
    )
