"""Lifecycle controller for project files.

The :class:`ProjectFileService` is the only component that writes project
file state.  It coordinates four collaborators without any of them knowing
about each other:

    1. ParserRegistry -- picks a parser variant and extracts text
    2. TextChunker -- splits the text into overlapping windows
    3. IProjectFileStore -- persists file rows and chunk rows
    4. ProcessingQueue -- schedules per-file work with retries

Status state machine:

    PENDING ──dequeued──→ PROCESSING ──success──→ READY
                               └──retries exhausted──→ FAILED
    FAILED ──retry_file_processing──→ PENDING

Deletion is allowed from any state.  Pausing only removes a not-yet-started
task from the queue; the persisted status stays ``pending`` so the file is
picked up again by :meth:`ProjectFileService.resume_file_processing` or by
startup reconciliation.

Every status change is published to the :class:`EventBroadcaster` as a
``file_status_changed`` event.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import shutil
import uuid
from collections import defaultdict
from collections.abc import Sequence
from pathlib import Path, PurePath

import structlog

from knowlex.interfaces.file_store import IProjectFileStore
from knowlex.models.pipeline import PipelineEvent, PipelineEventType, QueueStatus
from knowlex.models.project_file import (
    ChunkMetadata,
    FileChunk,
    FileStatus,
    ProjectFile,
    UploadedFile,
    UploadLimits,
)
from knowlex.services.ingestion.chunker import TextChunker
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.parser_registry import ParserRegistry
from knowlex.services.ingestion.processing_queue import (
    DEFAULT_PRIORITY,
    RETRY_PRIORITY,
    ProcessingQueue,
    ProcessingTask,
)
from knowlex.utils.errors import (
    DuplicateFileError,
    EmptyContentError,
    ExhaustedRetriesError,
    FileStorageError,
    InvalidStateError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._\- ]+")


def _sanitize_path_component(name: str, fallback: str) -> str:
    """Reduce *name* to a single safe path component."""
    base = PurePath(name.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip().lstrip(".")
    return cleaned or fallback


def _content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class ProjectFileService:
    """Validates uploads, drives per-file processing and owns file status.

    Parameters
    ----------
    store:
        Persistence for file rows and chunk rows.
    queue:
        Processing queue; this service binds itself as its handler.
    parsers:
        Parser dispatch used by :meth:`process_task`.
    chunker:
        Splits extracted text into chunks.
    storage_root:
        Directory under which uploaded originals are written.
    broadcaster:
        Optional event fan-out for ``file_*`` events.
    limits:
        Upload constraints; defaults to :class:`UploadLimits` defaults.
    """

    def __init__(
        self,
        store: IProjectFileStore,
        queue: ProcessingQueue,
        parsers: ParserRegistry,
        chunker: TextChunker,
        storage_root: str | Path,
        broadcaster: EventBroadcaster | None = None,
        limits: UploadLimits | None = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._parsers = parsers
        self._chunker = chunker
        self._storage_root = Path(storage_root)
        self._broadcaster = broadcaster
        self._limits = limits or UploadLimits()
        # Serializes validate-then-store per project for the count and hash checks.
        self._upload_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._queue.bind(self.process_task, self.handle_exhausted)

    @property
    def limits(self) -> UploadLimits:
        return self._limits

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_project_files(
        self,
        project_id: str,
        files: Sequence[UploadedFile],
    ) -> list[ProjectFile]:
        """Validate, store and enqueue a batch of files.

        Every constraint is checked before anything is written, so a
        rejected batch leaves no files, rows or queue entries behind.

        Raises
        ------
        ValidationError
            Empty batch, too many files, a size limit exceeded, an
            unsupported type (:class:`UnsupportedFileTypeError`) or a
            duplicate (:class:`DuplicateFileError`).
        FileStorageError
            Writing a file or inserting its row failed.
        """
        if not project_id or not project_id.strip():
            raise ValidationError("Project id is required")
        if not files:
            raise ValidationError("No files provided")

        created: list[ProjectFile] = []
        async with self._upload_locks[project_id]:
            hashes = await self._validate_upload(project_id, files)
            for upload, digest in zip(files, hashes, strict=True):
                created.append(await self._store_upload(project_id, upload, digest))

        logger.info(
            "files_uploaded",
            project_id=project_id,
            count=len(created),
            total_bytes=sum(f.size for f in created),
        )
        return created

    async def _validate_upload(
        self,
        project_id: str,
        files: Sequence[UploadedFile],
    ) -> list[str]:
        limits = self._limits

        existing = await self._store.list_project_files(project_id)
        if len(existing) + len(files) > limits.max_files_per_project:
            raise ValidationError(
                f"Too many files: project has {len(existing)}, uploading "
                f"{len(files)}, limit is {limits.max_files_per_project}"
            )

        total_size = sum(f.size for f in files)
        if total_size > limits.max_total_size:
            raise ValidationError(
                f"Upload too large: {total_size} bytes exceeds the "
                f"{limits.max_total_size} byte limit per upload"
            )

        for upload in files:
            if upload.size == 0:
                raise ValidationError(f"File {upload.name} is empty")
            if upload.size > limits.max_file_size:
                raise ValidationError(
                    f"File {upload.name} is {upload.size} bytes, exceeding the "
                    f"{limits.max_file_size} byte limit"
                )
            if not self._parsers.is_supported(upload.name):
                raise UnsupportedFileTypeError(
                    f"Unsupported file type: {upload.name}. Supported types: "
                    f"{', '.join(self._parsers.supported_extensions())}"
                )

        hashes: list[str] = []
        seen: dict[str, str] = {}
        for upload in files:
            digest = _content_hash(upload.content)
            if digest in seen:
                raise DuplicateFileError(
                    f"File {upload.name} has the same content as {seen[digest]} "
                    "in this upload"
                )
            duplicate = await self._store.find_file_by_hash(project_id, digest)
            if duplicate is not None:
                raise DuplicateFileError(
                    f"File {upload.name} has the same content as existing file "
                    f"{duplicate.filename}",
                    file_id=duplicate.id,
                )
            seen[digest] = upload.name
            hashes.append(digest)
        return hashes

    async def _store_upload(
        self,
        project_id: str,
        upload: UploadedFile,
        digest: str,
    ) -> ProjectFile:
        file_id = str(uuid.uuid4())
        filename = PurePath(upload.name.replace("\\", "/")).name or upload.name
        file_dir = (
            self._storage_root
            / _sanitize_path_component(project_id, "project")
            / file_id
        )
        file_path = file_dir / _sanitize_path_component(filename, "upload")

        project_file = ProjectFile(
            id=file_id,
            project_id=project_id,
            filename=filename,
            filepath=str(file_path),
            status=FileStatus.PENDING,
            size=upload.size,
            mime_type=self._parsers.mime_type_for(filename),
            content_hash=digest,
        )

        try:
            await asyncio.to_thread(file_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(file_path.write_bytes, upload.content)
            await self._store.create_project_file(project_file)
        except DuplicateFileError:
            await asyncio.to_thread(shutil.rmtree, file_dir, True)
            raise
        except Exception as exc:
            await asyncio.to_thread(shutil.rmtree, file_dir, True)
            logger.error(
                "file_store_failed",
                project_id=project_id,
                filename=filename,
                error=str(exc),
            )
            raise FileStorageError(
                f"Failed to store file {filename}: {exc}", file_id=file_id
            ) from exc

        logger.info(
            "file_uploaded",
            file_id=file_id,
            project_id=project_id,
            filename=filename,
            size=upload.size,
        )
        self._publish(PipelineEventType.FILE_CREATED, project_file)
        self._enqueue(project_file, DEFAULT_PRIORITY)
        return project_file

    # ------------------------------------------------------------------
    # Queue callbacks
    # ------------------------------------------------------------------

    async def process_task(self, task: ProcessingTask) -> None:
        """Parse, chunk and persist one file.  Bound as the queue handler.

        Exceptions propagate so the queue can apply its retry policy.
        """
        project_file = await self._store.get_project_file(task.file_id)
        if project_file is None:
            logger.info("task_file_missing", file_id=task.file_id)
            return

        retrying = project_file.status == FileStatus.PROCESSING and task.retry_count > 0
        if project_file.status != FileStatus.PENDING and not retrying:
            logger.info(
                "task_skipped",
                file_id=task.file_id,
                status=project_file.status.value,
            )
            return

        if not retrying:
            await self._set_status(project_file, FileStatus.PROCESSING)

        result = await asyncio.to_thread(
            self._parsers.parse_file, project_file.filepath, project_file.filename
        )
        text_chunks = self._chunker.chunk(result.content)
        if not text_chunks:
            raise EmptyContentError(
                f"No content could be extracted from {project_file.filename}",
                file_id=project_file.id,
            )

        if await self._store.get_project_file(project_file.id) is None:
            logger.info("file_deleted_during_processing", file_id=project_file.id)
            return

        chunks = [
            FileChunk(
                id=str(uuid.uuid4()),
                file_id=project_file.id,
                content=tc.content,
                chunk_index=index,
                metadata=ChunkMetadata(
                    filename=project_file.filename,
                    chunk_size=len(tc.content),
                    start_offset=tc.start_offset,
                    end_offset=tc.end_offset,
                    parser_metadata=result.metadata,
                    mime_type=result.mime_type,
                ),
            )
            for index, tc in enumerate(text_chunks)
        ]

        # Chunks first, then the count, then the status.
        await self._store.replace_file_chunks(project_file.id, chunks)
        await self._store.update_project_file_chunks(project_file.id, len(chunks))
        await self._set_status(project_file, FileStatus.READY)

        logger.info(
            "file_processed",
            file_id=project_file.id,
            project_id=project_file.project_id,
            chunks=len(chunks),
            attempt=task.retry_count + 1,
        )

    async def handle_exhausted(
        self,
        task: ProcessingTask,
        error: ExhaustedRetriesError,
    ) -> None:
        """Mark the file failed once the queue has given up on it."""
        project_file = await self._store.get_project_file(task.file_id)
        if project_file is None:
            return
        await self._set_status(project_file, FileStatus.FAILED, error=error.message)
        logger.error(
            "file_processing_failed",
            file_id=task.file_id,
            attempts=error.attempts,
            error=error.message,
        )

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def retry_file_processing(self, file_id: str) -> ProjectFile:
        """Reset a failed file to pending and enqueue it at retry priority.

        Raises :class:`InvalidStateError` unless the file is ``failed`` and
        the queue accepts the new task.
        """
        project_file = await self._require_file(file_id)
        if project_file.status != FileStatus.FAILED:
            raise InvalidStateError(
                f"Only failed files can be retried; file is {project_file.status.value}",
                file_id=file_id,
            )
        if self._queue.is_queued(file_id):
            raise InvalidStateError(
                f"File {file_id} is still held by the processing queue",
                file_id=file_id,
            )

        await self._store.delete_file_chunks(file_id)
        await self._store.update_project_file_chunks(file_id, 0)
        await self._set_status(project_file, FileStatus.PENDING)
        if not self._enqueue(project_file, RETRY_PRIORITY):
            # Only a queue that has shut down refuses here; the file stays
            # pending for startup reconciliation.
            raise InvalidStateError(
                f"Processing queue is not accepting work; file {file_id} "
                "will be processed after restart",
                file_id=file_id,
            )
        logger.info("file_retry_requested", file_id=file_id)
        return await self._require_file(file_id)

    async def pause_file_processing(self, file_id: str) -> bool:
        """Remove the file's queued task.  Returns ``True`` if one was removed."""
        await self._require_file(file_id)
        removed = self._queue.remove(file_id)
        logger.info("file_paused", file_id=file_id, removed=removed)
        return removed

    async def resume_file_processing(self, file_id: str) -> bool:
        """Re-enqueue a paused file.  Returns ``False`` if it was already queued.

        A file paused while waiting out a retry delay is still ``processing``
        with nothing queued; it is reset to ``pending`` and resumed as well.
        """
        project_file = await self._require_file(file_id)
        if self._queue.is_queued(file_id):
            return False
        if project_file.status not in (FileStatus.PENDING, FileStatus.PROCESSING):
            raise InvalidStateError(
                f"Only pending files can be resumed; file is {project_file.status.value}",
                file_id=file_id,
            )
        if project_file.status == FileStatus.PROCESSING:
            await self._set_status(project_file, FileStatus.PENDING)
        added = self._enqueue(project_file, DEFAULT_PRIORITY)
        logger.info("file_resumed", file_id=file_id, enqueued=added)
        return added

    async def delete_project_file(self, file_id: str) -> None:
        """Remove the file's task, chunks, stored original and row."""
        project_file = await self._require_file(file_id)

        self._queue.remove(file_id)
        await self._store.delete_file_chunks(file_id)

        file_dir = Path(project_file.filepath).parent
        try:
            await asyncio.to_thread(shutil.rmtree, file_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(
                "file_directory_delete_failed",
                file_id=file_id,
                path=str(file_dir),
                error=str(exc),
            )

        await self._store.delete_project_file(file_id)
        logger.info(
            "file_deleted",
            file_id=file_id,
            project_id=project_file.project_id,
        )
        self._publish(PipelineEventType.FILE_DELETED, project_file)

    async def reconcile_pending_files(self) -> int:
        """Re-enqueue files left pending or mid-processing by a previous run.

        Returns the number of files enqueued.
        """
        stranded = await self._store.list_files_by_status(
            [FileStatus.PENDING, FileStatus.PROCESSING]
        )
        enqueued = 0
        for project_file in stranded:
            if project_file.status == FileStatus.PROCESSING:
                await self._set_status(project_file, FileStatus.PENDING)
            if self._enqueue(project_file, DEFAULT_PRIORITY):
                enqueued += 1

        logger.info("pending_files_reconciled", found=len(stranded), enqueued=enqueued)
        return enqueued

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_project_file(self, file_id: str) -> ProjectFile:
        return await self._require_file(file_id)

    async def list_project_files(self, project_id: str) -> list[ProjectFile]:
        return await self._store.list_project_files(project_id)

    async def get_file_chunks(self, file_id: str) -> list[FileChunk]:
        await self._require_file(file_id)
        return await self._store.get_file_chunks(file_id)

    def get_processing_queue_status(self) -> QueueStatus:
        return self._queue.status()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_file(self, file_id: str) -> ProjectFile:
        project_file = await self._store.get_project_file(file_id)
        if project_file is None:
            raise NotFoundError(f"File {file_id} not found", file_id=file_id)
        return project_file

    def _enqueue(self, project_file: ProjectFile, priority: int) -> bool:
        return self._queue.enqueue(
            ProcessingTask(
                file_id=project_file.id,
                project_id=project_file.project_id,
                file_path=project_file.filepath,
                priority=priority,
            )
        )

    async def _set_status(
        self,
        project_file: ProjectFile,
        status: FileStatus,
        error: str | None = None,
    ) -> None:
        await self._store.update_project_file_status(project_file.id, status, error)
        logger.debug(
            "file_status_changed",
            file_id=project_file.id,
            old_status=project_file.status.value,
            new_status=status.value,
        )
        self._publish(
            PipelineEventType.FILE_STATUS_CHANGED,
            project_file,
            status=status,
            error=error,
        )

    def _publish(
        self,
        event_type: PipelineEventType,
        project_file: ProjectFile,
        *,
        status: FileStatus | None = None,
        error: str | None = None,
    ) -> None:
        if self._broadcaster is None:
            return
        self._broadcaster.publish(
            PipelineEvent(
                event_type=event_type,
                file_id=project_file.id,
                project_id=project_file.project_id,
                status=status or project_file.status,
                error=error,
            )
        )
