"""Abstract base class for project-file persistence.

Defines the operations the lifecycle controller needs from the relational
store.  Only :class:`~knowlex.services.ingestion.project_file_service.
ProjectFileService` calls these methods; the processing queue never touches
persisted state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from knowlex.models.project_file import FileChunk, FileStatus, ProjectFile


class IProjectFileStore(ABC):
    """Contract for persisting project files and their chunks.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    # -- Project files ---------------------------------------------------

    @abstractmethod
    async def create_project_file(self, project_file: ProjectFile) -> ProjectFile:
        """Insert a new file row and return it as stored.

        Raises :class:`~knowlex.utils.errors.DuplicateFileError` if the
        project already holds a row with the same ``content_hash``.
        """

    @abstractmethod
    async def get_project_file(self, file_id: str) -> ProjectFile | None:
        """Return the file row for *file_id*, or ``None`` when unknown."""

    @abstractmethod
    async def list_project_files(self, project_id: str) -> list[ProjectFile]:
        """Return every file in *project_id*, oldest first."""

    @abstractmethod
    async def list_files_by_status(self, statuses: Sequence[FileStatus]) -> list[ProjectFile]:
        """Return files in any of *statuses* across all projects, oldest first."""

    @abstractmethod
    async def find_file_by_hash(self, project_id: str, content_hash: str) -> ProjectFile | None:
        """Return the file in *project_id* whose content hash matches, if any."""

    @abstractmethod
    async def update_project_file_status(
        self,
        file_id: str,
        status: FileStatus,
        error: str | None = None,
    ) -> None:
        """Set *status* and *error* (cleared when ``None``) and touch ``updated_at``."""

    @abstractmethod
    async def update_project_file_chunks(self, file_id: str, chunk_count: int) -> None:
        """Record the number of persisted chunks for *file_id*."""

    @abstractmethod
    async def delete_project_file(self, file_id: str) -> None:
        """Delete the file row (chunk rows cascade)."""

    # -- Chunks ----------------------------------------------------------

    @abstractmethod
    async def create_file_chunk(self, chunk: FileChunk) -> None:
        """Insert a single chunk row."""

    @abstractmethod
    async def replace_file_chunks(self, file_id: str, chunks: Sequence[FileChunk]) -> None:
        """Atomically replace every chunk of *file_id* with *chunks*.

        Either the whole new set is visible afterwards or the previous set is
        left untouched.
        """

    @abstractmethod
    async def get_file_chunks(self, file_id: str) -> list[FileChunk]:
        """Return the chunks of *file_id* ordered by ``chunk_index``."""

    @abstractmethod
    async def count_file_chunks(self, file_id: str) -> int:
        """Return the number of chunk rows stored for *file_id*."""

    @abstractmethod
    async def delete_file_chunks(self, file_id: str) -> None:
        """Delete every chunk row of *file_id*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
