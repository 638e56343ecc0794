"""Project file data models for the Knowlex ingestion pipeline.

Defines Pydantic v2 models for persisted project files, their chunks, parser
output, chunker output and upload input.  Persisted models are frozen; the
lifecycle controller produces updated copies via ``model_copy(update={...})``
and the store re-reads rows after every mutation.

Status state machine (owned by ProjectFileService):

    PENDING ──dequeued──→ PROCESSING ──success──→ READY
                               └──retries exhausted──→ FAILED
    FAILED ──manual retry──→ PENDING
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# FileStatus: persisted processing state of a project file.
# ---------------------------------------------------------------------------
class FileStatus(str, Enum):  # noqa: UP042  (StrEnum requires Python 3.11+)
    """Processing status of a :class:`ProjectFile`."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# ProjectFile: the persisted record for an uploaded document.
# ---------------------------------------------------------------------------
class ProjectFile(BaseModel):
    """A document uploaded to a project and tracked through ingestion."""

    model_config = ConfigDict(frozen=True)

    id: str
    project_id: str
    filename: str
    # Absolute or storage-relative path of the stored original.
    filepath: str
    status: FileStatus = FileStatus.PENDING
    # Set only after every chunk of the current generation is persisted.
    chunk_count: int = Field(default=0, ge=0)
    size: int = Field(ge=0)
    mime_type: str = "application/octet-stream"
    # SHA-256 hex digest of the original bytes; duplicate detection key.
    content_hash: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    # User-visible failure reason; never a stack trace.
    error: str | None = None


# ---------------------------------------------------------------------------
# FileChunk: one persisted segment of extracted text.
# ---------------------------------------------------------------------------
class ChunkMetadata(BaseModel):
    """Provenance stored alongside each chunk."""

    model_config = ConfigDict(frozen=True)

    filename: str = ""
    chunk_size: int = Field(default=0, ge=0)
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    parser_metadata: dict[str, Any] = Field(default_factory=dict)
    mime_type: str = "application/octet-stream"


class FileChunk(BaseModel):
    """A bounded substring of a file's extracted text, ready for indexing."""

    model_config = ConfigDict(frozen=True)

    id: str
    file_id: str
    content: str
    chunk_index: int = Field(ge=0)
    metadata: ChunkMetadata


# ---------------------------------------------------------------------------
# Parser / chunker value objects
# ---------------------------------------------------------------------------
class ParseResult(BaseModel):
    """Text extracted from a file by a parser variant."""

    model_config = ConfigDict(frozen=True)

    content: str
    mime_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class TextChunk(BaseModel):
    """A chunker window: trimmed content plus its untrimmed source range."""

    model_config = ConfigDict(frozen=True)

    content: str
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Upload input
# ---------------------------------------------------------------------------
class UploadedFile(BaseModel):
    """A file submitted for upload: original name plus raw bytes."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    mime_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class UploadLimits(BaseModel):
    """Constraints checked before an upload batch touches disk or database."""

    model_config = ConfigDict(frozen=True)

    max_files_per_project: int = Field(default=100, gt=0)
    max_file_size: int = Field(default=50 * 1024 * 1024, gt=0)
    max_total_size: int = Field(default=200 * 1024 * 1024, gt=0)
