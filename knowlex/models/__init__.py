"""Knowlex domain models: re-exports all public model classes.

    - project_file.py: persisted files and chunks, parser/chunker output,
      upload input and limits
    - pipeline.py    : queue status snapshot and pipeline events
"""

from __future__ import annotations

from knowlex.models.pipeline import (
    PipelineEvent,
    PipelineEventType,
    QueueStatus,
)
from knowlex.models.project_file import (
    ChunkMetadata,
    FileChunk,
    FileStatus,
    ParseResult,
    ProjectFile,
    TextChunk,
    UploadedFile,
    UploadLimits,
)

__all__ = [
    # project_file
    "ChunkMetadata",
    "FileChunk",
    "FileStatus",
    "ParseResult",
    "ProjectFile",
    "TextChunk",
    "UploadLimits",
    "UploadedFile",
    # pipeline
    "PipelineEvent",
    "PipelineEventType",
    "QueueStatus",
]
