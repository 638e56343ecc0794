"""Processing-queue and notification models.

``QueueStatus`` is the snapshot returned by the queue; ``PipelineEvent`` is
the message pushed to subscribers (WebSocket clients, the CLI, tests) by the
:class:`~knowlex.services.ingestion.event_broadcaster.EventBroadcaster`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from knowlex.models.project_file import FileStatus


class PipelineEventType(str, Enum):  # noqa: UP042  (StrEnum requires Python 3.11+)
    """Kinds of events published during ingestion.

    The first five come from the processing queue; the ``file_*`` events
    come from the lifecycle controller.
    """

    TASK_ADDED = "task_added"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_REMOVED = "task_removed"
    QUEUE_EMPTY = "queue_empty"
    FILE_CREATED = "file_created"
    FILE_STATUS_CHANGED = "file_status_changed"
    FILE_DELETED = "file_deleted"


class PipelineEvent(BaseModel):
    """A best-effort, in-process notification about queue or file state."""

    model_config = ConfigDict(frozen=True)

    event_type: PipelineEventType
    file_id: str | None = None
    project_id: str | None = None
    status: FileStatus | None = None
    error: str | None = None
    # 1-based attempt number for task events.
    attempt: int | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class QueueStatus(BaseModel):
    """Point-in-time counts for the processing queue."""

    model_config = ConfigDict(frozen=True)

    pending: int = Field(default=0, ge=0)
    processing: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    # Failed tasks waiting out their backoff delay (not counted as pending).
    scheduled_retries: int = Field(default=0, ge=0)
