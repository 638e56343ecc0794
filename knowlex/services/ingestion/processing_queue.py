"""Bounded-concurrency priority queue for per-file processing tasks.

# ─── HOW THE QUEUE SCHEDULES WORK ─────────────────────────────────────
#
#   enqueue() ──→ pending (sorted by -priority, sequence) ──→ scheduler
#                                                              │
#              ┌───────────── up to max_concurrent ────────────┘
#              ▼
#         handler(task) ──ok──→ task_completed
#              │
#              └──error──→ retry_count < max_retries?
#                            yes → priority - 1, wait backoff_base * 2**retry_count,
#                                  then back into pending
#                            no  → task_failed + on_exhausted(task, error)
#
# The scheduler is a single asyncio task that sleeps on an Event.  It is
# woken whenever something is enqueued, a running slot frees up, a
# delayed retry comes due, or a task is removed.  It exits once nothing
# is pending, running, waiting for a retry or inside on_exhausted, and
# publishes queue_empty.  A task leaves the running set before
# on_exhausted is awaited, so the hook (or a caller reacting to it) can
# enqueue the same file again.
#
# All bookkeeping happens synchronously between await points, so no locks
# are needed.  In-flight tasks are never cancelled.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from knowlex.models.pipeline import PipelineEvent, PipelineEventType, QueueStatus
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.utils.errors import ExhaustedRetriesError
from knowlex.utils.logging import file_log_context

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_PRIORITY = 10
RETRY_PRIORITY = 15

TaskHandler = Callable[["ProcessingTask"], Awaitable[None]]
ExhaustedHandler = Callable[["ProcessingTask", ExhaustedRetriesError], Awaitable[None]]


@dataclass
class ProcessingTask:
    """A unit of queued work: process one stored file.

    ``retry_count`` and ``priority`` are mutated by the queue on failure;
    ``sequence`` is assigned on every insertion and breaks priority ties
    in FIFO order.
    """

    file_id: str
    project_id: str
    file_path: str
    priority: int = DEFAULT_PRIORITY
    retry_count: int = 0
    created_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    sequence: int = 0


class ProcessingQueue:
    """Runs bound handler calls for queued tasks under a concurrency cap.

    Parameters
    ----------
    max_concurrent:
        Maximum number of handler calls in flight at once (default 2).
    max_retries:
        Retries allowed after the first failed attempt (default 3), so a
        task that always fails is attempted ``max_retries + 1`` times.
    backoff_base:
        Seconds per backoff unit; retry *n* waits ``backoff_base * 2**n``.
    broadcaster:
        Optional :class:`EventBroadcaster` for task lifecycle events.
    """

    def __init__(
        self,
        max_concurrent: int = 2,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        broadcaster: EventBroadcaster | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        if backoff_base < 0:
            raise ValueError(f"backoff_base must be non-negative, got {backoff_base}")

        self._max_concurrent = max_concurrent
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._broadcaster = broadcaster

        self._handler: TaskHandler | None = None
        self._on_exhausted: ExhaustedHandler | None = None

        self._pending: list[ProcessingTask] = []
        self._running: dict[str, asyncio.Task] = {}
        self._delayed: dict[str, tuple[ProcessingTask, asyncio.TimerHandle]] = {}
        # Exhausted tasks whose on_exhausted hook is still running.
        self._finalizing: set[str] = set()
        self._sequence = itertools.count()

        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._runner: asyncio.Task | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def bind(self, handler: TaskHandler, on_exhausted: ExhaustedHandler | None = None) -> None:
        """Set the coroutine that processes each task and the terminal-failure hook."""
        self._handler = handler
        self._on_exhausted = on_exhausted

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def enqueue(self, task: ProcessingTask) -> bool:
        """Add *task* to the pending list.

        Returns ``False`` when a task for the same file is already pending,
        running or waiting for a retry.  If the live task is pending and
        *task* carries a higher priority, the pending task's priority is
        raised in place (keeping its position among equal priorities).
        """
        if self._handler is None:
            raise RuntimeError("ProcessingQueue.bind() must be called before enqueue()")
        if self._closed:
            logger.warning("enqueue_after_shutdown", file_id=task.file_id)
            return False

        existing = self._find_pending(task.file_id)
        if existing is not None:
            if task.priority > existing.priority:
                existing.priority = task.priority
                self._sort_pending()
                logger.debug(
                    "task_priority_raised",
                    file_id=task.file_id,
                    priority=task.priority,
                )
            return False
        if task.file_id in self._running or task.file_id in self._delayed:
            logger.debug("task_already_live", file_id=task.file_id)
            return False

        self._insert(task)
        logger.info(
            "task_added",
            file_id=task.file_id,
            priority=task.priority,
            pending=len(self._pending),
        )
        self._publish(PipelineEventType.TASK_ADDED, task)
        return True

    def remove(self, file_id: str) -> bool:
        """Drop a pending task or cancel a scheduled retry for *file_id*.

        Running tasks are left alone; returns ``True`` only if something
        was removed.
        """
        task = self._find_pending(file_id)
        if task is not None:
            self._pending.remove(task)
        elif file_id in self._delayed:
            task, handle = self._delayed.pop(file_id)
            handle.cancel()
        else:
            return False

        logger.info("task_removed", file_id=file_id)
        self._publish(PipelineEventType.TASK_REMOVED, task)
        self._wakeup.set()
        return True

    def status(self) -> QueueStatus:
        pending = len(self._pending)
        processing = len(self._running)
        return QueueStatus(
            pending=pending,
            processing=processing,
            total=pending + processing,
            scheduled_retries=len(self._delayed),
        )

    def is_queued(self, file_id: str) -> bool:
        """Return ``True`` if *file_id* is pending, running or awaiting a retry."""
        return (
            self._find_pending(file_id) is not None
            or file_id in self._running
            or file_id in self._delayed
        )

    def pending_file_ids(self) -> list[str]:
        """Return pending file ids in dispatch order."""
        return [t.file_id for t in self._pending]

    async def join(self) -> None:
        """Wait until the queue is idle, including delayed retries and exhausted hooks."""
        await self._idle.wait()

    async def shutdown(self) -> None:
        """Stop accepting work, drop pending and delayed tasks, await in-flight ones."""
        self._closed = True
        self._pending.clear()
        for _, handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)
        self._wakeup.set()
        if self._runner is not None:
            await self._runner
        logger.info("processing_queue_shutdown")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _insert(self, task: ProcessingTask) -> None:
        task.sequence = next(self._sequence)
        self._pending.append(task)
        self._sort_pending()
        self._wakeup.set()
        self._ensure_runner()

    def _sort_pending(self) -> None:
        self._pending.sort(key=lambda t: (-t.priority, t.sequence))

    def _find_pending(self, file_id: str) -> ProcessingTask | None:
        return next((t for t in self._pending if t.file_id == file_id), None)

    def _ensure_runner(self) -> None:
        if self._runner is None or self._runner.done():
            self._idle.clear()
            self._runner = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            while self._pending and len(self._running) < self._max_concurrent:
                task = self._pending.pop(0)
                self._running[task.file_id] = asyncio.create_task(self._execute(task))

            if not (self._pending or self._running or self._delayed or self._finalizing):
                break

            self._wakeup.clear()
            await self._wakeup.wait()

        # Cleared before publishing so a listener that enqueues starts a new runner.
        self._runner = None
        self._idle.set()
        logger.info("queue_empty")
        self._publish(PipelineEventType.QUEUE_EMPTY)

    async def _execute(self, task: ProcessingTask) -> None:
        attempt = task.retry_count + 1
        logger.info(
            "task_started",
            file_id=task.file_id,
            attempt=attempt,
            priority=task.priority,
        )
        exhausted: ExhaustedRetriesError | None = None
        try:
            with file_log_context(task.file_id, task.project_id):
                await self._handler(task)  # type: ignore[misc]
        except Exception as exc:
            exhausted = self._handle_failure(task, exc)
        else:
            logger.info("task_completed", file_id=task.file_id, attempt=attempt)
            self._publish(PipelineEventType.TASK_COMPLETED, task, attempt=attempt)
        finally:
            self._running.pop(task.file_id, None)
            self._wakeup.set()

        # The slot is released first so the hook may re-enqueue the same file.
        if exhausted is not None:
            self._finalizing.add(task.file_id)
            try:
                await self._notify_exhausted(task, exhausted)
            finally:
                self._finalizing.discard(task.file_id)
                self._wakeup.set()

    def _handle_failure(
        self, task: ProcessingTask, exc: Exception
    ) -> ExhaustedRetriesError | None:
        """Schedule a retry, or return the terminal error once retries run out."""
        attempt = task.retry_count + 1

        if self._closed:
            # Left in its persisted state; startup reconciliation picks it up.
            logger.warning("task_dropped_on_shutdown", file_id=task.file_id, error=str(exc))
            return None

        if task.retry_count < self._max_retries:
            task.retry_count += 1
            task.priority = max(0, task.priority - 1)
            delay = self._backoff_base * 2**task.retry_count
            handle = asyncio.get_running_loop().call_later(
                delay, self._requeue_delayed, task.file_id
            )
            self._delayed[task.file_id] = (task, handle)
            logger.warning(
                "task_retry_scheduled",
                file_id=task.file_id,
                attempt=attempt,
                retry_count=task.retry_count,
                delay_seconds=delay,
                error=str(exc),
            )
            return None

        error = ExhaustedRetriesError(
            f"Processing failed after {attempt} attempts: {exc}",
            file_id=task.file_id,
            attempts=attempt,
            last_error=exc,
        )
        logger.error(
            "task_failed",
            file_id=task.file_id,
            attempts=attempt,
            error=str(exc),
        )
        self._publish(
            PipelineEventType.TASK_FAILED, task, error=str(error), attempt=attempt
        )
        return error

    async def _notify_exhausted(
        self, task: ProcessingTask, error: ExhaustedRetriesError
    ) -> None:
        if self._on_exhausted is None:
            return
        try:
            await self._on_exhausted(task, error)
        except Exception as hook_exc:
            logger.error(
                "exhausted_handler_error",
                file_id=task.file_id,
                error=str(hook_exc),
            )

    def _requeue_delayed(self, file_id: str) -> None:
        entry = self._delayed.pop(file_id, None)
        if entry is None or self._closed:
            return
        task, _ = entry
        logger.debug("task_requeued", file_id=file_id, retry_count=task.retry_count)
        self._insert(task)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _publish(
        self,
        event_type: PipelineEventType,
        task: ProcessingTask | None = None,
        *,
        error: str | None = None,
        attempt: int | None = None,
    ) -> None:
        if self._broadcaster is None:
            return
        self._broadcaster.publish(
            PipelineEvent(
                event_type=event_type,
                file_id=task.file_id if task else None,
                project_id=task.project_id if task else None,
                error=error,
                attempt=attempt,
            )
        )
