"""In-process pipeline event fan-out with callback-based listeners.

# ─── HOW EVENT BROADCASTING WORKS ─────────────────────────────────────
#
# Observer pattern:
#
#   ProcessingQueue    ──publish()──→ EventBroadcaster ──callback()──→ WebSocket handler
#   ProjectFileService ──publish()──→                  ──callback()──→ CLI --wait
#
#   - publish() is synchronous so the queue can call it between await
#     points without yielding.
#   - Sync callbacks run inline.  Async callbacks are scheduled as tasks
#     on the running loop; the broadcaster holds a reference until each
#     task finishes.
#   - Listener errors are caught and logged; one broken listener can't
#     block the pipeline or starve the others.
#   - Delivery is best-effort and in-process only.  Nothing is persisted.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from knowlex.models.pipeline import PipelineEvent
from knowlex.utils.logging import get_logger

EventListener = Callable[[PipelineEvent], Awaitable[Any] | Any]


class EventBroadcaster:
    """Publishes :class:`PipelineEvent` objects to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._pending: set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def register_listener(self, callback: EventListener) -> None:
        """Add *callback*; registering the same callback twice is a no-op."""
        if callback not in self._listeners:
            self._listeners.append(callback)
            self._logger.debug(
                "listener_registered", total_listeners=len(self._listeners)
            )

    def unregister_listener(self, callback: EventListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered", remaining_listeners=len(self._listeners)
            )

    def publish(self, event: PipelineEvent) -> None:
        """Deliver *event* to every listener registered right now."""
        for callback in list(self._listeners):
            try:
                result = callback(event)
            except Exception as exc:
                self._log_listener_error(callback, event, exc)
                continue

            if asyncio.iscoroutine(result):
                task = asyncio.get_running_loop().create_task(result)
                self._pending.add(task)
                task.add_done_callback(
                    lambda t, cb=callback, ev=event: self._on_task_done(t, cb, ev)
                )

    async def drain(self) -> None:
        """Wait for every scheduled async listener call to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_task_done(
        self, task: asyncio.Task, callback: EventListener, event: PipelineEvent
    ) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log_listener_error(callback, event, exc)

    def _log_listener_error(
        self, callback: EventListener, event: PipelineEvent, exc: BaseException
    ) -> None:
        self._logger.warning(
            "listener_callback_error",
            event_type=event.event_type.value,
            file_id=event.file_id,
            error=str(exc),
            callback=getattr(callback, "__name__", repr(callback)),
        )
