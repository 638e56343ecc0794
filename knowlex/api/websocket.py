"""WebSocket endpoint streaming pipeline events to connected clients.

# ─── HOW THE EVENT STREAM WORKS ───────────────────────────────────────
#
#   Client                                Backend (this file)
#   ──────                                ───────────────────
#   ws = new WebSocket("/ws/events")  →   websocket.accept()
#                                         register_listener(callback)
#                                     ←   queue status snapshot
#                                         ...files are processed...
#                                     ←   {"event_type": "file_status_changed", ...}
#                                     ←   {"event_type": "task_completed", ...}
#   ws.close()                        →   WebSocketDisconnect
#                                         unregister_listener(callback)
#
# Clients may pass ?project_id=... to receive only that project's events
# (queue_empty carries no project and is always delivered).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from knowlex.models.pipeline import PipelineEvent
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.project_file_service import ProjectFileService
from knowlex.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_events(websocket: WebSocket, project_id: str | None = None) -> None:
    """Push every :class:`PipelineEvent` to the client as JSON until it disconnects."""
    broadcaster: EventBroadcaster = websocket.app.state.broadcaster
    service: ProjectFileService = websocket.app.state.file_service

    await websocket.accept()
    _logger.info("websocket_connected", project_id=project_id)

    async def _on_event(event: PipelineEvent) -> None:
        if project_id and event.project_id not in (None, project_id):
            return
        # The socket may close between the check and the send.
        with contextlib.suppress(Exception):
            await websocket.send_json(event.model_dump(mode="json"))

    broadcaster.register_listener(_on_event)

    try:
        snapshot = service.get_processing_queue_status()
        await websocket.send_json(
            {"event_type": "queue_status", **snapshot.model_dump(mode="json")}
        )

        # Blocks until the client disconnects.
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", project_id=project_id)

    finally:
        broadcaster.unregister_listener(_on_event)
        _logger.debug("websocket_listener_cleaned_up", project_id=project_id)
