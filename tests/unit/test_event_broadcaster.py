"""Unit tests for EventBroadcaster listener fan-out."""

from __future__ import annotations

import pytest

from knowlex.models.pipeline import PipelineEvent, PipelineEventType
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster


def _event(file_id: str = "f1") -> PipelineEvent:
    return PipelineEvent(event_type=PipelineEventType.TASK_ADDED, file_id=file_id)


class TestRegistration:
    def test_register_is_idempotent(self) -> None:
        broadcaster = EventBroadcaster()
        listener = lambda event: None  # noqa: E731

        broadcaster.register_listener(listener)
        broadcaster.register_listener(listener)

        assert broadcaster.listener_count == 1

    def test_unregister_stops_delivery(self) -> None:
        broadcaster = EventBroadcaster()
        received: list[PipelineEvent] = []
        broadcaster.register_listener(received.append)
        broadcaster.unregister_listener(received.append)

        broadcaster.publish(_event())

        assert received == []

    def test_unregister_unknown_is_noop(self) -> None:
        EventBroadcaster().unregister_listener(lambda event: None)


class TestDelivery:
    def test_sync_listener_receives_event(self) -> None:
        broadcaster = EventBroadcaster()
        received: list[PipelineEvent] = []
        broadcaster.register_listener(received.append)

        event = _event()
        broadcaster.publish(event)

        assert received == [event]

    @pytest.mark.asyncio
    async def test_async_listener_is_scheduled(self) -> None:
        broadcaster = EventBroadcaster()
        received: list[str] = []

        async def listener(event: PipelineEvent) -> None:
            received.append(event.file_id)

        broadcaster.register_listener(listener)
        broadcaster.publish(_event("a"))
        broadcaster.publish(_event("b"))
        await broadcaster.drain()

        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_listeners_do_not_block_others(self) -> None:
        broadcaster = EventBroadcaster()
        received: list[PipelineEvent] = []

        def broken_sync(event: PipelineEvent) -> None:
            raise RuntimeError("sync boom")

        async def broken_async(event: PipelineEvent) -> None:
            raise RuntimeError("async boom")

        broadcaster.register_listener(broken_sync)
        broadcaster.register_listener(broken_async)
        broadcaster.register_listener(received.append)

        broadcaster.publish(_event())
        await broadcaster.drain()

        assert len(received) == 1

    def test_listener_may_unregister_itself_during_publish(self) -> None:
        broadcaster = EventBroadcaster()
        calls: list[str] = []

        def once(event: PipelineEvent) -> None:
            calls.append("once")
            broadcaster.unregister_listener(once)

        broadcaster.register_listener(once)
        broadcaster.register_listener(lambda event: calls.append("always"))

        broadcaster.publish(_event())
        broadcaster.publish(_event())

        assert calls == ["once", "always", "always"]
