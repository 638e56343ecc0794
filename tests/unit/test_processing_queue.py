"""Unit tests for ProcessingQueue: concurrency cap, ordering, retries, removal."""

from __future__ import annotations

import asyncio

import pytest
import structlog

from knowlex.models.pipeline import PipelineEvent, PipelineEventType
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.processing_queue import ProcessingQueue, ProcessingTask
from knowlex.utils.errors import ExhaustedRetriesError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _task(file_id: str, priority: int = 10) -> ProcessingTask:
    return ProcessingTask(
        file_id=file_id,
        project_id="p1",
        file_path=f"/tmp/{file_id}",
        priority=priority,
    )


class _Recorder:
    """Handler that records call order and can be held open with a gate."""

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.gate = gate
        self.order: list[str] = []
        self.running = 0
        self.max_running = 0

    async def __call__(self, task: ProcessingTask) -> None:
        self.order.append(task.file_id)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0.01)
        finally:
            self.running -= 1


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_cap(self) -> None:
        queue = ProcessingQueue(max_concurrent=2)
        handler = _Recorder()
        queue.bind(handler)

        for i in range(7):
            queue.enqueue(_task(f"f{i}"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert handler.max_running == 2
        assert sorted(handler.order) == [f"f{i}" for i in range(7)]

    @pytest.mark.asyncio
    async def test_status_counts(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=2)
        queue.bind(_Recorder(gate))

        for i in range(5):
            queue.enqueue(_task(f"f{i}"))
        await asyncio.sleep(0.02)

        status = queue.status()
        assert status.processing == 2
        assert status.pending == 3
        assert status.total == 5

        gate.set()
        await asyncio.wait_for(queue.join(), timeout=5)
        assert queue.status().total == 0

    def test_enqueue_requires_bound_handler(self) -> None:
        with pytest.raises(RuntimeError):
            ProcessingQueue().enqueue(_task("f1"))

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_concurrent": 0}, {"max_retries": -1}, {"backoff_base": -0.5}],
    )
    def test_rejects_invalid_configuration(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            ProcessingQueue(**kwargs)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_higher_priority_dequeued_first(self) -> None:
        queue = ProcessingQueue(max_concurrent=1)
        handler = _Recorder()
        queue.bind(handler)

        # All enqueued before the scheduler gets a chance to run.
        queue.enqueue(_task("low", priority=1))
        queue.enqueue(_task("high", priority=20))
        queue.enqueue(_task("mid", priority=10))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert handler.order == ["high", "mid", "low"]

    @pytest.mark.asyncio
    async def test_equal_priorities_are_fifo(self) -> None:
        queue = ProcessingQueue(max_concurrent=1)
        handler = _Recorder()
        queue.bind(handler)

        for name in ["a", "b", "c", "d"]:
            queue.enqueue(_task(name))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert handler.order == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_pending_order_reflects_priority_then_insertion(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=1)
        queue.bind(_Recorder(gate))

        queue.enqueue(_task("blocker"))
        await asyncio.sleep(0.01)
        queue.enqueue(_task("a", priority=5))
        queue.enqueue(_task("b", priority=15))
        queue.enqueue(_task("c", priority=5))

        assert queue.pending_file_ids() == ["b", "a", "c"]
        gate.set()
        await asyncio.wait_for(queue.join(), timeout=5)


class TestSingleLiveTask:
    @pytest.mark.asyncio
    async def test_duplicate_enqueue_rejected(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=1)
        handler = _Recorder(gate)
        queue.bind(handler)

        assert queue.enqueue(_task("f1")) is True
        await asyncio.sleep(0.01)
        # Running.
        assert queue.enqueue(_task("f1")) is False

        assert queue.enqueue(_task("f2")) is True
        # Pending.
        assert queue.enqueue(_task("f2")) is False

        gate.set()
        await asyncio.wait_for(queue.join(), timeout=5)
        assert handler.order == ["f1", "f2"]

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_raises_pending_priority(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=1)
        queue.bind(_Recorder(gate))

        queue.enqueue(_task("blocker"))
        await asyncio.sleep(0.01)
        queue.enqueue(_task("a", priority=10))
        queue.enqueue(_task("b", priority=10))
        queue.enqueue(_task("b", priority=15))

        assert queue.pending_file_ids() == ["b", "a"]
        gate.set()
        await asyncio.wait_for(queue.join(), timeout=5)


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove_pending_task(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=1)
        handler = _Recorder(gate)
        queue.bind(handler)

        queue.enqueue(_task("running"))
        await asyncio.sleep(0.01)
        queue.enqueue(_task("pending"))

        assert queue.remove("pending") is True
        assert queue.remove("pending") is False
        # In-flight tasks are not cancelled.
        assert queue.remove("running") is False

        gate.set()
        await asyncio.wait_for(queue.join(), timeout=5)
        assert handler.order == ["running"]

    @pytest.mark.asyncio
    async def test_remove_cancels_scheduled_retry(self) -> None:
        calls: list[int] = []

        async def failing(task: ProcessingTask) -> None:
            calls.append(task.retry_count)
            raise RuntimeError("boom")

        queue = ProcessingQueue(max_retries=3, backoff_base=0.2)
        queue.bind(failing)
        queue.enqueue(_task("f1"))
        await asyncio.sleep(0.05)

        assert queue.status().scheduled_retries == 1
        assert queue.is_queued("f1")
        assert queue.remove("f1") is True

        await asyncio.wait_for(queue.join(), timeout=5)
        assert calls == [0]
        assert not queue.is_queued("f1")


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetries:
    @pytest.mark.asyncio
    async def test_always_failing_task_attempted_max_retries_plus_one(self) -> None:
        loop = asyncio.get_running_loop()
        attempts: list[float] = []
        exhausted: list[tuple[ProcessingTask, ExhaustedRetriesError]] = []

        async def failing(task: ProcessingTask) -> None:
            attempts.append(loop.time())
            raise RuntimeError("parser exploded")

        async def on_exhausted(task: ProcessingTask, error: ExhaustedRetriesError) -> None:
            exhausted.append((task, error))

        base = 0.02
        queue = ProcessingQueue(max_retries=3, backoff_base=base)
        queue.bind(failing, on_exhausted)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert len(attempts) == 4
        for k in range(1, 4):
            # Delay before attempt k+1 is at least 2**k backoff units.
            assert attempts[k] - attempts[k - 1] >= base * 2**k - 0.005

        assert len(exhausted) == 1
        task, error = exhausted[0]
        assert task.retry_count == 3
        assert error.attempts == 4
        assert error.message == "Processing failed after 4 attempts: parser exploded"
        assert isinstance(error.last_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_retry_lowers_priority_with_floor(self) -> None:
        seen: list[int] = []

        async def failing(task: ProcessingTask) -> None:
            seen.append(task.priority)
            raise RuntimeError("boom")

        queue = ProcessingQueue(max_retries=3, backoff_base=0.001)
        queue.bind(failing)
        queue.enqueue(_task("f1", priority=1))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert seen == [1, 0, 0, 0]

    @pytest.mark.asyncio
    async def test_success_after_transient_failure(self) -> None:
        completed: list[PipelineEvent] = []
        broadcaster = EventBroadcaster()
        broadcaster.register_listener(
            lambda e: completed.append(e)
            if e.event_type == PipelineEventType.TASK_COMPLETED
            else None
        )

        async def flaky(task: ProcessingTask) -> None:
            if task.retry_count == 0:
                raise RuntimeError("transient")

        queue = ProcessingQueue(backoff_base=0.001, broadcaster=broadcaster)
        queue.bind(flaky)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert [e.attempt for e in completed] == [2]

    @pytest.mark.asyncio
    async def test_zero_retries_fails_immediately(self) -> None:
        exhausted: list[ExhaustedRetriesError] = []

        async def failing(task: ProcessingTask) -> None:
            raise RuntimeError("nope")

        async def on_exhausted(task: ProcessingTask, error: ExhaustedRetriesError) -> None:
            exhausted.append(error)

        queue = ProcessingQueue(max_retries=0)
        queue.bind(failing, on_exhausted)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert [e.attempts for e in exhausted] == [1]

    @pytest.mark.asyncio
    async def test_exhausted_hook_can_reenqueue_same_file(self) -> None:
        attempts: list[int] = []
        reenqueued: list[bool] = []
        queue = ProcessingQueue(max_retries=0)

        async def fails_once(task: ProcessingTask) -> None:
            attempts.append(task.retry_count)
            if len(attempts) == 1:
                raise RuntimeError("first run fails")

        async def on_exhausted(task: ProcessingTask, error: ExhaustedRetriesError) -> None:
            assert not queue.is_queued(task.file_id)
            await asyncio.sleep(0.01)
            reenqueued.append(queue.enqueue(_task(task.file_id)))

        queue.bind(fails_once, on_exhausted)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert reenqueued == [True]
        assert attempts == [0, 0]

    @pytest.mark.asyncio
    async def test_handler_runs_with_file_log_context(self) -> None:
        seen: list[dict] = []

        async def handler(task: ProcessingTask) -> None:
            seen.append(structlog.contextvars.get_contextvars())

        queue = ProcessingQueue()
        queue.bind(handler)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert seen[0]["file_id"] == "f1"
        assert seen[0]["project_id"] == "p1"

    @pytest.mark.asyncio
    async def test_join_waits_for_exhausted_hook(self) -> None:
        finished: list[str] = []

        async def failing(task: ProcessingTask) -> None:
            raise RuntimeError("nope")

        async def slow_hook(task: ProcessingTask, error: ExhaustedRetriesError) -> None:
            await asyncio.sleep(0.05)
            finished.append(task.file_id)

        queue = ProcessingQueue(max_retries=0)
        queue.bind(failing, slow_hook)
        queue.enqueue(_task("f1"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert finished == ["f1"]


# ---------------------------------------------------------------------------
# Events / lifecycle
# ---------------------------------------------------------------------------


class TestEvents:
    @pytest.mark.asyncio
    async def test_event_sequence(self) -> None:
        broadcaster = EventBroadcaster()
        events: list[PipelineEvent] = []
        broadcaster.register_listener(events.append)

        async def handler(task: ProcessingTask) -> None:
            if task.file_id == "bad":
                raise RuntimeError("bad file")

        queue = ProcessingQueue(max_concurrent=1, max_retries=0, broadcaster=broadcaster)
        queue.bind(handler)
        queue.enqueue(_task("good"))
        queue.enqueue(_task("bad"))
        await asyncio.wait_for(queue.join(), timeout=5)

        types = [(e.event_type, e.file_id) for e in events]
        assert types == [
            (PipelineEventType.TASK_ADDED, "good"),
            (PipelineEventType.TASK_ADDED, "bad"),
            (PipelineEventType.TASK_COMPLETED, "good"),
            (PipelineEventType.TASK_FAILED, "bad"),
            (PipelineEventType.QUEUE_EMPTY, None),
        ]
        assert events[3].error == "Processing failed after 1 attempts: bad file"

    @pytest.mark.asyncio
    async def test_restarts_after_going_idle(self) -> None:
        queue = ProcessingQueue()
        handler = _Recorder()
        queue.bind(handler)

        queue.enqueue(_task("first"))
        await asyncio.wait_for(queue.join(), timeout=5)
        queue.enqueue(_task("second"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert handler.order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_shutdown_drops_pending_and_awaits_running(self) -> None:
        gate = asyncio.Event()
        queue = ProcessingQueue(max_concurrent=1)
        handler = _Recorder(gate)
        queue.bind(handler)

        queue.enqueue(_task("running"))
        await asyncio.sleep(0.01)
        queue.enqueue(_task("pending"))

        asyncio.get_running_loop().call_later(0.02, gate.set)
        await asyncio.wait_for(queue.shutdown(), timeout=5)

        assert handler.order == ["running"]
        assert queue.enqueue(_task("late")) is False
