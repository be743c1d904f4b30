"""Tests for the run EventBus."""

from __future__ import annotations

import asyncio

import pytest

from flows.runtime.event_bus import EventBus, RunEvent, RunEventType


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_handler_receives_matching_events(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe([RunEventType.STEP_FAILED], handler)
        await bus.emit(RunEventType.STEP_STARTED, "run-1", node_id="a")
        await bus.emit(RunEventType.STEP_FAILED, "run-1", node_id="a", error="boom")

        assert len(received) == 1
        assert received[0].data == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_run_and_node_filters(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append((event.run_id, event.node_id))

        bus.subscribe([RunEventType.STEP_COMPLETED], handler, filter_run="run-1", filter_node="a")
        await bus.emit(RunEventType.STEP_COMPLETED, "run-2", node_id="a")
        await bus.emit(RunEventType.STEP_COMPLETED, "run-1", node_id="b")
        await bus.emit(RunEventType.STEP_COMPLETED, "run-1", node_id="a")

        assert received == [("run-1", "a")]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        sub_id = bus.subscribe([RunEventType.RUN_STARTED], handler)
        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False
        await bus.emit(RunEventType.RUN_STARTED, "run-1")
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_publish(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("handler bug")

        async def healthy(event):
            received.append(event)

        bus.subscribe([RunEventType.RUN_STARTED], broken)
        bus.subscribe([RunEventType.RUN_STARTED], healthy)
        await bus.emit(RunEventType.RUN_STARTED, "run-1")

        assert len(received) == 1


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_is_most_recent_first_and_capped(self):
        bus = EventBus(max_history=3)
        for index in range(5):
            await bus.emit(RunEventType.STEP_STARTED, "run-1", step_number=index)

        history = bus.get_history()
        assert [e.step_number for e in history] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_history_filters(self):
        bus = EventBus()
        await bus.emit(RunEventType.STEP_STARTED, "run-1", node_id="a")
        await bus.emit(RunEventType.STEP_STARTED, "run-2", node_id="b")
        await bus.emit(RunEventType.RUN_COMPLETED, "run-1")

        assert len(bus.get_history(run_id="run-1")) == 2
        assert [e.node_id for e in bus.get_history(node_id="b")] == ["b"]
        assert len(bus.get_history(RunEventType.RUN_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_stats(self):
        bus = EventBus()
        bus.subscribe([RunEventType.RUN_STARTED], lambda event: asyncio.sleep(0))
        await bus.emit(RunEventType.RUN_STARTED, "run-1")
        await bus.emit(RunEventType.RUN_STARTED, "run-2")

        stats = bus.get_stats()
        assert stats["total_events"] == 2
        assert stats["subscriptions"] == 1
        assert stats["events_by_type"] == {"run_started": 2}

    def test_event_to_dict(self):
        event = RunEvent(
            type=RunEventType.STEP_RETRY, run_id="run-1", node_id="a", data={"attempt": 1}
        )
        data = event.to_dict()
        assert data["type"] == "step_retry"
        assert data["data"] == {"attempt": 1}
        assert "timestamp" in data


class TestWaitFor:
    @pytest.mark.asyncio
    async def test_wait_for_event(self):
        bus = EventBus()

        async def publish_later():
            await asyncio.sleep(0.01)
            await bus.emit(RunEventType.RUN_COMPLETED, "run-1", status="success")

        task = asyncio.create_task(publish_later())
        event = await bus.wait_for(RunEventType.RUN_COMPLETED, run_id="run-1", timeout=1.0)
        await task

        assert event is not None
        assert event.data["status"] == "success"
        assert bus.get_stats()["subscriptions"] == 0

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        bus = EventBus()
        assert await bus.wait_for(RunEventType.RUN_COMPLETED, timeout=0.01) is None
