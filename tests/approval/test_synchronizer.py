"""Tests for status polling and regression filtering."""

import asyncio
from typing import Any, Callable, Optional, Union

import pytest

from approval.synchronizer import PollingStatusSynchronizer, should_apply
from common.models import ExecutionRecord, ExecutionStatus


class ScriptedStore:
    """Store double that replays a fixed sequence of statuses, then repeats the last."""

    def __init__(self, factory: Callable[..., ExecutionRecord], script: list[Union[ExecutionStatus, Exception]]):
        self.factory = factory
        self.script = list(script)
        self.calls = 0

    async def get(self, tool_call_id: str) -> Optional[ExecutionRecord]:
        self.calls += 1
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return self.factory(tool_call_id=tool_call_id, status=step)


async def _collect(poller: PollingStatusSynchronizer, initial: Optional[ExecutionStatus] = None) -> list[ExecutionStatus]:
    return [record.status async for record in poller.subscribe("call_abc123", initial)]


@pytest.mark.unit
class TestShouldApply:
    @pytest.mark.parametrize(
        "current,incoming,expected",
        [
            (None, ExecutionStatus.RUNNING, True),
            (ExecutionStatus.PENDING, ExecutionStatus.APPROVED, True),
            (ExecutionStatus.APPROVED, ExecutionStatus.COMPLETED, True),
            (ExecutionStatus.RUNNING, ExecutionStatus.RUNNING, False),
            (ExecutionStatus.RUNNING, ExecutionStatus.APPROVED, False),
            (ExecutionStatus.COMPLETED, ExecutionStatus.ERROR, False),
            (ExecutionStatus.CANCELLED, ExecutionStatus.PENDING, False),
        ],
    )
    def test_should_apply(
        self, current: Optional[ExecutionStatus], incoming: ExecutionStatus, expected: bool
    ) -> None:
        assert should_apply(current, incoming) is expected


@pytest.mark.unit
class TestSubscribe:
    async def test_stops_on_terminal_status(self, record_factory: Any) -> None:
        store = ScriptedStore(
            record_factory,
            [ExecutionStatus.APPROVED, ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED],
        )
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)

        statuses = await _collect(poller)

        assert statuses == [ExecutionStatus.APPROVED, ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED]
        assert store.calls == 3
        assert not poller.timed_out

    async def test_regressions_are_ignored(self, record_factory: Any) -> None:
        store = ScriptedStore(
            record_factory,
            [ExecutionStatus.RUNNING, ExecutionStatus.APPROVED, ExecutionStatus.ERROR],
        )
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)

        assert await _collect(poller) == [ExecutionStatus.RUNNING, ExecutionStatus.ERROR]

    async def test_initial_terminal_status_reads_once(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.COMPLETED])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)

        assert await _collect(poller, ExecutionStatus.COMPLETED) == []
        assert store.calls == 1

    async def test_read_errors_do_not_stop_polling(self, record_factory: Any) -> None:
        store = ScriptedStore(
            record_factory, [RuntimeError("database is locked"), ExecutionStatus.COMPLETED]
        )
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)

        assert await _collect(poller) == [ExecutionStatus.COMPLETED]

    async def test_timeout_keeps_last_known_status(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.RUNNING])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.01, max_duration_seconds=0.05)

        assert poller.start("call_abc123")
        await poller.wait()

        assert poller.timed_out
        assert poller.last_status == ExecutionStatus.RUNNING
        assert store.calls > 1
        assert not poller.is_active


@pytest.mark.unit
class TestBackgroundPolling:
    async def test_callback_receives_each_change(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)
        seen: list[ExecutionStatus] = []

        async def on_update(record: ExecutionRecord) -> None:
            seen.append(record.status)

        poller.start("call_abc123", on_update)
        await poller.wait()

        assert seen == [ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED]
        assert poller.last_record is not None
        assert poller.last_record.status == ExecutionStatus.COMPLETED

    async def test_callback_errors_are_contained(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.001, max_duration_seconds=5)

        def on_update(record: ExecutionRecord) -> None:
            raise ValueError("view went away")

        poller.start("call_abc123", on_update)
        await poller.wait()

        assert poller.last_status == ExecutionStatus.COMPLETED

    async def test_second_start_is_a_no_op(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.RUNNING])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.01, max_duration_seconds=5)

        assert poller.start("call_abc123")
        assert not poller.start("call_other")
        assert poller.tool_call_id == "call_abc123"

        await poller.close()
        assert not poller.is_active

    async def test_close_stops_polling(self, record_factory: Any) -> None:
        store = ScriptedStore(record_factory, [ExecutionStatus.RUNNING])
        poller = PollingStatusSynchronizer(store, interval_seconds=0.01, max_duration_seconds=5)

        poller.start("call_abc123")
        await asyncio.sleep(0.03)
        await poller.close()
        calls = store.calls
        await asyncio.sleep(0.03)

        assert store.calls == calls
        assert not poller.timed_out
