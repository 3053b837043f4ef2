# SPDX-License-Identifier: MIT
"""Tests for the deferred-write queue."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from zooquest_sync.enums import FlushStatus
from zooquest_sync.exceptions import RecordValidationError, TransportConnectionError
from zooquest_sync.sync import PendingOperation, PendingOperationQueue


def operation(key, run=None, collection_key="animals", record_id=None):
    return PendingOperation(
        key=key,
        run=run or AsyncMock(return_value={"ok": True}),
        collection_key=collection_key,
        record_id=record_id,
    )


@pytest.fixture
def queue():
    return PendingOperationQueue()


class TestPendingOperationQueueEnqueue:
    """Test cases for enqueueing."""

    def test_enqueue_appends_in_order(self, queue):
        assert queue.enqueue(operation("write:animals:a1")) is False
        assert queue.enqueue(operation("write:animals:a2")) is False

        assert queue.keys() == ["write:animals:a1", "write:animals:a2"]
        assert len(queue) == 2

    def test_same_key_replaces_in_place(self, queue):
        """Last write wins and keeps the original queue position."""
        first = operation("write:animals:a1")
        newer = operation("write:animals:a1")
        queue.enqueue(first)
        queue.enqueue(operation("write:events:e1"))

        assert queue.enqueue(newer) is True

        assert queue.keys() == ["write:animals:a1", "write:events:e1"]
        assert queue.peek("write:animals:a1") is newer

    def test_clear(self, queue):
        queue.enqueue(operation("a"))
        queue.enqueue(operation("b"))

        assert queue.clear() == 2
        assert len(queue) == 0


class TestPendingOperationQueueDrain:
    """Test cases for draining."""

    @pytest.mark.asyncio
    async def test_drain_runs_sequentially_in_order(self, queue):
        calls = []

        def recording(name):
            async def run():
                calls.append(f"start {name}")
                calls.append(f"end {name}")

            return run

        for name in ("a", "b", "c"):
            queue.enqueue(operation(name, recording(name)))

        result = await queue.drain()

        assert result == {"flushed": 3, "failed": 0, "remaining": 0}
        assert calls == [
            "start a",
            "end a",
            "start b",
            "end b",
            "start c",
            "end c",
        ]

    @pytest.mark.asyncio
    async def test_replaced_operation_runs_once(self, queue):
        stale = AsyncMock()
        latest = AsyncMock()
        queue.enqueue(operation("write:animals:a1", stale))
        queue.enqueue(operation("write:animals:a1", latest))

        await queue.drain()

        stale.assert_not_awaited()
        latest.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_operation_dropped_and_drain_continues(self, queue):
        after = AsyncMock()
        queue.enqueue(
            operation("bad", AsyncMock(side_effect=RecordValidationError("bad", 400)))
        )
        queue.enqueue(operation("good", after))
        on_flushed = Mock()

        result = await queue.drain(on_flushed=on_flushed)

        assert result == {"flushed": 1, "failed": 1, "remaining": 0}
        after.assert_awaited_once()
        statuses = [call.args[1] for call in on_flushed.call_args_list]
        assert statuses == [FlushStatus.FAILED, FlushStatus.SUCCESS]
        assert isinstance(on_flushed.call_args_list[0].args[2], RecordValidationError)
        assert on_flushed.call_args_list[1].args[2] is None

    @pytest.mark.asyncio
    async def test_operation_removed_before_it_runs(self, queue):
        seen = []

        async def run():
            seen.append(queue.keys())

        queue.enqueue(operation("a", run))
        queue.enqueue(operation("b"))

        await queue.drain()

        assert seen == [["b"]]

    @pytest.mark.asyncio
    async def test_operation_enqueued_during_drain_is_flushed(self, queue):
        late = AsyncMock()

        async def run():
            queue.enqueue(operation("late", late))

        queue.enqueue(operation("first", run))

        result = await queue.drain()

        assert result["flushed"] == 2
        late.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_should_continue_stops_drain(self, queue):
        second = AsyncMock()
        queue.enqueue(operation("a"))
        queue.enqueue(operation("b", second))
        checks = iter([True, False])

        result = await queue.drain(should_continue=lambda: next(checks))

        assert result == {"flushed": 1, "failed": 0, "remaining": 1}
        second.assert_not_awaited()
        assert queue.keys() == ["b"]

    @pytest.mark.asyncio
    async def test_reentrant_drain_returns_immediately(self, queue):
        nested = {}

        async def run():
            nested.update(await queue.drain())

        queue.enqueue(operation("a", run))
        queue.enqueue(operation("b"))

        result = await queue.drain()

        assert nested == {"flushed": 0, "failed": 0, "remaining": 1}
        assert result["flushed"] == 2
        assert queue.draining is False

    @pytest.mark.asyncio
    async def test_wait_idle_returns_at_once_without_drain(self, queue):
        await asyncio.wait_for(queue.wait_idle(), timeout=1)

    @pytest.mark.asyncio
    async def test_wait_idle_blocks_until_drain_finishes(self, queue):
        release = asyncio.Event()
        order = []

        async def slow():
            await release.wait()
            order.append("flushed")

        queue.enqueue(operation("a", slow))
        drain = asyncio.create_task(queue.drain())
        await asyncio.sleep(0)

        waiter = asyncio.create_task(queue.wait_idle())
        await asyncio.sleep(0)
        assert not waiter.done()

        release.set()
        await waiter
        order.append("idle")
        await drain

        assert order == ["flushed", "idle"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_drain(self, queue):
        queue.enqueue(operation("a"))
        queue.enqueue(operation("b"))

        result = await queue.drain(on_flushed=Mock(side_effect=RuntimeError("boom")))

        assert result["flushed"] == 2

    @pytest.mark.asyncio
    async def test_network_failures_retried_when_configured(self):
        queue = PendingOperationQueue(max_retries=2, retry_delay=0.5)
        run = AsyncMock(side_effect=[TransportConnectionError("down"), {"ok": True}])
        queue.enqueue(operation("a", run))

        with patch("zooquest_sync.retry_utils.asyncio.sleep", new=AsyncMock()):
            result = await queue.drain()

        assert result["flushed"] == 1
        assert run.await_count == 2

    @pytest.mark.asyncio
    async def test_application_failures_never_retried(self):
        queue = PendingOperationQueue(max_retries=3, retry_delay=0.01)
        run = AsyncMock(side_effect=RecordValidationError("bad", 422))
        queue.enqueue(operation("a", run))

        result = await queue.drain()

        assert result["failed"] == 1
        assert run.await_count == 1
