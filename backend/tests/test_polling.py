"""
Tests for the client polling agent.

Tests: completion after N queries, failure tolerance (including malformed
responses), stop semantics,
per-query timeout, max poll duration, configuration checks.
"""
import asyncio

import httpx
import pytest

from client.polling import OrderStatusPoller

FAST = {"interval": 0.02, "query_timeout": 0.01}


def _record(status: str) -> dict:
    return {"orderNo": "PO1", "status": status}


class ScriptedFetcher:
    """Replays a script of records/exceptions; repeats the last entry afterwards."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0

    async def __call__(self, order_no: str) -> dict:
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(step, Exception):
            raise step
        return step


class TestCompletion:

    @pytest.mark.unit
    async def test_pending_pending_paid(self):
        fetch = ScriptedFetcher(_record("PENDING"), _record("PENDING"), _record("PAID"))
        completed = []

        handle = OrderStatusPoller(fetch, **FAST).start("PO1", on_complete=completed.append)
        result = await handle.wait()

        assert result == _record("PAID")
        assert handle.queries == 3
        assert fetch.calls == 3
        assert completed == [_record("PAID")]
        assert handle.completed is True
        assert handle.done is True

    @pytest.mark.unit
    @pytest.mark.parametrize("status", ["PAID", "FAILED", "CANCELLED", "REFUNDED"])
    async def test_every_terminal_status_completes(self, status):
        completed = []
        handle = OrderStatusPoller(ScriptedFetcher(_record(status)), **FAST).start(
            "PO1", on_complete=completed.append
        )
        await handle.wait()
        assert handle.queries == 1
        assert completed == [_record(status)]

    @pytest.mark.unit
    async def test_async_callback(self):
        completed = []

        async def on_complete(record):
            await asyncio.sleep(0)
            completed.append(record["status"])

        handle = OrderStatusPoller(ScriptedFetcher(_record("FAILED")), **FAST).start("PO1", on_complete)
        await handle.wait()
        assert completed == ["FAILED"]

    @pytest.mark.unit
    async def test_raising_callback_does_not_break_handle(self):
        def on_complete(record):
            raise RuntimeError("ui gone")

        handle = OrderStatusPoller(ScriptedFetcher(_record("PAID")), **FAST).start("PO1", on_complete)
        assert await handle.wait() == _record("PAID")


class TestFailures:

    @pytest.mark.unit
    async def test_failed_query_schedules_next(self):
        fetch = ScriptedFetcher(
            httpx.ConnectError("connection refused"), _record("PENDING"), _record("PAID")
        )
        completed = []

        handle = OrderStatusPoller(fetch, **FAST).start("PO1", on_complete=completed.append)
        await handle.wait()

        assert handle.queries == 3
        assert handle.failures == 1
        assert completed == [_record("PAID")]

    @pytest.mark.unit
    @pytest.mark.parametrize("garbage", ["garbage", None, ["PAID"]])
    async def test_non_record_response_counts_as_failure(self, garbage):
        fetch = ScriptedFetcher(garbage, _record("PAID"))
        completed = []

        handle = OrderStatusPoller(fetch, **FAST).start("PO1", on_complete=completed.append)
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert handle.queries == 2
        assert handle.failures == 1
        assert handle.last_record == _record("PAID")
        assert completed == [_record("PAID")]

    @pytest.mark.unit
    async def test_slow_query_is_bounded(self):
        calls = 0

        async def fetch(order_no):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return _record("PAID")

        poller = OrderStatusPoller(fetch, interval=0.05, query_timeout=0.02)
        handle = poller.start("PO1", on_complete=lambda record: None)
        result = await asyncio.wait_for(handle.wait(), timeout=2)

        assert result == _record("PAID")
        assert handle.failures == 1
        assert handle.queries == 2


class TestStop:

    @pytest.mark.unit
    async def test_stop_prevents_further_queries(self):
        fetch = ScriptedFetcher(_record("PENDING"))
        completed = []
        handle = OrderStatusPoller(fetch, **FAST).start("PO1", on_complete=completed.append)

        await asyncio.sleep(0.05)
        handle.stop()
        assert await handle.wait() is None
        queries = handle.queries

        await asyncio.sleep(0.05)
        assert handle.queries == queries
        assert handle.stopped is True
        assert completed == []

    @pytest.mark.unit
    async def test_stop_wakes_loop_immediately(self):
        poller = OrderStatusPoller(ScriptedFetcher(_record("PENDING")), interval=30, query_timeout=1)
        handle = poller.start("PO1", on_complete=lambda record: None)

        await asyncio.sleep(0.01)
        handle.stop()
        await asyncio.wait_for(handle.wait(), timeout=1)
        assert handle.queries == 1

    @pytest.mark.unit
    async def test_stop_after_completion_is_noop(self):
        completed = []
        handle = OrderStatusPoller(ScriptedFetcher(_record("PAID")), **FAST).start(
            "PO1", on_complete=completed.append
        )
        await handle.wait()

        handle.stop()
        assert handle.stopped is False
        assert handle.result == _record("PAID")
        assert completed == [_record("PAID")]

    @pytest.mark.unit
    async def test_handles_are_independent(self):
        poller = OrderStatusPoller(ScriptedFetcher(_record("PENDING")), **FAST)
        first = poller.start("PO1", on_complete=lambda record: None)
        second = poller.start("PO2", on_complete=lambda record: None)

        await asyncio.sleep(0.03)
        first.stop()
        await first.wait()
        assert second.done is False

        second.stop()
        await second.wait()


class TestMaxDuration:

    @pytest.mark.unit
    async def test_gives_up_and_reports_last_record(self):
        timed_out = []
        completed = []
        poller = OrderStatusPoller(ScriptedFetcher(_record("PENDING")), max_duration=0.06, **FAST)

        handle = poller.start("PO1", on_complete=completed.append, on_timeout=timed_out.append)
        assert await asyncio.wait_for(handle.wait(), timeout=2) is None

        assert handle.timed_out is True
        assert timed_out == [_record("PENDING")]
        assert completed == []
        assert handle.queries >= 2

    @pytest.mark.unit
    async def test_fake_clock_deadline(self):
        now = [0.0]

        def clock():
            now[0] += 100
            return now[0]

        poller = OrderStatusPoller(ScriptedFetcher(_record("PENDING")), max_duration=250, clock=clock, **FAST)
        handle = poller.start("PO1", on_complete=lambda record: None)
        await handle.wait()

        # deadline taken at t=100 -> 350; checks at 200, 300, 400
        assert handle.queries == 3
        assert handle.timed_out is True


class TestConfiguration:

    @pytest.mark.unit
    @pytest.mark.parametrize("kwargs", [
        {"interval": 0},
        {"interval": 1, "query_timeout": 1},
        {"interval": 1, "query_timeout": 2},
        {"interval": 1, "query_timeout": 0},
        {"interval": 1, "max_duration": 0},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            OrderStatusPoller(ScriptedFetcher(_record("PAID")), **kwargs)

    @pytest.mark.unit
    def test_default_query_timeout_below_interval(self):
        poller = OrderStatusPoller(ScriptedFetcher(_record("PAID")), interval=3.0)
        assert poller.query_timeout < poller.interval

    @pytest.mark.unit
    def test_from_settings(self):
        poller = OrderStatusPoller.from_settings(ScriptedFetcher(_record("PAID")))
        assert poller.interval == 3.0
        assert poller.query_timeout == 2.5
        assert poller.max_duration == 900.0
