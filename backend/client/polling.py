"""
Order status polling.

OrderStatusPoller repeatedly queries an order's status until it reaches a
terminal state (PAID, FAILED, CANCELLED, REFUNDED), then invokes the
completion callback exactly once with the final record.

    poller = OrderStatusPoller(client.get_order_status)
    handle = poller.start(order_no, on_complete=show_receipt)
    ...
    handle.stop()            # cooperative; takes effect at the next wait
    record = await handle.wait()

Behaviour:
    - one query in flight at a time, each bounded by query_timeout (< interval)
    - a failed query (network error, 5xx, timeout) is logged and the next
      one is scheduled; it never ends the loop
    - polling gives up after max_duration seconds and calls on_timeout once
    - stop() after completion is a no-op
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from domain.constants import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

TERMINAL_STATUS_VALUES = frozenset(status.value for status in TERMINAL_STATUSES)

StatusFetcher = Callable[[str], Awaitable[dict]]
Callback = Callable[..., Any]


class PollHandle:
    """Handle to one running poll loop."""

    def __init__(self, order_no: str):
        self.order_no = order_no
        self.result: Optional[dict] = None
        self.last_record: Optional[dict] = None
        self.queries = 0
        self.failures = 0
        self.timed_out = False
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def completed(self) -> bool:
        return self.result is not None

    def stop(self):
        """Stop scheduling further queries. No-op once the loop has finished."""
        if self.done:
            return
        self._stop_event.set()

    async def wait(self) -> Optional[dict]:
        """Wait for the loop to end; returns the terminal record, or None."""
        if self._task is not None:
            await self._task
        return self.result


class OrderStatusPoller:
    """Cooperative, cancellable status poller. One instance can run many handles."""

    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        interval: float = 3.0,
        query_timeout: Optional[float] = None,
        max_duration: Optional[float] = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if query_timeout is None:
            query_timeout = interval * 0.8
        if not 0 < query_timeout < interval:
            raise ValueError("query_timeout must be positive and shorter than interval")
        if max_duration is not None and max_duration <= 0:
            raise ValueError("max_duration must be positive (or None for no limit)")

        self.fetch_status = fetch_status
        self.interval = interval
        self.query_timeout = query_timeout
        self.max_duration = max_duration
        self.clock = clock

    @classmethod
    def from_settings(cls, fetch_status: StatusFetcher) -> "OrderStatusPoller":
        from config import settings

        return cls(
            fetch_status,
            interval=settings.poll_interval_seconds,
            query_timeout=settings.poll_query_timeout_seconds,
            max_duration=settings.poll_max_duration_seconds,
        )

    def start(
        self,
        order_no: str,
        on_complete: Callback,
        on_timeout: Optional[Callback] = None,
    ) -> PollHandle:
        """Begin polling `order_no` on the running event loop."""
        handle = PollHandle(order_no)
        handle._task = asyncio.create_task(self._run(handle, on_complete, on_timeout))
        return handle

    async def _query(self, handle: PollHandle) -> Optional[dict]:
        handle.queries += 1
        try:
            record = await asyncio.wait_for(
                self.fetch_status(handle.order_no), timeout=self.query_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            handle.failures += 1
            logger.warning(
                f"Status poll #{handle.queries} for {handle.order_no} failed: "
                f"{type(e).__name__}: {e}"
            )
            return None

        if not isinstance(record, dict):
            handle.failures += 1
            logger.warning(
                f"Status poll #{handle.queries} for {handle.order_no} returned "
                f"{type(record).__name__}, expected an order record"
            )
            return None
        return record

    @staticmethod
    async def _invoke(callback: Callback, *args):
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Polling callback raised")

    async def _run(self, handle: PollHandle, on_complete: Callback, on_timeout: Optional[Callback]):
        deadline = None if self.max_duration is None else self.clock() + self.max_duration

        while not handle.stopped:
            record = await self._query(handle)
            if handle.stopped:
                break

            if record is not None:
                handle.last_record = record
                if record.get("status") in TERMINAL_STATUS_VALUES:
                    handle.result = record
                    logger.info(
                        f"Order {handle.order_no} reached {record['status']} "
                        f"after {handle.queries} quer{'y' if handle.queries == 1 else 'ies'}"
                    )
                    await self._invoke(on_complete, record)
                    return

            if deadline is not None and self.clock() >= deadline:
                handle.timed_out = True
                logger.warning(
                    f"Gave up polling {handle.order_no} after {self.max_duration}s "
                    f"({handle.queries} queries, last status "
                    f"{(handle.last_record or {}).get('status')})"
                )
                if on_timeout is not None:
                    await self._invoke(on_timeout, handle.last_record)
                return

            try:
                await asyncio.wait_for(handle._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Polling for {handle.order_no} stopped after {handle.queries} queries")
