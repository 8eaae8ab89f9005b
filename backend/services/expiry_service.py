"""
Order Expiry Sweeper — cancels PENDING orders that outlived their payment window.

Runs as an asyncio background task during the FastAPI app lifespan. Every
EXPIRY_SWEEP_SECONDS it opens a session on the app's Database, lists PENDING
orders whose expires_at has passed and applies the `expired` event to each
through OrderService (compare-and-update, single attempt). Orders that were
paid or cancelled in the meantime are skipped.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from config import settings
from database import Database
from services.order_service import OrderService
from services.order_store import SqlOrderStore

logger = logging.getLogger(__name__)

# Sweeper state
_sweeper_task: Optional[asyncio.Task] = None
_is_running: bool = False
_errors_count: int = 0
_expired_total: int = 0
_last_sweep_at: Optional[str] = None


async def sweep_once(database: Database) -> list[str]:
    """Run one expiry pass; returns the order numbers that were cancelled."""
    global _expired_total, _last_sweep_at

    async with database.session() as db:
        service = OrderService(
            SqlOrderStore(db),
            max_attempts=settings.cas_max_attempts,
            order_ttl=timedelta(minutes=settings.order_expire_minutes),
        )
        expired = await service.expire_stale_orders()
        _last_sweep_at = service.clock().isoformat() + "Z"

    _expired_total += len(expired)
    return expired


async def _sweeper_loop(database: Database, interval: float):
    global _is_running, _errors_count

    logger.info(f"Expiry sweeper started (every {interval}s)")

    while _is_running:
        try:
            await asyncio.sleep(interval)
            await sweep_once(database)
        except asyncio.CancelledError:
            logger.info("Expiry sweeper cancelled")
            break
        except Exception as e:
            _errors_count += 1
            logger.error(f"Expiry sweep error: {e}")

    _is_running = False
    logger.info("Expiry sweeper stopped")


# ════════════════════════════════════════════════════════════════════
# Public API — Start / Stop / Status
# ════════════════════════════════════════════════════════════════════


async def start(database: Database, interval: float | None = None):
    """Start the sweeper as a background asyncio task."""
    global _sweeper_task, _is_running

    if _sweeper_task and not _sweeper_task.done():
        logger.warning("Expiry sweeper already running")
        return

    _is_running = True
    _sweeper_task = asyncio.create_task(
        _sweeper_loop(database, interval or settings.expiry_sweep_seconds)
    )


async def stop():
    """Stop the sweeper gracefully."""
    global _sweeper_task, _is_running
    _is_running = False

    if _sweeper_task and not _sweeper_task.done():
        _sweeper_task.cancel()
        try:
            await _sweeper_task
        except asyncio.CancelledError:
            pass

    _sweeper_task = None


def get_status() -> dict:
    """Sweeper status for GET /payment/expiry/status."""
    return {
        "running": _is_running,
        "sweepIntervalSeconds": settings.expiry_sweep_seconds,
        "orderExpireMinutes": settings.order_expire_minutes,
        "expiredTotal": _expired_total,
        "errorsCount": _errors_count,
        "lastSweepAt": _last_sweep_at,
    }
