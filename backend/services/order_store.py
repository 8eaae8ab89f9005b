"""
Order store — the narrow persistence contract the order service relies on.

    get_by_order_no(order_no)                        -> Order | None
    insert_if_absent(order)                          -> InsertOutcome(created=True|False)
    compare_and_update_status(order_no, expected, new, patch, ...)
                                                     -> UpdateOutcome(updated=True|False)

compare_and_update_status is a single conditional UPDATE guarded by the
expected status; a lost race comes back as updated=False (Conflict) and never
overwrites. Each accepted write commits the status change together with its
order_events row.

Driver failures other than unique-key violations surface as
TransientStoreError so the HTTP layer answers 5xx.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderEventLog
from domain.constants import ORDER_CREATED_EVENT
from domain.enums import EventSource, OrderEvent, OrderStatus
from domain.errors import TransientStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsertOutcome:
    order: Order
    created: bool


@dataclass(frozen=True)
class UpdateOutcome:
    updated: bool
    order: Order | None = None

    @property
    def conflict(self) -> bool:
        return not self.updated


@dataclass(frozen=True)
class OrderFilter:
    page: int = 1
    limit: int = 10
    status: OrderStatus | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SqlOrderStore:
    """OrderStore backed by one SQLAlchemy AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.error(f"Order store {operation} failed: {e}")
            await self.db.rollback()
            raise TransientStoreError(details={"operation": operation}) from e

    async def get_by_order_no(self, order_no: str) -> Order | None:
        async with self._guard("get"):
            res = await self.db.execute(
                select(Order)
                .where(Order.order_no == order_no)
                .execution_options(populate_existing=True)
            )
            return res.scalar_one_or_none()

    async def insert_if_absent(self, order: Order) -> InsertOutcome:
        """
        Insert `order` unless one with the same order_no exists.

        A duplicate is not an error: the stored order is returned with
        created=False. Two racing inserts resolve through the unique
        constraint on order_no; the loser reads back the winner.
        """
        existing = await self.get_by_order_no(order.order_no)
        if existing is not None:
            return InsertOutcome(order=existing, created=False)

        async with self._guard("insert"):
            self.db.add(order)
            self.db.add(OrderEventLog(
                order_no=order.order_no,
                event=ORDER_CREATED_EVENT,
                from_status=None,
                to_status=order.status,
                source=EventSource.CLIENT.value,
                created_at=order.created_at,
            ))
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.info(f"Order {order.order_no} inserted concurrently; returning stored row")
                winner = await self.get_by_order_no(order.order_no)
                if winner is None:
                    raise TransientStoreError(
                        "Order insert conflicted but no stored row was found",
                        details={"orderNo": order.order_no},
                    )
                return InsertOutcome(order=winner, created=False)

        return InsertOutcome(order=order, created=True)

    async def compare_and_update_status(
        self,
        order_no: str,
        expected: OrderStatus,
        new: OrderStatus,
        patch: dict | None = None,
        *,
        event: OrderEvent,
        source: EventSource,
        detail: str | None = None,
    ) -> UpdateOutcome:
        """
        Set status to `new` only if the stored status still equals `expected`.

        `patch` holds extra column values written in the same statement
        (updated_at, gateway_reference, refund_reason, ...).
        """
        values = dict(patch or {})
        values["status"] = OrderStatus(new).value

        async with self._guard("compare_and_update"):
            result = await self.db.execute(
                update(Order)
                .where(
                    Order.order_no == order_no,
                    Order.status == OrderStatus(expected).value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                return UpdateOutcome(updated=False)

            self.db.add(OrderEventLog(
                order_no=order_no,
                event=OrderEvent(event).value,
                from_status=OrderStatus(expected).value,
                to_status=OrderStatus(new).value,
                source=EventSource(source).value,
                gateway_reference=values.get("gateway_reference"),
                detail=detail,
                created_at=values.get("updated_at"),
            ))
            await self.db.commit()

        return UpdateOutcome(updated=True, order=await self.get_by_order_no(order_no))

    async def list_orders(self, order_filter: OrderFilter, owner: str | None = None) -> tuple[list[Order], int]:
        """Offset-paginated orders, newest first. owner=None lists every order."""
        conditions = []
        if owner is not None:
            conditions.append(Order.owner == owner)
        if order_filter.status is not None:
            conditions.append(Order.status == OrderStatus(order_filter.status).value)

        async with self._guard("list"):
            total = (await self.db.execute(
                select(func.count()).select_from(Order).where(*conditions)
            )).scalar_one()
            res = await self.db.execute(
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(order_filter.offset)
                .limit(order_filter.limit)
            )
            return list(res.scalars().all()), total

    async def list_expired_pending(self, cutoff: datetime, limit: int = 100) -> list[str]:
        """order_no of PENDING orders whose expires_at is before `cutoff`."""
        async with self._guard("list_expired"):
            res = await self.db.execute(
                select(Order.order_no)
                .where(
                    Order.status == OrderStatus.PENDING.value,
                    Order.expires_at.is_not(None),
                    Order.expires_at < cutoff,
                )
                .order_by(Order.expires_at)
                .limit(limit)
            )
            return list(res.scalars().all())

    async def list_events(self, order_no: str) -> list[OrderEventLog]:
        async with self._guard("list_events"):
            res = await self.db.execute(
                select(OrderEventLog)
                .where(OrderEventLog.order_no == order_no)
                .order_by(OrderEventLog.id)
            )
            return list(res.scalars().all())
