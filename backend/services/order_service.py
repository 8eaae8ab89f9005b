"""
Order service — orchestrates the payment order lifecycle.

Operations:
    create_order            — validate + idempotent insert of a PENDING order
    apply_gateway_callback  — gateway success/failure for a previously created order
    request_refund          — PAID -> REFUNDED
    cancel_order            — owner cancels a PENDING order before gateway ack
    expire_stale_orders     — sweeper: PENDING orders past expires_at -> CANCELLED

Every status change goes through services.state_machine.transition and is
written with the store's compare-and-update, using the status that was
observed as the expected value. A lost race (Conflict) re-reads and decides
again, at most `max_attempts` times, then surfaces as ConflictError (409).
"""

from __future__ import annotations

import hashlib
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from db_models import Order, utcnow
from domain.constants import ORDER_NO_PREFIX, SETTLEMENT_STATUSES
from domain.enums import EventSource, GatewayOutcome, OrderEvent, OrderStatus
from domain.errors import (
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from services.order_store import OrderFilter, SqlOrderStore
from services.state_machine import transition
from utils.validators import validate_order_spec, validate_refund_spec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderSpec:
    """Validated input for create_order (amount in minor units)."""
    order_no: str
    owner: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class RefundSpec:
    order_no: str
    refund_reason: str | None = None


@dataclass(frozen=True)
class CreateOutcome:
    order: Order
    created: bool


@dataclass(frozen=True)
class TransitionOutcome:
    order: Order
    applied: bool
    previous: OrderStatus
    reason: str | None = None


# Subscription / permission gating collaborator: (owner, spec) -> allowed?
CreationPolicy = Callable[[str, OrderSpec], Awaitable[bool]]

# Post-payment collaborator (subscription activation, receipts, refund notices):
# awaited after a PAID or REFUNDED transition has been committed.
TransitionListener = Callable[[Order, OrderEvent], Awaitable[None]]

_STATUS_TIMESTAMPS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}


def generate_order_no(owner: str | None = None, idempotency_key: str | None = None) -> str:
    """
    Derive an order number.

    With an idempotency key the number is deterministic per (owner, key), so a
    retried create maps onto the same order. Without one it is
    yyyyMMddHHmmss + 8 random digits.
    """
    if idempotency_key:
        digest = hashlib.sha256(f"{owner or ''}:{idempotency_key}".encode("utf-8")).hexdigest()
        return f"{ORDER_NO_PREFIX}{digest[:24].upper()}"
    timestamp = utcnow().strftime("%Y%m%d%H%M%S")
    return f"{timestamp}{random.randint(0, 99_999_999):08d}"


def _next_timestamp(previous: datetime | None, now: datetime) -> datetime:
    """updated_at never moves backwards and changes on every accepted write."""
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class OrderService:
    """Transactional boundary for order mutations. One instance per request."""

    def __init__(
        self,
        store: SqlOrderStore,
        *,
        max_attempts: int = 3,
        order_ttl: timedelta = timedelta(minutes=15),
        creation_policy: Optional[CreationPolicy] = None,
        transition_listener: Optional[TransitionListener] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.max_attempts = max_attempts
        self.order_ttl = order_ttl
        self.creation_policy = creation_policy
        self.transition_listener = transition_listener
        self.clock = clock

    # ── Queries ─────────────────────────────────────────────────────

    async def get_order(self, order_no: str) -> Order:
        order = await self.store.get_by_order_no(order_no)
        if order is None:
            raise NotFoundError("Order", order_no)
        return order

    async def list_orders(self, order_filter: OrderFilter, owner: str | None = None) -> tuple[list[Order], int]:
        return await self.store.list_orders(order_filter, owner=owner)

    # ── Creation ────────────────────────────────────────────────────

    async def create_order(self, spec: OrderSpec) -> CreateOutcome:
        """
        Persist a PENDING order, or return the stored one for a repeated order_no.

        Two near-simultaneous calls with the same order_no yield one order.
        """
        errors = validate_order_spec(spec)
        if errors:
            raise ValidationError.from_field_errors(errors)

        if self.creation_policy is not None and not await self.creation_policy(spec.owner, spec):
            raise PermissionDeniedError(
                "Order creation not permitted for this account",
                details={"owner": spec.owner},
            )

        now = self.clock()
        order = Order(
            order_no=spec.order_no,
            owner=spec.owner,
            status=OrderStatus.PENDING.value,
            amount_minor=spec.amount_minor,
            currency=spec.currency,
            created_at=now,
            updated_at=now,
            expires_at=now + self.order_ttl,
        )
        outcome = await self.store.insert_if_absent(order)

        if outcome.created:
            logger.info(
                f"Order {spec.order_no} created: {spec.amount_minor} {spec.currency} minor units "
                f"for {spec.owner}"
            )
        else:
            existing = outcome.order
            if existing.amount_minor != spec.amount_minor or existing.currency != spec.currency:
                logger.warning(
                    f"Duplicate create for {spec.order_no} with different amount/currency "
                    f"({spec.amount_minor} {spec.currency} vs stored "
                    f"{existing.amount_minor} {existing.currency}); returning stored order"
                )
            else:
                logger.info(f"Duplicate create for {spec.order_no}; returning stored order")

        return CreateOutcome(order=outcome.order, created=outcome.created)

    # ── Transitions ─────────────────────────────────────────────────

    async def _apply_event(
        self,
        order_no: str,
        event: OrderEvent,
        source: EventSource,
        *,
        patch: Callable[[Order], dict] | None = None,
        detail: str | None = None,
        max_attempts: int | None = None,
    ) -> TransitionOutcome:
        attempts = max_attempts or self.max_attempts

        for attempt in range(1, attempts + 1):
            order = await self.store.get_by_order_no(order_no)
            if order is None:
                raise NotFoundError("Order", order_no)

            current = OrderStatus(order.status)
            decision = transition(
                current, event, gateway_acknowledged=order.gateway_reference is not None
            )
            if not decision.accepted:
                logger.warning(
                    f"Rejected {event.value} for order {order_no} "
                    f"(status {current.value}): {decision.reason}"
                )
                return TransitionOutcome(
                    order=order, applied=False, previous=current, reason=decision.reason
                )

            now = _next_timestamp(order.updated_at, self.clock())
            values = {"updated_at": now}
            column = _STATUS_TIMESTAMPS.get(decision.next_status)
            if column:
                values[column] = now
            if patch is not None:
                values.update(patch(order))

            result = await self.store.compare_and_update_status(
                order_no,
                current,
                decision.next_status,
                values,
                event=event,
                source=source,
                detail=detail,
            )
            if result.conflict:
                logger.info(
                    f"Conflict applying {event.value} to order {order_no} "
                    f"(attempt {attempt}/{attempts}); re-reading"
                )
                continue

            logger.info(
                f"Order {order_no}: {current.value} -> {decision.next_status.value} "
                f"({event.value} from {source.value})"
            )
            if decision.next_status in SETTLEMENT_STATUSES:
                await self._notify(result.order, event)
            return TransitionOutcome(order=result.order, applied=True, previous=current)

        raise ConflictError(
            f"Order {order_no} changed concurrently; {event.value} not applied after {attempts} attempts",
            details={"orderNo": order_no, "event": event.value, "attempts": attempts},
        )

    async def _notify(self, order: Order, event: OrderEvent):
        """Run the post-transition listener. The transition is already committed."""
        if self.transition_listener is None:
            return
        try:
            await self.transition_listener(order, event)
        except Exception:
            logger.exception(
                f"Post-transition listener failed for order {order.order_no} ({event.value}); "
                f"status {order.status} stays committed"
            )

    async def apply_gateway_callback(
        self,
        order_no: str,
        outcome: GatewayOutcome,
        gateway_reference: str | None = None,
    ) -> TransitionOutcome:
        """
        Apply an asynchronous gateway outcome.

        A stale or duplicate callback (e.g. after the order was cancelled) is
        returned with applied=False rather than raised, so the gateway does
        not keep redelivering it.
        """
        outcome = GatewayOutcome(outcome)

        def _reference(order: Order) -> dict:
            # Set once: the first acknowledgement wins.
            if gateway_reference and order.gateway_reference is None:
                return {"gateway_reference": gateway_reference}
            return {}

        return await self._apply_event(
            order_no,
            outcome.event,
            EventSource.GATEWAY,
            patch=_reference,
        )

    async def request_refund(self, spec: RefundSpec, requester: str, *, is_admin: bool = False) -> Order:
        """
        PAID -> REFUNDED, by the order owner or an admin.

        Another caller gets PermissionDeniedError; any status other than PAID
        raises IllegalTransitionError. Both answer 403.
        """
        errors = validate_refund_spec(spec)
        if errors:
            raise ValidationError.from_field_errors(errors)

        order = await self.get_order(spec.order_no)
        if not is_admin and order.owner != requester:
            raise PermissionDeniedError(
                "Only the order owner or an admin can refund it",
                details={"orderNo": spec.order_no},
            )

        result = await self._apply_event(
            spec.order_no,
            OrderEvent.REFUND_APPROVED,
            EventSource.REFUND,
            patch=lambda _order: {"refund_reason": spec.refund_reason},
            detail=spec.refund_reason,
        )
        if not result.applied:
            raise IllegalTransitionError(
                spec.order_no,
                result.previous.value,
                OrderEvent.REFUND_APPROVED.value,
                "only paid orders can be refunded",
            )
        return result.order

    async def cancel_order(self, order_no: str, owner: str) -> Order:
        """Owner-initiated cancel of a PENDING order."""
        order = await self.get_order(order_no)
        if order.owner != owner:
            raise PermissionDeniedError(
                "Only the order owner can cancel it",
                details={"orderNo": order_no},
            )

        result = await self._apply_event(order_no, OrderEvent.CLIENT_CANCEL, EventSource.CLIENT)
        if not result.applied:
            raise IllegalTransitionError(
                order_no, result.previous.value, OrderEvent.CLIENT_CANCEL.value, result.reason
            )
        return result.order

    async def expire_stale_orders(self, now: datetime | None = None, limit: int = 100) -> list[str]:
        """
        Cancel PENDING orders whose expires_at has passed.

        Single attempt per order: an order that moved on concurrently
        (paid, cancelled) is skipped, not retried.
        """
        cutoff = now or self.clock()
        expired = []
        for order_no in await self.store.list_expired_pending(cutoff, limit=limit):
            try:
                result = await self._apply_event(
                    order_no, OrderEvent.EXPIRED, EventSource.EXPIRY, max_attempts=1
                )
            except ConflictError:
                logger.info(f"Order {order_no} changed while expiring; skipped")
                continue
            if result.applied:
                expired.append(order_no)
        if expired:
            logger.info(f"Expired {len(expired)} pending order(s)")
        return expired
