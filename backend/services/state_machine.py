"""
Order state machine — pure transition logic, no I/O.

Allowed edges:

    PENDING  --gateway-success-->  PAID
    PENDING  --gateway-failure-->  FAILED
    PENDING  --client-cancel--->   CANCELLED   (only before gateway ack)
    PENDING  --expired--------->   CANCELLED
    PAID     --refund-approved->   REFUNDED

Every other (status, event) pair is Rejected. A rejection is a normal outcome
(stale or duplicate event), not a system failure: callers log and discard it.
"""

from __future__ import annotations

from dataclasses import dataclass

from domain.constants import TERMINAL_STATUSES
from domain.enums import OrderEvent, OrderStatus


_EDGES: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PENDING, OrderEvent.GATEWAY_SUCCESS): OrderStatus.PAID,
    (OrderStatus.PENDING, OrderEvent.GATEWAY_FAILURE): OrderStatus.FAILED,
    (OrderStatus.PENDING, OrderEvent.CLIENT_CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PENDING, OrderEvent.EXPIRED): OrderStatus.CANCELLED,
    (OrderStatus.PAID, OrderEvent.REFUND_APPROVED): OrderStatus.REFUNDED,
}


@dataclass(frozen=True)
class Accepted:
    next_status: OrderStatus

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: str

    @property
    def accepted(self) -> bool:
        return False


def transition(
    current: OrderStatus,
    event: OrderEvent,
    *,
    gateway_acknowledged: bool = False,
) -> Accepted | Rejected:
    """
    Decide the next status for `event` applied to an order in `current`.

    Args:
        current: Persisted status of the order
        event: Causal event being applied
        gateway_acknowledged: True once the order carries a gateway reference;
            a client cancel is only honoured before that point. The order
            service records the reference only with the first accepted gateway
            outcome, which already moves the order out of PENDING, so there the
            flag never changes the decision. It matters for callers that store
            an acknowledgement separately from the outcome.

    Returns:
        Accepted(next_status) or Rejected(reason)
    """
    current = OrderStatus(current)
    event = OrderEvent(event)

    target = _EDGES.get((current, event))
    if target is None:
        if current is OrderStatus.PAID:
            return Rejected(f"order already paid; only a refund may follow, got {event.value}")
        if current in TERMINAL_STATUSES:
            return Rejected(f"order is terminal ({current.value}); {event.value} ignored")
        return Rejected(f"{event.value} is not valid while {current.value}")

    if event is OrderEvent.CLIENT_CANCEL and gateway_acknowledged:
        return Rejected("gateway already acknowledged the order; it can no longer be cancelled")

    return Accepted(target)


def is_terminal(status: OrderStatus) -> bool:
    """True for statuses where a poller stops (PAID still admits a refund)."""
    return OrderStatus(status) in TERMINAL_STATUSES


def reachable_statuses() -> frozenset[OrderStatus]:
    """All statuses reachable from PENDING through the edge table."""
    seen = {OrderStatus.PENDING}
    frontier = [OrderStatus.PENDING]
    while frontier:
        status = frontier.pop()
        for (source, _event), target in _EDGES.items():
            if source is status and target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)
