"""
Domain enums for the payment order lifecycle.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    @property
    def code(self) -> int:
        """Numeric code used by the list filter (table order, Pending=0)."""
        return STATUS_CODES.index(self)

    @classmethod
    def from_code(cls, code: int) -> "OrderStatus":
        return STATUS_CODES[code]


# Order matters: list filters address statuses by index.
STATUS_CODES = [
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
]


class OrderEvent(str, Enum):
    GATEWAY_SUCCESS = "gateway-success"
    GATEWAY_FAILURE = "gateway-failure"
    CLIENT_CANCEL = "client-cancel"
    REFUND_APPROVED = "refund-approved"
    EXPIRED = "expired"


class GatewayOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def event(self) -> OrderEvent:
        if self is GatewayOutcome.SUCCESS:
            return OrderEvent.GATEWAY_SUCCESS
        return OrderEvent.GATEWAY_FAILURE


class EventSource(str, Enum):
    CLIENT = "client"
    GATEWAY = "gateway"
    EXPIRY = "expiry"
    REFUND = "refund"
