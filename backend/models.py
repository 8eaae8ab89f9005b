"""
Pydantic models for request/response shapes.

Request bodies are typed loosely on purpose: field rules live in
utils.validators so every violation is reported together as a 400 with
the offending fields, instead of FastAPI's per-type 422.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from db_models import Order
from domain.constants import MINOR_UNITS_PER_MAJOR
from domain.enums import OrderStatus


class ApiBase(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ── Requests ───────────────────────────────────────────────────────

class CreateOrderRequest(ApiBase):
    amount: Any = None
    currency: Any = None
    idempotency_key: Any = Field(default=None, alias="idempotencyKey")


class RefundRequest(ApiBase):
    order_no: Any = Field(default=None, alias="orderNo")
    refund_reason: Any = Field(default=None, alias="refundReason")


# ── Responses ──────────────────────────────────────────────────────

def _major(amount_minor: int) -> float:
    return amount_minor / MINOR_UNITS_PER_MAJOR


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value is not None else None


class CreateOrderResponse(ApiBase):
    order_no: str = Field(..., alias="orderNo")
    status: OrderStatus
    created: bool = Field(..., description="False when the idempotency key matched an existing order")

    @classmethod
    def from_order(cls, order: Order, created: bool) -> "CreateOrderResponse":
        return cls(order_no=order.order_no, status=OrderStatus(order.status), created=created)


class OrderStatusView(ApiBase):
    """Read-only projection served by GET /payment/order/{orderNo}."""
    order_no: str = Field(..., alias="orderNo")
    status: OrderStatus
    status_code: int = Field(..., alias="statusCode")
    amount: float
    currency: str
    gateway_reference: Optional[str] = Field(default=None, alias="gatewayReference")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderStatusView":
        status = OrderStatus(order.status)
        return cls(
            order_no=order.order_no,
            status=status,
            status_code=status.code,
            amount=_major(order.amount_minor),
            currency=order.currency,
            gateway_reference=order.gateway_reference,
            updated_at=_iso(order.updated_at),
        )


class OrderDetailView(OrderStatusView):
    """Full record, used by list/refund/cancel responses."""
    refund_reason: Optional[str] = Field(default=None, alias="refundReason")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")
    paid_at: Optional[str] = Field(default=None, alias="paidAt")
    cancelled_at: Optional[str] = Field(default=None, alias="cancelledAt")
    refunded_at: Optional[str] = Field(default=None, alias="refundedAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderDetailView":
        base = OrderStatusView.from_order(order).model_dump()
        return cls(
            **base,
            refund_reason=order.refund_reason,
            created_at=_iso(order.created_at),
            expires_at=_iso(order.expires_at),
            paid_at=_iso(order.paid_at),
            cancelled_at=_iso(order.cancelled_at),
            refunded_at=_iso(order.refunded_at),
        )


class CallbackAck(ApiBase):
    """Answer to a gateway callback; applied=False means stale/duplicate."""
    order_no: str = Field(..., alias="orderNo")
    applied: bool
    status: OrderStatus
    reason: Optional[str] = None
