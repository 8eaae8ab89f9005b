"""
SQLAlchemy ORM models for the Payment Order API.

Tables:
    orders        — payment orders (one row per order_no, status machine)
    order_events  — accepted transitions, one row per causal event
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, Index,
)

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite DateTime columns drop tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Order(Base):
    """Payment order record. Status changes only through OrderService."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String(64), unique=True, nullable=False, index=True)  # idempotency key
    owner = Column(String(128), nullable=False, index=True)  # bearer subject that created it
    status = Column(String(20), nullable=False, default="PENDING", index=True)  # PENDING | PAID | FAILED | CANCELLED | REFUNDED
    amount_minor = Column(BigInteger, nullable=False)  # minor units (1.00 = 100)
    currency = Column(String(3), nullable=False)
    gateway_reference = Column(String(128), nullable=True)  # set once, on first gateway ack
    refund_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # For owner order history: filter by owner, order by created_at DESC
        Index("ix_orders_owner_created", "owner", "created_at"),
        # For the expiry sweeper: pending orders past their deadline
        Index("ix_orders_status_expires", "status", "expires_at"),
    )


class OrderEventLog(Base):
    """Accepted transitions; written in the same commit as the status change."""
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String(64), nullable=False, index=True)
    event = Column(String(30), nullable=False)  # client-cancel | gateway-success | ...
    from_status = Column(String(20), nullable=True)  # null for creation
    to_status = Column(String(20), nullable=False)
    source = Column(String(20), nullable=False)  # client | gateway | expiry | refund
    gateway_reference = Column(String(128), nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
