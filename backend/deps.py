"""
Shared FastAPI dependencies.

Centralizes the per-request wiring (DB session -> order store -> order
service), the order-creation policy and post-transition hooks and list-endpoint paging so routers
import from a single place.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.enums import OrderStatus
from domain.errors import ValidationError
from services.order_service import CreationPolicy, OrderService, TransitionListener
from services.order_store import OrderFilter, SqlOrderStore
from utils.validators import validate_query_filter


def get_creation_policy(request: Request) -> Optional[CreationPolicy]:
    """
    Subscription/permission gate consulted before an order is created.

    The policy is owned by the subscription service; the app exposes a slot
    for it on app.state.creation_policy (None = allow everyone).
    """
    return getattr(request.app.state, "creation_policy", None)


def get_transition_listener(request: Request) -> Optional[TransitionListener]:
    """Post-payment hook on app.state.transition_listener (None = nobody listens)."""
    return getattr(request.app.state, "transition_listener", None)


def get_order_store(db: AsyncSession = Depends(get_db)) -> SqlOrderStore:
    return SqlOrderStore(db)


def get_order_service(
    store: SqlOrderStore = Depends(get_order_store),
    creation_policy: Optional[CreationPolicy] = Depends(get_creation_policy),
    transition_listener: Optional[TransitionListener] = Depends(get_transition_listener),
) -> OrderService:
    return OrderService(
        store,
        max_attempts=settings.cas_max_attempts,
        order_ttl=timedelta(minutes=settings.order_expire_minutes),
        creation_policy=creation_policy,
        transition_listener=transition_listener,
    )


def order_filter_params(
    page: Optional[int] = Query(None, description="Page number, >= 1 (default 1)"),
    limit: Optional[int] = Query(None, description="Page size, 1..50 (default 10)"),
    status: Optional[int] = Query(
        None, description="0=PENDING 1=PAID 2=FAILED 3=CANCELLED 4=REFUNDED"
    ),
) -> OrderFilter:
    values, errors = validate_query_filter(page=page, limit=limit, status=status)
    if errors:
        raise ValidationError.from_field_errors(errors)
    return OrderFilter(
        page=values["page"],
        limit=values["limit"],
        status=OrderStatus.from_code(values["status"]) if values["status"] is not None else None,
    )
