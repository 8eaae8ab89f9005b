"""
Payment order endpoints.

Endpoints:
    POST /payment/create-order            — create (idempotent per idempotencyKey)
    GET  /payment/order/{order_no}        — status projection (public, pollable)
    POST /payment/order/{order_no}/cancel — owner cancels a pending order
    POST /payment/refund                  — refund a paid order
    GET  /payment/orders                  — paginated list (own orders; admin sees all)
    POST /payment/callback                — signed gateway callback (public)
    GET  /payment/expiry/status           — expiry sweeper state (admin)
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from domain.enums import GatewayOutcome
from domain.errors import ValidationError
from domain.responses import paginated_response, success_response
from deps import get_order_service, order_filter_params
from middleware.auth import Principal, require_admin, require_bearer
from middleware.rate_limit import rate_limit
from models import (
    CallbackAck,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderDetailView,
    OrderStatusView,
    RefundRequest,
)
from services import expiry_service, gateway_service
from services.order_service import OrderService, OrderSpec, RefundSpec, generate_order_no
from services.order_store import OrderFilter
from utils.validators import (
    to_minor_units,
    validate_create_order,
    validate_gateway_callback,
    validate_order_no,
    validate_refund,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


def _check_order_no(order_no: str) -> None:
    errors = validate_order_no(order_no)
    if errors:
        raise ValidationError.from_field_errors(errors)


# ════════════════════════════════════════════════════════════════════
# Client endpoints
# ════════════════════════════════════════════════════════════════════


@router.post("/create-order")
async def create_order(
    req: CreateOrderRequest,
    principal: Principal = Depends(require_bearer),
    service: OrderService = Depends(get_order_service),
    _rate=Depends(rate_limit(max_requests=30, window_seconds=60)),
):
    """
    Create a PENDING order.

    Safe to retry: the same idempotencyKey from the same caller always maps
    to the same orderNo, and a repeat returns the stored order unchanged.
    """
    errors = validate_create_order(req.to_json())
    if errors:
        raise ValidationError.from_field_errors(errors)

    spec = OrderSpec(
        order_no=generate_order_no(principal.subject, req.idempotency_key),
        owner=principal.subject,
        amount_minor=to_minor_units(req.amount),
        currency=req.currency,
    )
    outcome = await service.create_order(spec)
    return success_response(
        data=CreateOrderResponse.from_order(outcome.order, outcome.created).to_json()
    )


@router.get("/order/{order_no}")
async def get_order_status(
    order_no: str,
    service: OrderService = Depends(get_order_service),
):
    """Current persisted state of an order. No side effects."""
    _check_order_no(order_no)
    order = await service.get_order(order_no)
    return success_response(data=OrderStatusView.from_order(order).to_json())


@router.post("/order/{order_no}/cancel")
async def cancel_order(
    order_no: str,
    principal: Principal = Depends(require_bearer),
    service: OrderService = Depends(get_order_service),
):
    _check_order_no(order_no)
    order = await service.cancel_order(order_no, principal.subject)
    return success_response(data=OrderDetailView.from_order(order).to_json())


@router.post("/refund")
async def request_refund(
    req: RefundRequest,
    principal: Principal = Depends(require_bearer),
    service: OrderService = Depends(get_order_service),
    _rate=Depends(rate_limit(max_requests=20, window_seconds=60)),
):
    """Refund a PAID order. Callers other than the owner or an admin, and any other status, answer 403."""
    errors = validate_refund(req.to_json())
    if errors:
        raise ValidationError.from_field_errors(errors)

    logger.info(f"Refund requested for {req.order_no} by {principal.subject}")
    order = await service.request_refund(
        RefundSpec(order_no=req.order_no, refund_reason=req.refund_reason),
        principal.subject,
        is_admin=principal.is_admin,
    )
    return success_response(data=OrderDetailView.from_order(order).to_json())


@router.get("/orders")
async def list_orders(
    order_filter: OrderFilter = Depends(order_filter_params),
    principal: Principal = Depends(require_bearer),
    service: OrderService = Depends(get_order_service),
):
    """Offset-paginated orders, newest first."""
    owner = None if principal.is_admin else principal.subject
    orders, total = await service.list_orders(order_filter, owner=owner)
    return paginated_response(
        [OrderDetailView.from_order(o).to_json() for o in orders],
        page=order_filter.page,
        limit=order_filter.limit,
        total=total,
    )


# ════════════════════════════════════════════════════════════════════
# Gateway callback
# ════════════════════════════════════════════════════════════════════


@router.post("/callback")
async def gateway_callback(
    request: Request,
    service: OrderService = Depends(get_order_service),
):
    """
    Asynchronous gateway outcome for a previously created order.

    Always verifies the HMAC signature (fail closed). A stale or duplicate
    callback is acknowledged with applied=false so the gateway stops
    redelivering it; a 409 asks the gateway to retry later.
    """
    body = await request.body()
    signature = request.headers.get(gateway_service.SIGNATURE_HEADER, "")
    if not gateway_service.verify_callback_signature(body, signature):
        raise HTTPException(status_code=401, detail="Invalid gateway signature")

    try:
        data = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid JSON payload", field="body")

    errors = validate_gateway_callback(data)
    if errors:
        raise ValidationError.from_field_errors(errors)

    result = await service.apply_gateway_callback(
        data["orderNo"],
        GatewayOutcome(data["outcome"]),
        data.get("gatewayReference"),
    )
    ack = CallbackAck(
        order_no=result.order.order_no,
        applied=result.applied,
        status=result.order.status,
        reason=result.reason,
    )
    return success_response(data=ack.to_json())


# ════════════════════════════════════════════════════════════════════
# Operations
# ════════════════════════════════════════════════════════════════════


@router.get("/expiry/status")
async def get_expiry_status(_admin: Principal = Depends(require_admin)):
    return success_response(data=expiry_service.get_status())
