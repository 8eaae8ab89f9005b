"""
Input validation utilities for the Payment Order API.

Each validator returns a list of FieldError (empty when the input is valid).
Routes compose them before calling the service layer and raise
ValidationError.from_field_errors(errors) on a non-empty result.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from domain.constants import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    MAX_AMOUNT_MINOR,
    MAX_LIMIT,
    MINOR_UNITS_PER_MAJOR,
    ORDER_NO_MAX_LENGTH,
    REFUND_REASON_MAX_LENGTH,
    STATUS_CODE_COUNT,
)

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
ORDER_NO_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
IDEMPOTENCY_KEY_MAX_LENGTH = 128


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


MAX_AMOUNT_MAJOR = Decimal(MAX_AMOUNT_MINOR) / MINOR_UNITS_PER_MAJOR
MINOR_UNIT = Decimal(1) / MINOR_UNITS_PER_MAJOR


def _to_decimal(amount: Any) -> Decimal | None:
    """Exact Decimal for a finite number (or numeric string); None otherwise."""
    if isinstance(amount, bool) or amount is None:
        return None
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def to_minor_units(amount: Any) -> int | None:
    """
    Convert a major-unit amount (e.g. 49.9) to integer minor units (4990).

    Returns None when the amount is not a number, has sub-minor precision,
    or lies outside +/- the maximum order amount.
    """
    value = _to_decimal(amount)
    # Bound first: quantize traps on exponents like 1e999999.
    if value is None or abs(value) > MAX_AMOUNT_MAJOR:
        return None
    cents = value.quantize(MINOR_UNIT)
    if cents != value:
        return None
    return int(cents.scaleb(2))


def validate_order_no(order_no: Any, field: str = "orderNo") -> list[FieldError]:
    if not isinstance(order_no, str) or not order_no:
        return [FieldError(field, "is required")]
    if len(order_no) > ORDER_NO_MAX_LENGTH:
        return [FieldError(field, f"must be at most {ORDER_NO_MAX_LENGTH} characters")]
    if not ORDER_NO_PATTERN.match(order_no):
        return [FieldError(field, "may only contain letters, digits, '-' and '_'")]
    return []


def validate_currency(currency: Any, field: str = "currency") -> list[FieldError]:
    if not isinstance(currency, str) or not CURRENCY_PATTERN.match(currency):
        return [FieldError(field, "must be a three-letter ISO 4217 code, e.g. 'CNY'")]
    return []


def validate_create_order(payload: dict) -> list[FieldError]:
    """Validate a create-order body: {amount, currency, idempotencyKey?}."""
    errors: list[FieldError] = []

    amount = _to_decimal(payload.get("amount"))
    if amount is None:
        errors.append(FieldError("amount", "must be a number"))
    elif amount <= 0:
        errors.append(FieldError("amount", "must be greater than 0"))
    elif amount > MAX_AMOUNT_MAJOR:
        errors.append(FieldError("amount", "exceeds the maximum order amount"))
    elif to_minor_units(amount) is None:
        errors.append(FieldError("amount", "must have at most 2 decimal places"))

    errors.extend(validate_currency(payload.get("currency")))

    key = payload.get("idempotencyKey")
    if key is not None:
        if not isinstance(key, str) or not key.strip():
            errors.append(FieldError("idempotencyKey", "must be a non-empty string"))
        elif len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            errors.append(
                FieldError("idempotencyKey", f"must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters")
            )

    return errors


def validate_order_spec(spec) -> list[FieldError]:
    """Invariants the service re-checks on an OrderSpec before any store access."""
    errors = validate_order_no(spec.order_no)
    if not spec.owner:
        errors.append(FieldError("owner", "is required"))
    if not isinstance(spec.amount_minor, int) or isinstance(spec.amount_minor, bool) or spec.amount_minor <= 0:
        errors.append(FieldError("amount", "must be greater than 0"))
    errors.extend(validate_currency(spec.currency))
    return errors


def validate_refund(payload: dict) -> list[FieldError]:
    """Validate a refund body: {orderNo, refundReason?}."""
    errors = validate_order_no(payload.get("orderNo"))
    reason = payload.get("refundReason")
    if reason is not None:
        if not isinstance(reason, str):
            errors.append(FieldError("refundReason", "must be a string"))
        elif len(reason) > REFUND_REASON_MAX_LENGTH:
            errors.append(
                FieldError("refundReason", f"must be at most {REFUND_REASON_MAX_LENGTH} characters")
            )
    return errors


def validate_refund_spec(spec) -> list[FieldError]:
    return validate_refund({"orderNo": spec.order_no, "refundReason": spec.refund_reason})


def validate_query_filter(
    page: Any = None,
    limit: Any = None,
    status: Any = None,
) -> tuple[dict, list[FieldError]]:
    """
    Validate list-endpoint paging.

    Returns ({"page", "limit", "status"}, errors) with defaults applied:
    page >= 1 (default 1), 1 <= limit <= 50 (default 10),
    status optional and restricted to codes 0..4.
    """
    errors: list[FieldError] = []
    values = {
        "page": DEFAULT_PAGE if page is None else page,
        "limit": DEFAULT_LIMIT if limit is None else limit,
        "status": status,
    }

    for field in ("page", "limit"):
        value = values[field]
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(FieldError(field, "must be an integer"))

    if not any(e.field == "page" for e in errors) and values["page"] < 1:
        errors.append(FieldError("page", "must be >= 1"))
    if not any(e.field == "limit" for e in errors) and not 1 <= values["limit"] <= MAX_LIMIT:
        errors.append(FieldError("limit", f"must be between 1 and {MAX_LIMIT}"))

    if status is not None:
        if isinstance(status, bool) or not isinstance(status, int) or not 0 <= status < STATUS_CODE_COUNT:
            errors.append(FieldError("status", f"must be one of 0..{STATUS_CODE_COUNT - 1}"))

    return values, errors


def validate_gateway_callback(payload: Any) -> list[FieldError]:
    """Validate a gateway callback body: {orderNo, outcome, gatewayReference?}."""
    if not isinstance(payload, dict):
        return [FieldError("body", "must be a JSON object")]
    errors = validate_order_no(payload.get("orderNo"))
    if payload.get("outcome") not in ("success", "failure"):
        errors.append(FieldError("outcome", "must be 'success' or 'failure'"))
    reference = payload.get("gatewayReference")
    if reference is not None and (not isinstance(reference, str) or not 0 < len(reference) <= 128):
        errors.append(FieldError("gatewayReference", "must be a string of 1-128 characters"))
    return errors
