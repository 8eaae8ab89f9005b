"""Shared test data builders."""
import json

from services import gateway_service
from services.order_service import OrderSpec

USER = "user-alice"
OTHER_USER = "user-bob"
ADMIN = "ops-admin"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_spec(order_no: str = "PO-TEST-0001", owner: str = USER, amount_minor: int = 4990,
              currency: str = "CNY") -> OrderSpec:
    return OrderSpec(order_no=order_no, owner=owner, amount_minor=amount_minor, currency=currency)


def signed_callback(order_no: str, outcome: str = "success", reference: str | None = "GW-REF-1"):
    """(body, headers) for POST /payment/callback signed with the test secret."""
    payload = {"orderNo": order_no, "outcome": outcome}
    if reference is not None:
        payload["gatewayReference"] = reference
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        gateway_service.SIGNATURE_HEADER: gateway_service.sign_payload(body),
    }
    return body, headers
