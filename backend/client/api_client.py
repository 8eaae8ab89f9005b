"""
HTTP client for the Payment Order API.

Unwraps the {"success": true, "data": ...} envelope and raises
PaymentApiError for error envelopes / non-2xx answers. Transport failures
(connect errors, timeouts) propagate as httpx exceptions.
"""
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class PaymentApiError(Exception):
    """Error envelope returned by the API."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[dict] = None):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def is_transient(self) -> bool:
        """Conflicts and 5xx are worth retrying; 4xx validation/auth are not."""
        return self.status_code == 409 or self.status_code >= 500


class PaymentClient:
    """
    Async client. Use as a context manager, or pass an existing
    httpx.AsyncClient (e.g. one bound to an ASGI app in tests).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.token = token

    async def __aenter__(self) -> "PaymentClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    def _headers(self) -> dict:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and isinstance(body, dict) and body.get("success"):
            return body

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            error = {}
        raise PaymentApiError(
            response.status_code,
            error.get("code", "http_error"),
            error.get("message", response.reason_phrase),
            error.get("details"),
        )

    async def create_order(self, amount: float, currency: str, idempotency_key: Optional[str] = None) -> dict:
        payload = {"amount": amount, "currency": currency}
        if idempotency_key is not None:
            payload["idempotencyKey"] = idempotency_key
        return (await self._request("POST", "/payment/create-order", json=payload))["data"]

    async def get_order_status(self, order_no: str) -> dict:
        return (await self._request("GET", f"/payment/order/{order_no}"))["data"]

    async def cancel_order(self, order_no: str) -> dict:
        return (await self._request("POST", f"/payment/order/{order_no}/cancel"))["data"]

    async def request_refund(self, order_no: str, refund_reason: Optional[str] = None) -> dict:
        payload = {"orderNo": order_no}
        if refund_reason is not None:
            payload["refundReason"] = refund_reason
        return (await self._request("POST", "/payment/refund", json=payload))["data"]

    async def list_orders(self, page: int = 1, limit: int = 10, status: Optional[int] = None) -> dict:
        """Returns {"data": [...], "meta": {...}}."""
        params = {"page": page, "limit": limit}
        if status is not None:
            params["status"] = status
        body = await self._request("GET", "/payment/orders", params=params)
        return {"data": body["data"], "meta": body.get("meta", {})}
