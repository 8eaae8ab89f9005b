"""
Tests for PaymentClient and the polling agent against the real app.

Tests: envelope unwrapping, error mapping (including malformed error bodies),
end-to-end create -> poll -> gateway callback -> completion.
"""
import asyncio

import httpx
import pytest

from client import OrderStatusPoller, PaymentApiError, PaymentClient
from tests.helpers import signed_callback


@pytest.fixture
def payment_client(client, user_token):
    return PaymentClient(http_client=client, token=user_token)


class TestPaymentClient:

    @pytest.mark.api
    async def test_create_and_query(self, payment_client):
        created = await payment_client.create_order(12.5, "USD", idempotency_key="basket-1")
        assert created["status"] == "PENDING"

        status = await payment_client.get_order_status(created["orderNo"])
        assert status["amount"] == 12.5
        assert status["currency"] == "USD"

        again = await payment_client.create_order(12.5, "USD", idempotency_key="basket-1")
        assert again["orderNo"] == created["orderNo"]
        assert again["created"] is False

    @pytest.mark.api
    async def test_error_envelope_raised(self, payment_client):
        with pytest.raises(PaymentApiError) as exc_info:
            await payment_client.get_order_status("PO-MISSING")
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "notfound"
        assert exc_info.value.is_transient is False

    @pytest.mark.api
    async def test_refund_and_cancel(self, client, payment_client):
        to_cancel = (await payment_client.create_order(1, "CNY", idempotency_key="c"))["orderNo"]
        cancelled = await payment_client.cancel_order(to_cancel)
        assert cancelled["status"] == "CANCELLED"

        to_refund = (await payment_client.create_order(1, "CNY", idempotency_key="r"))["orderNo"]
        with pytest.raises(PaymentApiError) as exc_info:
            await payment_client.request_refund(to_refund)
        assert exc_info.value.status_code == 403

        body, headers = signed_callback(to_refund)
        await client.post("/payment/callback", content=body, headers=headers)
        refunded = await payment_client.request_refund(to_refund, refund_reason="changed mind")
        assert refunded["status"] == "REFUNDED"

    @pytest.mark.api
    async def test_list_orders(self, payment_client):
        for i in range(3):
            await payment_client.create_order(1, "CNY", idempotency_key=f"l-{i}")
        page = await payment_client.list_orders(page=1, limit=2)
        assert len(page["data"]) == 2
        assert page["meta"]["total"] == 3

        with pytest.raises(PaymentApiError) as exc_info:
            await payment_client.list_orders(limit=0)
        assert exc_info.value.status_code == 400


class TestTransportErrors:

    @pytest.mark.unit
    async def test_service_unavailable_is_transient(self):
        def handler(request):
            return httpx.Response(
                503,
                json={"success": False, "error": {"code": "transientstore", "message": "down", "details": {}}},
            )

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        async with PaymentClient(http_client=http) as api:
            with pytest.raises(PaymentApiError) as exc_info:
                await api.get_order_status("PO1")
        await http.aclose()
        assert exc_info.value.code == "transientstore"
        assert exc_info.value.is_transient is True

    @pytest.mark.unit
    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        async with PaymentClient(http_client=http) as api:
            with pytest.raises(PaymentApiError) as exc_info:
                await api.get_order_status("PO1")
        await http.aclose()
        assert exc_info.value.status_code == 502
        assert exc_info.value.code == "http_error"

    @pytest.mark.unit
    @pytest.mark.parametrize("error", ["boom", ["boom"], None])
    async def test_malformed_error_field(self, error):
        def handler(request):
            return httpx.Response(500, json={"success": False, "error": error})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        async with PaymentClient(http_client=http) as api:
            with pytest.raises(PaymentApiError) as exc_info:
                await api.get_order_status("PO1")
        await http.aclose()
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "http_error"
        assert exc_info.value.message == "Internal Server Error"


class TestPollingEndToEnd:

    @pytest.mark.api
    async def test_poll_until_gateway_pays(self, client, payment_client):
        order_no = (await payment_client.create_order(49.9, "CNY"))["orderNo"]
        completed = []
        # the test database is one shared connection; keep requests from overlapping
        lock = asyncio.Lock()

        async def fetch(no):
            async with lock:
                return await payment_client.get_order_status(no)

        poller = OrderStatusPoller(fetch, interval=0.25, query_timeout=0.2)
        handle = poller.start(order_no, on_complete=completed.append)

        await asyncio.sleep(0.3)
        assert handle.done is False
        body, headers = signed_callback(order_no)
        async with lock:
            await client.post("/payment/callback", content=body, headers=headers)

        result = await asyncio.wait_for(handle.wait(), timeout=5)
        assert result["status"] == "PAID"
        assert completed == [result]
        assert handle.queries >= 2
