"""
Python client for the Payment Order API.

    PaymentClient       — typed wrapper over the REST endpoints (httpx)
    OrderStatusPoller   — cancellable status polling until a terminal state
"""
from client.api_client import PaymentApiError, PaymentClient
from client.polling import OrderStatusPoller, PollHandle

__all__ = ["PaymentApiError", "PaymentClient", "OrderStatusPoller", "PollHandle"]
