"""
Domain constants used across services/routers.
"""

from domain.enums import OrderStatus

# Statuses after which a poller stops querying.
TERMINAL_STATUSES = frozenset({
    OrderStatus.PAID,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
})

# Statuses whose arrival is announced to the post-transition listener.
SETTLEMENT_STATUSES = frozenset({
    OrderStatus.PAID,
    OrderStatus.REFUNDED,
})

# Query filter bounds
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 50

# Order number prefix for idempotency-key derived numbers
ORDER_NO_PREFIX = "PO"
ORDER_NO_MAX_LENGTH = 64

# Amounts are stored in minor units (2 decimal places)
MINOR_UNITS_PER_MAJOR = 100
MAX_AMOUNT_MINOR = 100_000_000_00

REFUND_REASON_MAX_LENGTH = 500

# Audit event name for the row written alongside order creation
ORDER_CREATED_EVENT = "created"

# Number of list-filter status codes (Pending=0 ... Refunded=4)
STATUS_CODE_COUNT = len(OrderStatus)
