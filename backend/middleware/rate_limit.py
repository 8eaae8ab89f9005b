"""
In-memory rate limiting for mutating payment endpoints.

Sliding-window counter per (caller, route). The caller is the bearer token
when one is presented, otherwise the client IP, so several users behind one
NAT do not share a budget.
Not suitable for multi-worker deployments (use Redis instead).
"""
import hashlib
import time
import logging
from collections import deque

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window request counter keyed by an arbitrary string.

    A key is dropped once its window empties, and keys idle for longer than
    the largest window seen are swept at most once per that window.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}
        self._max_window = 0.0
        self._last_prune = clock()

    def __len__(self) -> int:
        return len(self._requests)

    def _cleanup(self, key: str, window_seconds: float):
        """Drop timestamps that fell out of the window."""
        window = self._requests.get(key)
        if window is None:
            return
        cutoff = self._clock() - window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        if not window:
            del self._requests[key]

    def _prune(self):
        """Forget keys with no request inside the largest window."""
        now = self._clock()
        if now - self._last_prune < self._max_window:
            return
        cutoff = now - self._max_window
        idle = [key for key, window in self._requests.items() if not window or window[-1] <= cutoff]
        for key in idle:
            del self._requests[key]
        self._last_prune = now
        if idle:
            logger.debug(f"Rate limiter dropped {len(idle)} idle keys")

    def check(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """Record a request for `key`; False if it exceeds the limit."""
        self._max_window = max(self._max_window, window_seconds)
        self._prune()
        self._cleanup(key, window_seconds)
        window = self._requests.setdefault(key, deque())
        if len(window) >= max_requests:
            return False
        window.append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: float) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests.get(key, ())))

    def reset(self):
        self._requests.clear()
        self._last_prune = self._clock()


# Process-wide limiter shared by every rate_limit() dependency
limiter = RateLimiter()


def _caller_key(request: Request) -> str:
    authorization = request.headers.get("authorization")
    if authorization:
        digest = hashlib.sha256(authorization.encode("utf-8")).hexdigest()[:16]
        return f"token:{digest}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory for rate limiting.

    Usage:
        @router.post("/refund")
        async def refund(..., _rate=Depends(rate_limit(20, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        key = f"{_caller_key(request)}:{request.url.path}"

        if not limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded on {request.url.path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"limit": max_requests, "windowSeconds": window_seconds},
                headers={
                    "Retry-After": str(window_seconds),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check_rate_limit
