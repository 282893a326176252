from __future__ import annotations

import threading
import time
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from .logging import logger


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each incoming request and expose it in headers.

    - Reuses a well-formed inbound `X-Request-ID`, otherwise generates one
    - Sets `request.state.request_id`
    - Adds `X-Request-ID` to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        inbound = (request.headers.get("x-request-id") or "").strip()
        request_id = inbound if 0 < len(inbound) <= 128 and inbound.isprintable() else uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class _TokenBucket:
    """Thread-safe token bucket that refills to capacity every fixed interval (seconds)."""

    def __init__(self, capacity: int, refill_interval_sec: float) -> None:
        self.capacity = max(1, capacity)
        self.tokens = self.capacity
        self.refill_interval = max(1.0, float(refill_interval_sec))
        self.last_refill = time.time()
        self._lock = threading.Lock()

    def allow(self) -> tuple[bool, int]:
        """Consume one token if available and return the remaining count."""
        now = time.time()
        with self._lock:
            if now - self.last_refill >= self.refill_interval:
                self.tokens = self.capacity
                self.last_refill = now
            if self.tokens > 0:
                self.tokens -= 1
                return True, self.tokens
            return False, 0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-IP rate limiting with token buckets (429 on exhaustion).

    バケット数は `max_buckets` で上限を設け、古いものから捨ててメモリ使用量を抑える。
    """

    def __init__(
        self,
        app,
        *,
        ip_capacity_per_minute: int,
        max_buckets: int = 10_000,
    ) -> None:
        super().__init__(app)
        self._capacity = max(1, int(ip_capacity_per_minute))
        self._max_buckets = max(1, int(max_buckets))
        self._buckets: OrderedDict[str, _TokenBucket] = OrderedDict()
        self._lock = threading.Lock()

    def _get_bucket(self, key: str) -> _TokenBucket:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                while len(self._buckets) >= self._max_buckets:
                    self._buckets.popitem(last=False)
                bucket = _TokenBucket(capacity=self._capacity, refill_interval_sec=60.0)
                self._buckets[key] = bucket
            else:
                self._buckets.move_to_end(key, last=True)
            return bucket

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        client_ip = request.client.host if request.client else "unknown"
        ok, remaining = self._get_bucket(client_ip).allow()
        if not ok:
            logger.warning("rate_limited", client_ip=client_ip, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too Many Requests (per IP)"},
                headers={
                    "Retry-After": "60",
                    "X-RateLimit-Limit-Ip": str(self._capacity),
                    "X-RateLimit-Remaining-Ip": "0",
                },
            )
        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit-Ip", str(self._capacity))
        response.headers.setdefault("X-RateLimit-Remaining-Ip", str(remaining))
        return response
