"""
Request rate limiting.

One token bucket per organization (per client IP for unauthenticated
calls). Buckets refill at RATE_LIMIT_DEFAULT requests per minute and hold
at most RATE_LIMIT_BURST tokens. State lives in this process only.
"""

import time
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from complianceos.config import settings

logger = structlog.get_logger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/ready", "/docs", "/openapi.json", "/redoc"})
RETRY_AFTER_SECONDS = 10


@dataclass
class TokenBucket:
    capacity: float
    refill_per_second: float
    tokens: float
    updated_at: float

    @classmethod
    def full(cls, capacity: float, per_minute: float) -> "TokenBucket":
        return cls(capacity, per_minute / 60.0, capacity, time.monotonic())

    def take(self) -> bool:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated_at) * self.refill_per_second)
        self.updated_at = now
        if self.tokens < 1:
            return False
        self.tokens -= 1
        return True


def bucket_key(request: Request) -> str:
    organization_id = getattr(request.state, "organization_id", None)
    if organization_id:
        return f"org:{organization_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """429 once the caller's bucket is empty. Runs after TenantMiddleware."""

    def __init__(self, app, rate: Optional[int] = None, burst: Optional[int] = None):
        super().__init__(app)
        self.per_minute = float(rate or settings.rate_limit_default)
        self.capacity = float(burst or settings.rate_limit_burst)
        self._buckets: dict[str, TokenBucket] = {}

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        key = bucket_key(request)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = TokenBucket.full(self.capacity, self.per_minute)

        if not bucket.take():
            logger.warning("rate_limit_exceeded", key=key, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded, retry shortly"},
                headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
            )
        return await call_next(request)
