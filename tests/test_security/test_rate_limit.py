"""
Rate limiter tests.
"""

import httpx
import pytest
from fastapi import FastAPI

from complianceos.middleware.rate_limit import RateLimitMiddleware, TokenBucket


def _app(burst: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, rate=1, burst=burst)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


class TestTokenBucket:
    def test_drains_then_refuses(self):
        bucket = TokenBucket.full(capacity=2, per_minute=0)
        assert bucket.take()
        assert bucket.take()
        assert not bucket.take()

    def test_refill_is_capped(self):
        bucket = TokenBucket.full(capacity=3, per_minute=60)
        bucket.updated_at -= 3600
        bucket.take()
        assert bucket.tokens == pytest.approx(2, abs=0.01)


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_429_after_burst(self):
        transport = httpx.ASGITransport(app=_app(burst=2))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/ping")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
            limited = await client.get("/ping")
        assert limited.status_code == 429
        assert limited.headers["retry-after"] == "10"
        assert "detail" in limited.json()

    @pytest.mark.asyncio
    async def test_health_exempt(self):
        transport = httpx.ASGITransport(app=_app(burst=1))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(3):
                assert (await client.get("/health")).status_code == 200
