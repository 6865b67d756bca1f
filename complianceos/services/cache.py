"""
Redis Cache Service.

Caches per-client aggregates that are read on every dashboard load:
- Compliance score (per client)
- Dashboard summary (per client)

Uses JSON serialization. Graceful degradation: with no REDIS_URL or an
unreachable server every call is a no-op, and a failed connect is not
retried for RECONNECT_BACKOFF_SECONDS.

Any committed flush that touches a client-scoped row drops that client's
aggregates; get_db calls invalidate_touched_clients() after the commit.
"""

import json
import time
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from sqlalchemy import event
from sqlalchemy.orm import Session

from complianceos.config import settings

logger = structlog.get_logger(__name__)

RECONNECT_BACKOFF_SECONDS = 30.0

_redis: Optional[aioredis.Redis] = None
_retry_at = 0.0


async def get_redis() -> Optional[aioredis.Redis]:
    """Lazy-init Redis connection. Returns None when Redis is disabled or down."""
    global _redis, _retry_at
    if not settings.redis_url:
        return None
    if _redis is None and time.monotonic() >= _retry_at:
        try:
            client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await client.ping()
            _redis = client
            logger.info("redis_connected")
        except Exception as e:
            logger.warning("redis_unavailable", error=str(e), retry_in=RECONNECT_BACKOFF_SECONDS)
            _redis = None
            _retry_at = time.monotonic() + RECONNECT_BACKOFF_SECONDS
    return _redis


async def cache_get(key: str) -> Optional[Any]:
    """Get from cache. Returns None on miss or when Redis is unavailable."""
    try:
        r = await get_redis()
        if r is None:
            return None
        val = await r.get(key)
        return json.loads(val) if val else None
    except Exception as e:
        logger.warning("cache_get_failed", key=key, error=str(e))
        return None


async def cache_set(key: str, value: Any, ttl_seconds: int | None = None) -> bool:
    """Set cache with TTL. Returns False if failed."""
    try:
        r = await get_redis()
        if r is None:
            return False
        await r.set(
            key,
            json.dumps(value, ensure_ascii=False, default=str),
            ex=ttl_seconds or settings.cache_ttl_seconds,
        )
        return True
    except Exception as e:
        logger.warning("cache_set_failed", key=key, error=str(e))
        return False


async def cache_delete(pattern: str) -> int:
    """Delete keys matching pattern. Returns count deleted."""
    try:
        r = await get_redis()
        if r is None:
            return 0
        keys = [key async for key in r.scan_iter(match=pattern)]
        if keys:
            return await r.delete(*keys)
        return 0
    except Exception as e:
        logger.warning("cache_delete_failed", pattern=pattern, error=str(e))
        return 0


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis, _retry_at
    _retry_at = 0.0
    if _redis is not None:
        await _redis.aclose()
        _redis = None


# ── Cache key builders ───────────────────────────────────────────────────


def score_key(client_id: str) -> str:
    return f"score:{client_id}"


def dashboard_key(client_id: str) -> str:
    return f"score:{client_id}:dashboard"


async def invalidate_client_scores(client_id: str) -> int:
    """Drop every cached aggregate for a client (score and dashboard)."""
    return await cache_delete(f"score:{client_id}*")


# ── Invalidation on commit ───────────────────────────────────────────────

_FLUSHED_CLIENTS = "cache_flushed_clients"
_COMMITTED_CLIENTS = "cache_committed_clients"


def _client_of(obj) -> Optional[str]:
    client_id = getattr(obj, "client_id", None)
    return str(client_id) if client_id is not None else None


@event.listens_for(Session, "before_flush")
def _track_client_writes(session, flush_context, instances):
    touched = session.info.setdefault(_FLUSHED_CLIENTS, set())
    for obj in (*session.new, *session.dirty, *session.deleted):
        client_id = _client_of(obj)
        if client_id is not None:
            touched.add(client_id)


@event.listens_for(Session, "after_commit")
def _promote_client_writes(session):
    flushed = session.info.pop(_FLUSHED_CLIENTS, set())
    session.info.setdefault(_COMMITTED_CLIENTS, set()).update(flushed)


@event.listens_for(Session, "after_soft_rollback")
def _forget_client_writes(session, previous_transaction):
    session.info.pop(_FLUSHED_CLIENTS, None)


async def invalidate_touched_clients(session) -> int:
    """Drop cached aggregates of every client written by the session's committed transactions."""
    clients = session.info.pop(_COMMITTED_CLIENTS, set())
    dropped = 0
    for client_id in sorted(clients):
        dropped += await invalidate_client_scores(client_id)
    return dropped
