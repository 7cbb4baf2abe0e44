"""
Redis caching service for registration statistics.

CACHING STRATEGY
================

What we cache:
  - Per-event registration counts (registered / checked in / waitlist / total)
  - Cache key pattern: "registrations:stats:event={event_id}"

Why:
  - Status pages poll these counts far more often than registrations change
  - Counting means scanning the event's registrations; Redis answers in ~1ms

Invalidation strategy:
  - Every committed registration mutation (register, withdraw, drop,
    check-in, undo) deletes the event's key
  - TTL-based expiry (STATUS_CACHE_TTL) as safety net

  Invalidation happens after commit, outside the transaction, so a Redis
  hiccup can never fail or slow down an admission decision.

Why NOT cache per-participant status:
  - Each participant would need their own key and invalidation fan-out
  - The admission controller itself never reads from the cache; capacity is
    always re-derived from the database inside the transaction
"""

import json
from typing import Optional

from event_admission.core.config import get_settings
from event_admission.core.logging import get_logger
from event_admission.core.metrics import record_cache_operation
from event_admission.infrastructure.redis_client import get_redis

logger = get_logger(__name__)


def _make_stats_key(event_id: int) -> str:
    return f"registrations:stats:event={event_id}"


async def get_cached_stats(event_id: int) -> Optional[dict]:
    """Retrieve cached registration stats for an event."""
    client = await get_redis()
    if not client:
        return None

    key = _make_stats_key(event_id)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", "hit")
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", "miss")
        logger.debug("cache_miss", key=key)
    except Exception as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_stats(event_id: int, stats: dict) -> None:
    """Cache registration stats with TTL."""
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_stats_key(event_id)
    try:
        await client.setex(key, settings.STATUS_CACHE_TTL, json.dumps(stats))
        record_cache_operation("set", "ok")
        logger.debug("cache_set", key=key, ttl=settings.STATUS_CACHE_TTL)
    except Exception as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_registration_stats(event_id: int) -> None:
    """Drop cached stats for an event after its registrations changed."""
    client = await get_redis()
    if not client:
        return

    key = _make_stats_key(event_id)
    try:
        await client.delete(key)
        record_cache_operation("invalidate", "ok")
        logger.debug("cache_invalidated", key=key)
    except Exception as e:
        record_cache_operation("invalidate", "error")
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
