"""
Redis caching service for class listings and session availability.

CACHING STRATEGY
================

What we cache:
  - Bookable class listings (JSON-serialized)
    key: "classes:list:on={date}&all={include_unpublished}"
  - Per-session availability (confirmed count / capacity)
    key: "classes:availability:{class_id}:{booking_date}"

Why:
  - The class timetable and "spots left" badges are read on every page view
  - They change only when a booking for that class is created, cancelled or
    completed

Invalidation strategy:
  - On any booking mutation for a class: delete that class's availability
    keys and every listing key (SCAN by prefix)
  - TTL-based expiry as safety net

What we never cache:
  - Anything the booking engine decides on. The capacity gate and the
    concession ledger always read the database inside their transaction;
    a stale "spots left" number can only mislead the UI, never overbook.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None

LIST_PREFIX = "classes:list:"
AVAILABILITY_PREFIX = "classes:availability:"


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def _make_class_list_key(on_date: date, include_unpublished: bool) -> str:
    return f"{LIST_PREFIX}on={on_date.isoformat()}&all={include_unpublished}"


def _make_availability_key(class_id: int, booking_date: date) -> str:
    return f"{AVAILABILITY_PREFIX}{class_id}:{booking_date.isoformat()}"


async def _get_json(key: str) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def _set_json(key: str, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def get_cached_classes(on_date: date, include_unpublished: bool) -> Optional[dict]:
    return await _get_json(_make_class_list_key(on_date, include_unpublished))


async def set_cached_classes(on_date: date, include_unpublished: bool, data: dict) -> None:
    await _set_json(_make_class_list_key(on_date, include_unpublished), data)


async def get_cached_availability(class_id: int, booking_date: date) -> Optional[dict]:
    return await _get_json(_make_availability_key(class_id, booking_date))


async def set_cached_availability(class_id: int, booking_date: date, data: dict) -> None:
    await _set_json(_make_availability_key(class_id, booking_date), data)


async def invalidate_class_cache(class_id: int) -> None:
    """
    Drop cached availability for every date of one class, plus all listings.
    Uses SCAN to find and delete keys matching the prefixes.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        for pattern in (f"{AVAILABILITY_PREFIX}{class_id}:*", f"{LIST_PREFIX}*"):
            async for key in client.scan_iter(match=pattern, count=100):
                await client.delete(key)
                deleted += 1
        logger.info("cache_invalidated", class_id=class_id, keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", class_id=class_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
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
