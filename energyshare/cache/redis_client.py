"""
Redis client and best-effort JSON cache helpers.

The device-status listing is cached under a generation-stamped key,
``devices:status:<generation>``. A listing resolves the generation before
it queries the database and stores its result under that key; switching a
device bumps the generation. A listing that read the database before the
switch committed therefore writes to a key nobody reads any more, and the
next request misses. Orphaned generations expire with the TTL.

Every cache operation is best-effort: connection failures are logged and
swallowed so requests fall through to the database.

CHANGELOG:
- 2026-10-19: Key the status listing by generation so stale writes are never served (STORY-110)
- 2026-10-04: Generalise read/write helpers to arbitrary keys (STORY-107)
- 2026-09-28: Initial creation (STORY-103)

TODO:
- None
"""

import json
import logging

import redis.asyncio as redis

from energyshare.config import get_settings

logger = logging.getLogger(__name__)

DEVICES_STATUS_KEY = "devices:status"
DEVICES_STATUS_GENERATION_KEY = "devices:status:generation"


async def get_redis() -> redis.Redis:
    """Create and return an async Redis client from application settings.

    Returns:
        redis.Redis: Async Redis client.
    """
    settings = get_settings()
    return redis.from_url(settings.REDIS_URL)


async def cache_get_json(key: str) -> dict | list | None:
    """Read and decode a cached JSON value.

    Args:
        key: Cache key.

    Returns:
        Decoded value, or None on miss or any Redis failure.
    """
    try:
        client = await get_redis()
        try:
            raw = await client.get(key)
            if raw is not None:
                return json.loads(raw)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis cache read failed for %s", key, exc_info=True)
    return None


async def cache_set_json(key: str, data: dict | list) -> None:
    """Store a JSON value with the configured TTL; failures are logged only.

    Args:
        key: Cache key.
        data: JSON-serializable value.
    """
    try:
        settings = get_settings()
        client = await get_redis()
        try:
            await client.set(key, json.dumps(data), ex=settings.CACHE_TTL_S)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis cache write failed for %s", key, exc_info=True)


async def devices_status_key() -> str | None:
    """Return the cache key of the current device-status generation.

    Resolve it once per listing, before querying the database, and use the
    same key for the read and the write.

    Returns:
        str or None: ``devices:status:<generation>``, or None when Redis is
        unreachable and the listing should bypass the cache.
    """
    try:
        client = await get_redis()
        try:
            generation = await client.get(DEVICES_STATUS_GENERATION_KEY)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis generation read failed", exc_info=True)
        return None
    return f"{DEVICES_STATUS_KEY}:{int(generation or 0)}"


async def invalidate_devices_cache() -> None:
    """Retire the cached device-status listing.

    Called after a successful turn-on, turn-off or estimated-time edit so
    the next listing reflects the change.
    """
    try:
        client = await get_redis()
        try:
            await client.incr(DEVICES_STATUS_GENERATION_KEY)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Failed to invalidate device status cache", exc_info=True)
