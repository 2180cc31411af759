"""
Redis cache layer — async Redis client with JSON helpers.

Provides:
    • Lazy async client (created on first use)
    • JSON get/set with TTL
    • Prefix invalidation

Every helper degrades to a miss / no-op when Redis is unreachable or
CACHE_ENABLED is false, so a cache outage never fails a request.

Usage:
    from backend.app.core.cache import cache_get, cache_set, cache_clear_prefix

    await cache_set("zones:recent:10", payload, ttl=60)
    cached = await cache_get("zones:recent:10")
    await cache_clear_prefix("zones:recent:")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy Redis client, initialised on first use
_redis_client = None


async def _get_redis():
    """Get or create async Redis client (None when caching is off)."""
    global _redis_client
    if not settings.CACHE_ENABLED:
        return None
    if _redis_client is None:
        try:
            import redis.asyncio as aioredis
            _redis_client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis client created: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis unavailable: %s — caching disabled", e)
            return None
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Get a cached value by key. Returns None on miss or error."""
    client = await _get_redis()
    if not client:
        return None
    try:
        raw = await client.get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set a cached value with optional TTL (seconds)."""
    client = await _get_redis()
    if not client:
        return False
    try:
        await client.set(key, json.dumps(value, default=str), ex=ttl or settings.REDIS_CACHE_TTL)
        return True
    except Exception as e:
        logger.warning("Cache SET error for %s: %s", key, e)
        return False


async def cache_clear_prefix(prefix: str) -> int:
    """Delete all keys starting with *prefix*."""
    client = await _get_redis()
    if not client:
        return 0
    try:
        keys = [key async for key in client.scan_iter(f"{prefix}*")]
        if keys:
            await client.delete(*keys)
        return len(keys)
    except Exception as e:
        logger.warning("Cache CLEAR error for %s*: %s", prefix, e)
        return 0


async def ping_cache() -> Optional[bool]:
    """True if Redis answers, False if it does not, None when caching is off."""
    client = await _get_redis()
    if not client:
        return None
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning("Cache PING error: %s", e)
        return False


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
