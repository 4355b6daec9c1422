"""Redis cache layer.

Holds small pieces of client state that must survive restarts, such as
the clock-integrity watermark. Every operation degrades to a no-op when
Redis is unreachable; callers keep their own in-memory copy.

Uses orjson for serialization.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import get_settings

logger = logging.getLogger(__name__)

_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Key prefixes
# =============================================================================

KEY_PREFIX_WATERMARK = "watermark:"  # Last seen device time: watermark:{device_id}


# =============================================================================
# Connection management
# =============================================================================

async def init_cache() -> None:
    """Connect to Redis; leaves the cache disabled if the server is down."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=5,
        decode_responses=False,  # values are orjson bytes
    )
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
    except (redis.ConnectionError, OSError) as e:
        logger.warning(f"Redis unreachable ({e}); watermark kept in memory only")
        _client = None
        _pool = None


async def close_cache() -> None:
    """Release the client and its pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    return _client is not None


# =============================================================================
# Raw values
# =============================================================================

async def get(key: str) -> bytes | None:
    """Read raw bytes; None when missing, unavailable or on a Redis error."""
    if _client is None:
        return None

    try:
        return await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET {key} failed: {e}")
        return None


async def set(key: str, value: bytes) -> bool:
    """Store raw bytes without expiry; the watermark must outlive restarts.

    Returns:
        True if written, False when Redis is unavailable or erred
    """
    if _client is None:
        return False

    try:
        await _client.set(key, value)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis SET {key} failed: {e}")
        return False


# =============================================================================
# JSON values (orjson)
# =============================================================================

async def get_json(key: str) -> Any | None:
    """Decode the value at ``key``; undecodable data reads as missing."""
    data = await get(key)
    if data is None:
        return None

    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Discarding undecodable value at {key}: {e}")
        return None


async def set_json(key: str, value: Any) -> bool:
    """Encode ``value`` with orjson and store it."""
    try:
        return await set(key, orjson.dumps(value))
    except (TypeError, orjson.JSONEncodeError) as e:
        logger.warning(f"Could not encode value for {key}: {e}")
        return False
