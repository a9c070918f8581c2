"""Redis store for distributed locks.

Handles:
- Connection lifecycle
- Distributed locks (one operational sweep at a time across instances)

Stock quantities are never cached here: availability is always read from
the database so callers cannot oversell on a stale value.

TTL policies:
- Repair sweep lock: settings.repair_lock_ttl_seconds (default 5 minutes)
"""

import logging

import redis.asyncio as redis

from catalog.settings import get_settings

# TTL constants (in seconds)
TTL_DEFAULT_LOCK = 60  # 1 minute

# Key prefixes
PREFIX_LOCK = "lock:"

# Lock keys
LOCK_REPAIR_INVENTORY = "repair:inventory"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def repair_lock_key(product_id: int | None = None) -> str:
    """Lock key for a repair sweep; a scoped sweep only blocks its own product."""
    if product_id is None:
        return LOCK_REPAIR_INVENTORY
    return f"{LOCK_REPAIR_INVENTORY}:{product_id}"


# ============================================================
# Distributed locks
# ============================================================


async def acquire_lock(key: str, ttl: int = TTL_DEFAULT_LOCK) -> bool:
    """Acquire a distributed lock.

    Args:
        key: Lock key (e.g., repair:inventory).
        ttl: Lock timeout in seconds.

    Returns:
        True if lock acquired, False if already locked.
    """
    lock_key = f"{PREFIX_LOCK}{key}"
    # SET NX (only if not exists) with TTL
    result = await _get_redis().set(lock_key, "1", nx=True, ex=ttl)
    return result is not None


async def release_lock(key: str) -> None:
    """Release a distributed lock.

    Args:
        key: Lock key.
    """
    await _get_redis().delete(f"{PREFIX_LOCK}{key}")

