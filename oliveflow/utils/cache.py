"""Dashboard cache notification.

The dashboard keeps aggregate metrics in Redis under
``{dashboard_cache_prefix}:*``.  Every core mutation drops those keys.
Notification is best-effort: Redis being down is logged and ignored.
Routes queue notifications on the request session with
``notify_after_commit``; ``get_db`` sends them once the transaction has
committed, so no row lock is held while Redis is called.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None

# Session.info key holding notifications waiting for commit
PENDING_MUTATIONS = "pending_core_mutations"


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def invalidate_cache(pattern: str) -> int:
    """Delete keys matching *pattern*.  Returns how many were removed."""
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {pattern}")
        return len(keys)
    except (redis.RedisError, OSError) as e:
        logger.warning(f"Failed to invalidate cache: {e}")
        return 0


async def notify_core_mutation(reason: str) -> None:
    """Tell the dashboard its cached metrics are stale."""
    if not settings.dashboard_cache_enabled:
        return
    logger.debug(f"Core mutation: {reason}")
    await invalidate_cache(f"{settings.dashboard_cache_prefix}:*")


def notify_after_commit(db: AsyncSession, reason: str) -> None:
    """Queue a notification to be sent after *db* commits."""
    db.info.setdefault(PENDING_MUTATIONS, []).append(reason)


def discard_pending_mutations(db: AsyncSession) -> None:
    db.info.pop(PENDING_MUTATIONS, None)


async def flush_pending_mutations(db: AsyncSession) -> None:
    """Send the notifications queued on *db*.  Call only after commit."""
    for reason in dict.fromkeys(db.info.pop(PENDING_MUTATIONS, [])):
        await notify_core_mutation(reason)
