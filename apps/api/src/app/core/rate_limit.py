"""
Rate Limiting Module

Sliding-window rate limiting backed by a Redis sorted set, with an
in-process fallback when Redis is unavailable.

Applied to counter staff actions that take a guest out of the queue on
their behalf (transfer, remove), so a stuck client or a mis-click loop
cannot drain a department's queue.
"""

import logging
import time

from fastapi import HTTPException, status
from redis.asyncio import Redis

from app.core import redis as redis_state

logger = logging.getLogger(__name__)

# Fallback storage: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": (
                    f"Rate limit exceeded. Maximum {limit} requests "
                    f"per {window_seconds} seconds."
                ),
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client: Redis,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using a Redis sorted set.

    Args:
        client: Redis client
        key: Rate limit key (e.g., "queue_action:transfer:registrar-desk-1")
        limit: Maximum requests allowed
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using in-memory storage.

    Only accurate for a single API process.
    """
    now = time.time()
    window_start = now - window_seconds

    hits = [ts for ts in _memory_store.get(key, []) if ts > window_start]
    if len(hits) >= limit:
        _memory_store[key] = hits
        return False

    hits.append(now)
    _memory_store[key] = hits
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Uses the shared Redis client when it is connected, otherwise process memory.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = redis_state.redis_client

    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


async def enforce_staff_action_limit(
    action: str,
    actor: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Raise RateLimitExceeded when ``actor`` exceeds ``limit`` uses of ``action``.

    Args:
        action: Queue action name (e.g., "transfer", "remove")
        actor: Free-text staff identifier sent by the counter panel
        limit: Maximum requests allowed
        window_seconds: Time window in seconds
    """
    key = f"queue_action:{action}:{actor.strip().lower() or 'anonymous'}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for '{actor}' on '{action}': {limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


__all__ = [
    "check_rate_limit",
    "enforce_staff_action_limit",
    "RateLimitExceeded",
]
