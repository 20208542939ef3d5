"""
Redis Client

Shared async Redis connection, used for rate limiting staff queue actions.
Redis is optional outside production; callers must handle ``None``.
"""

import logging

from redis.asyncio import Redis, from_url

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Open the Redis connection and verify it with a PING.

    Call this on application startup.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    logger.info("Redis connection established")
    return redis_client


async def ping_redis() -> str:
    """Return "connected", "not initialized" or raise the underlying Redis error."""
    if redis_client is None:
        return "not initialized"
    await redis_client.ping()
    return "connected"


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
