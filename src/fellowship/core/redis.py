"""
Redis Configuration

Async Redis client used as the rate-limit backend. The client is created in
the application lifespan and kept on ``app.state.redis``.
"""

import logging

from fastapi import Request
from redis.asyncio import Redis, from_url

logger = logging.getLogger(__name__)


async def init_redis(url: str) -> Redis:
    """
    Create a Redis client and verify the connection.

    Call this on application startup.
    """
    client = from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    return client


async def get_redis(request: Request) -> Redis | None:
    """
    FastAPI dependency returning the Redis client.

    Returns None if Redis is not available (optional dependency).
    """
    return getattr(request.app.state, "redis", None)


async def close_redis(client: Redis | None) -> None:
    """Close a Redis connection."""
    if client is not None:
        await client.aclose()
