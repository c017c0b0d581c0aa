"""
Rate Limiting Module

Sliding-window rate limiting backed by Redis sorted sets, falling back to an
in-memory window when Redis is unavailable.

A ``RateLimiter`` is created once in the application lifespan and stored on
``app.state.rate_limiter``; each instance owns its own in-memory store, so
tests can create isolated limiters.
"""

import logging
import time

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis

from fellowship.core.config import settings

logger = logging.getLogger(__name__)

# Expired keys are swept from the in-memory store at most this often
MEMORY_SWEEP_INTERVAL_SECONDS = 60


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


class RateLimiter:
    """Sliding-window limiter keyed by arbitrary strings."""

    def __init__(self, redis: Redis | None = None, clock=time.time):
        self._redis = redis
        self._clock = clock
        # Format: {key: (expires_at, [timestamp, ...])}
        self._memory_store: dict[str, tuple[float, list[float]]] = {}
        self._next_sweep = 0.0

    async def _check_redis(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        window_start = now - window_seconds

        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        pipe.zadd(key, {str(now): now})
        pipe.expire(key, window_seconds)

        results = await pipe.execute()
        current_count = results[1]

        return current_count < limit

    def _sweep_memory(self, now: float) -> None:
        """Drop keys whose whole window has passed."""
        expired = [key for key, (expires_at, _) in self._memory_store.items() if expires_at <= now]
        for key in expired:
            del self._memory_store[key]
        self._next_sweep = now + MEMORY_SWEEP_INTERVAL_SECONDS

    def _check_memory(self, key: str, limit: int, window_seconds: int) -> bool:
        """Per-process fallback; does not coordinate across server instances."""
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep_memory(now)
        window_start = now - window_seconds

        _, stored = self._memory_store.get(key, (0.0, []))
        entries = [ts for ts in stored if ts > window_start]

        allowed = len(entries) < limit
        if allowed:
            entries.append(now)

        if entries:
            self._memory_store[key] = (entries[-1] + window_seconds, entries)
        else:
            self._memory_store.pop(key, None)
        return allowed

    async def check(self, key: str, limit: int, window_seconds: int) -> bool:
        """
        Check if a request is within rate limits.

        Tries Redis first, falls back to in-memory storage.

        Args:
            key: Unique key for this rate limit (e.g., "api:cohorts.create:<user id>")
            limit: Maximum requests allowed in the window
            window_seconds: Time window in seconds

        Returns:
            True if request is allowed, False if rate limit exceeded
        """
        if self._redis is not None:
            try:
                return await self._check_redis(key, limit, window_seconds)
            except Exception as e:
                logger.warning(f"Redis rate limit check failed, using memory: {e}")

        return self._check_memory(key, limit, window_seconds)

    async def enforce(self, key: str, limit: int, window_seconds: int) -> None:
        """
        Raise RateLimitExceeded when ``key`` is over its limit.

        Raises:
            RateLimitExceeded: When rate limit is exceeded (HTTP 429)
        """
        if not await self.check(key, limit, window_seconds):
            logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
            raise RateLimitExceeded(limit, window_seconds)


def get_rate_limiter(request: Request) -> RateLimiter:
    """FastAPI dependency returning the application's RateLimiter."""
    return request.app.state.rate_limiter


async def enforce_api_limit(limiter: RateLimiter, user_id: str, action: str) -> None:
    """Throttle a mutating endpoint per user and action."""
    await limiter.enforce(
        f"api:{action}:{user_id}",
        settings.rate_limit_api_requests,
        settings.rate_limit_api_window_seconds,
    )


async def enforce_upload_limit(limiter: RateLimiter, user_id: str) -> None:
    """Throttle content uploads per user."""
    await limiter.enforce(
        f"upload:{user_id}",
        settings.rate_limit_upload_requests,
        settings.rate_limit_upload_window_seconds,
    )


__all__ = [
    "RateLimiter",
    "RateLimitExceeded",
    "enforce_api_limit",
    "enforce_upload_limit",
    "get_rate_limiter",
]
