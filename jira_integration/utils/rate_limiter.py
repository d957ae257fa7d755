"""Rate limiting utilities using Redis."""

import redis.asyncio as redis
import time
import uuid


class RateLimiter:
    """Sliding-window rate limiter using Redis sorted sets."""

    def __init__(self, redis_url: str, prefix: str = "rate_limit", limit: int = 100, window: int = 60):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix
        self.limit = limit
        self.window = window

    async def check_rate_limit(self, key: str) -> bool:
        """Record a hit for ``key``; False when the window is already full."""
        full_key = f"{self.prefix}:{key}"
        current_time = time.time()
        window_start = current_time - self.window

        # Remove old entries
        await self.redis_client.zremrangebyscore(full_key, 0, window_start)

        count = await self.redis_client.zcard(full_key)
        if count >= self.limit:
            return False

        # Members must be unique, several hits can share a timestamp
        await self.redis_client.zadd(full_key, {f"{current_time}:{uuid.uuid4().hex}": current_time})
        await self.redis_client.expire(full_key, self.window)

        return True

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self.redis_client.aclose()
