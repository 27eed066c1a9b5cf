"""
Redis connection holder.

Backs the API rate limiter. Optional: without REDIS_URL the client stays
unset and callers decide how to degrade.
"""

import logging

import redis.asyncio as aioredis

from lugha.core.config import settings

logger = logging.getLogger("lugha.redis")


class RedisCache:
    """Async Redis client with connection pooling and an availability flag."""

    def __init__(self):
        self.client: aioredis.Redis | None = None
        self._connected = False

    @property
    def is_available(self) -> bool:
        """Check if Redis is configured and connected."""
        return self._connected and self.client is not None

    async def connect(self) -> bool:
        """
        Establish connection to Redis.

        Returns:
            True if connection successful, False otherwise.
        """
        if not settings.REDIS_URL:
            logger.warning("REDIS_URL not configured - rate limiting storage disabled")
            return False

        try:
            self.client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
            await self.client.ping()
            self._connected = True
            logger.info("Connected to Redis at %s", settings.sanitize_url(settings.REDIS_URL))
            return True
        except Exception as e:
            logger.error("Failed to connect to Redis: %s", e)
            self.client = None
            self._connected = False
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            self._connected = False
            logger.info("Redis connection closed")


# Global instance
redis_cache = RedisCache()
