"""
Redis caching client for selection reads.

Provides async Redis operations with:
- Automatic JSON serialization/deserialization
- TTL-based caching
- Graceful degradation on Redis failures
- Cache statistics

The cache is never a source of truth: every failure is a miss.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Async Redis cache client with graceful degradation.

    Features:
    - Automatic JSON serialization
    - TTL support
    - Cache statistics
    - Fallback to no-cache on failures
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", enabled: bool = True):
        """
        Initialize Redis cache client.

        Args:
            redis_url: Redis connection URL
            enabled: Whether caching is enabled (allows runtime disable)
        """
        self.redis_url = redis_url
        self.enabled = enabled
        self._client: Optional[redis.Redis] = None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    async def connect(self):
        """Establish Redis connection."""
        if not self.enabled:
            return

        try:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10,
            )
            # Test connection
            await self._client.ping()
            logger.info(f"Redis connected: {self.redis_url}")
        except (RedisError, OSError) as e:
            logger.error(f"Redis connection failed: {e}")
            logger.warning("Caching disabled - falling back to direct queries")
            self.enabled = False
            self._client = None

    async def close(self):
        """Close Redis connection."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value (deserialized from JSON) or None if not found
        """
        if not self.enabled or not self._client:
            self._stats["misses"] += 1
            return None

        try:
            value = await self._client.get(key)
            if value is None:
                self._stats["misses"] += 1
                logger.debug(f"Cache MISS: {key}")
                return None

            self._stats["hits"] += 1
            logger.debug(f"Cache HIT: {key}")

            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode error for key '{key}': {e}")
            self._stats["errors"] += 1
            return None
        except RedisError as e:
            logger.error(f"Redis GET error for key '{key}': {e}")
            self._stats["errors"] += 1
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (will be JSON serialized)
            ttl: Time to live in seconds (None = no expiration)

        Returns:
            True if successful, False otherwise
        """
        if not self.enabled or not self._client:
            return False

        try:
            serialized = json.dumps(value)

            if ttl:
                await self._client.setex(key, ttl, serialized)
            else:
                await self._client.set(key, serialized)

            self._stats["sets"] += 1
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except (TypeError, ValueError) as e:
            logger.error(f"JSON encode error for key '{key}': {e}")
            self._stats["errors"] += 1
            return False
        except RedisError as e:
            logger.error(f"Redis SET error for key '{key}': {e}")
            self._stats["errors"] += 1
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if key was deleted, False otherwise
        """
        if not self.enabled or not self._client:
            return False

        try:
            result = await self._client.delete(key)
            self._stats["deletes"] += 1
            logger.debug(f"Cache DELETE: {key}")
            return result > 0
        except RedisError as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            self._stats["errors"] += 1
            return False

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with hits, misses, hit rate, etc.
        """
        total_reads = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total_reads * 100) if total_reads > 0 else 0.0

        return {
            "enabled": self.enabled,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate_percent": round(hit_rate, 2),
            "sets": self._stats["sets"],
            "deletes": self._stats["deletes"],
            "errors": self._stats["errors"],
            "total_reads": total_reads,
        }


# Global cache instance (initialized at startup)
cache: Optional[RedisCache] = None


async def init_cache(redis_url: str, enabled: bool = True) -> RedisCache:
    """
    Initialize global Redis cache instance.

    Args:
        redis_url: Redis connection URL
        enabled: Whether caching is enabled

    Returns:
        Initialized RedisCache instance
    """
    global cache

    cache = RedisCache(redis_url=redis_url, enabled=enabled)
    await cache.connect()

    return cache


async def close_cache():
    """Close global cache connection."""
    global cache

    if cache:
        await cache.close()
        cache = None


def get_cache() -> Optional[RedisCache]:
    """
    Get global cache instance.

    Returns:
        RedisCache instance or None if not initialized
    """
    return cache
