"""
Redis connection manager and JSON cache helpers.

A single lazily created `redis.asyncio` client is shared by the whole process.
Cache helpers treat Redis failures as misses so that an unavailable cache only
degrades performance.
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger

logger = get_logger(prefix="[REDIS]")


class RedisManager:
    """Owns the process-wide Redis client."""

    def __init__(self):
        self._redis: Optional[aioredis.Redis] = None
        self.key_prefix = "brandlink:"

    async def get_redis(self) -> aioredis.Redis:
        """Return the shared client, creating it on first use."""
        if self._redis is None:
            logger.info("Creating Redis client for %s", settings.REDIS_URL.split("@")[-1])
            self._redis = aioredis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        return self._redis

    def _key(self, key: str) -> str:
        return key if key.startswith(self.key_prefix) else f"{self.key_prefix}{key}"

    async def get_json(self, key: str) -> Optional[Any]:
        """Read a JSON value; `None` on miss or Redis error."""
        try:
            client = await self.get_redis()
            raw = await client.get(self._key(key))
        except RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value with a TTL (defaults to `CACHE_DEFAULT_TTL`)."""
        try:
            client = await self.get_redis()
            await client.set(self._key(key), json.dumps(value, default=str), ex=ttl or settings.CACHE_DEFAULT_TTL)
            return True
        except RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            client = await self.get_redis()
            return await client.delete(*[self._key(k) for k in keys])
        except RedisError as e:
            logger.warning("Cache delete failed for %s: %s", keys, e)
            return 0

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching `pattern` using SCAN."""
        deleted = 0
        try:
            client = await self.get_redis()
            async for key in client.scan_iter(match=self._key(pattern), count=100):
                deleted += await client.delete(key)
        except RedisError as e:
            logger.warning("Cache pattern delete failed for %s: %s", pattern, e)
        return deleted

    async def ping(self) -> bool:
        try:
            client = await self.get_redis()
            return bool(await client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis client closed")


# Global redis manager instance
redis_manager = RedisManager()
