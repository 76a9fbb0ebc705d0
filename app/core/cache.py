"""
Redis-backed cache for upstream provider responses.

Values are stored as JSON strings. A cache outage never fails the request
that triggered it: reads degrade to a miss and writes are skipped, both with
a logged error.
"""

import json
import logging
from typing import Any, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class CacheService:
    """
    Async key/value cache with per-entry TTL.

    Usage:
        cache = CacheService()
        await cache.set("edgar:company:cik=320193", payload, 86400)
        payload = await cache.get("edgar:company:cik=320193")
    """

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self._client = client
        settings = get_settings()
        self.default_ttl = settings.default_cache_ttl_seconds
        self.market_data_ttl = settings.market_data_ttl_seconds
        self.news_ttl = settings.news_ttl_seconds

    def _get_client(self) -> aioredis.Redis:
        """Get or create the Redis client (lazy so imports never connect)."""
        if self._client is None:
            settings = get_settings()
            self._client = aioredis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns:
            The JSON-decoded value, the raw string if it is not JSON,
            or None on a miss
        """
        try:
            raw = await self._get_client().get(key)
        except RedisError as e:
            logger.error(f"Cache get failed for {key}: {e}")
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store value under key, expiring after ttl_seconds when given."""
        serialized = value if isinstance(value, str) else json.dumps(value, default=str)
        try:
            client = self._get_client()
            if ttl_seconds:
                await client.setex(key, ttl_seconds, serialized)
            else:
                await client.set(key, serialized)
        except RedisError as e:
            logger.error(f"Cache set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        await self._get_client().delete(key)

    async def keys(self, pattern: str) -> List[str]:
        return list(await self._get_client().keys(pattern))

    async def flush_all(self) -> None:
        """Remove every key in the current Redis database."""
        await self._get_client().flushdb()
        logger.info("Cache flushed")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
