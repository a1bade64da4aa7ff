"""
Harrier Cache - Redis store for caches shared between processes.

Values are stored as JSON. Pattern deletes use SCAN + DEL so they never
block the server with KEYS.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import orjson

from ..core import CacheStats, CacheStore

logger = logging.getLogger("harrier.cache.redis")

_REDIS_GLOB_RE = re.compile(r"([*?\[\]\\])")


class RedisCacheStore(CacheStore):
    """
    Redis-backed store using redis-py's asyncio client.

    Args:
        url: Redis connection URL
        key_prefix: Prefix applied to every key in Redis
        max_connections: Connection pool size
        scan_count: COUNT hint for SCAN batches
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        key_prefix: str = "harrier:",
        max_connections: int = 10,
        scan_count: int = 500,
        client: Any = None,
    ):
        self._url = url
        self._key_prefix = key_prefix
        self._max_connections = max_connections
        self._scan_count = scan_count
        self._redis = client
        self._stats = CacheStats(backend="redis")

    @property
    def name(self) -> str:
        return "redis"

    async def initialize(self) -> None:
        if self._redis is not None:
            return
        try:
            import redis.asyncio as aioredis
        except ImportError:
            raise ImportError(
                "Redis cache store requires the 'redis' package. "
                "Install with: pip install harrier[redis]"
            )
        self._redis = aioredis.from_url(
            self._url,
            max_connections=self._max_connections,
            decode_responses=False,
        )
        await self._redis.ping()
        logger.info(f"Redis cache connected: {self._url}")

    async def shutdown(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def escape(self, value: str) -> str:
        """SCAN MATCH quotes special characters with a backslash."""
        return _REDIS_GLOB_RE.sub(r"\\\1", value)

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _strip(self, raw: Any) -> str:
        key = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        return key[len(self._key_prefix):]

    async def get(self, key: str) -> Any:
        raw = await self._redis.get(self._full_key(key))
        if raw is None:
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return orjson.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        payload = orjson.dumps(value)
        if ttl is not None and ttl > 0:
            await self._redis.set(self._full_key(key), payload, px=int(ttl * 1000))
        else:
            await self._redis.set(self._full_key(key), payload)
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        removed = await self._redis.delete(self._full_key(key))
        if removed:
            self._stats.deletes += 1
        return bool(removed)

    async def has(self, key: str) -> bool:
        return bool(await self._redis.exists(self._full_key(key)))

    async def clear(self) -> int:
        return await self.delete_pattern("*")

    async def keys(self, pattern: str = "*") -> List[str]:
        found = []
        async for raw in self._redis.scan_iter(match=self._full_key(pattern), count=self._scan_count):
            found.append(self._strip(raw))
        return found

    async def delete_pattern(self, pattern: str) -> int:
        batch: List[Any] = []
        removed = 0
        async for raw in self._redis.scan_iter(match=self._full_key(pattern), count=self._scan_count):
            batch.append(raw)
            if len(batch) >= self._scan_count:
                removed += await self._redis.delete(*batch)
                batch = []
        if batch:
            removed += await self._redis.delete(*batch)
        self._stats.deletes += removed
        return removed

    async def stats(self) -> CacheStats:
        return self._stats
