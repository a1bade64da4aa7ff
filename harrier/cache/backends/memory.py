"""
Harrier Cache - In-memory store.

LRU eviction over an OrderedDict, absolute-time TTLs on an injectable
clock, and a background sweeper that drains expired keys from a heap.
All operations run under one asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from collections import OrderedDict
from heapq import heapify, heappop, heappush
from typing import Any, Callable, List, Optional, Tuple

from ..core import CacheEntry, CacheStats, CacheStore

logger = logging.getLogger("harrier.cache.memory")


class MemoryCacheStore(CacheStore):
    """
    Process-local cache store.

    Args:
        max_size: Maximum number of entries before LRU eviction
        sweep_interval: Seconds between background TTL sweeps
        clock: Monotonic time source (seconds); injectable for tests
    """

    __slots__ = (
        "_max_size",
        "_sweep_interval",
        "_clock",
        "_store",
        "_lock",
        "_stats",
        "_ttl_heap",
        "_sweeper_task",
    )

    def __init__(
        self,
        max_size: int = 1000,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self._max_size = max_size
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._stats = CacheStats(max_size=max_size, backend="memory")
        self._ttl_heap: List[Tuple[float, str]] = []
        self._sweeper_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        """Start the background TTL sweeper."""
        if self._sweeper_task is None and self._sweep_interval > 0:
            self._sweeper_task = asyncio.get_running_loop().create_task(self._ttl_sweeper())

    async def shutdown(self) -> None:
        """Stop the sweeper and drop all data."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
        self._sweeper_task = None
        await self.clear()

    async def get(self, key: str) -> Any:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if entry.is_expired(self._clock()):
                self._remove(key)
                self._stats.misses += 1
                return None
            entry.hits += 1
            self._stats.hits += 1
            self._store.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self._max_size:
                evicted, _ = self._store.popitem(last=False)
                self._stats.evictions += 1
                logger.debug(f"Evicted least recently used key '{evicted}'")

            now = self._clock()
            expires_at = now + ttl if ttl is not None and ttl > 0 else None
            self._store[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
            if expires_at is not None:
                heappush(self._ttl_heap, (expires_at, key))
                if len(self._ttl_heap) > 2 * len(self._store):
                    self._rebuild_ttl_heap()
            self._stats.sets += 1
            self._stats.size = len(self._store)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if self._remove(key):
                self._stats.deletes += 1
                return True
            return False

    async def has(self, key: str) -> bool:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                self._remove(key)
                return False
            return True

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._store)
            self._store.clear()
            self._ttl_heap.clear()
            self._stats.size = 0
            return count

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            now = self._clock()
            return [
                key for key, entry in self._store.items()
                if not entry.is_expired(now) and (pattern == "*" or fnmatch.fnmatchcase(key, pattern))
            ]

    async def delete_pattern(self, pattern: str) -> int:
        async with self._lock:
            matched = [key for key in self._store if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                self._remove(key)
            self._stats.deletes += len(matched)
            if matched:
                logger.debug(f"Invalidated {len(matched)} keys matching '{pattern}'")
            return len(matched)

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        return self._stats

    # ── Private helpers ──────────────────────────────────────────────

    def _remove(self, key: str) -> bool:
        """Caller must hold lock."""
        if self._store.pop(key, None) is None:
            return False
        self._stats.size = len(self._store)
        return True

    def _rebuild_ttl_heap(self) -> None:
        """Drop heap entries left behind by overwritten or deleted keys. Caller must hold lock."""
        self._ttl_heap = [
            (entry.expires_at, key) for key, entry in self._store.items() if entry.expires_at is not None
        ]
        heapify(self._ttl_heap)

    async def _ttl_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            swept = await self._sweep_expired()
            if swept:
                logger.debug(f"TTL sweeper removed {swept} expired entries")

    async def _sweep_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            swept = 0
            while self._ttl_heap and self._ttl_heap[0][0] <= now:
                _, key = heappop(self._ttl_heap)
                entry = self._store.get(key)
                if entry is not None and entry.is_expired(now):
                    self._remove(key)
                    self._stats.evictions += 1
                    swept += 1
            return swept
