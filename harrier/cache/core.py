"""
Harrier Cache - Core types and the store contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, List, Optional

from .key_builder import escape_glob


@dataclass(slots=True)
class CacheEntry:
    """Stored value plus its absolute expiry on the owning store's clock."""
    key: str
    value: Any
    expires_at: Optional[float] = None
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

@dataclass
class CacheStats:
    """Counters reported by CacheStore.stats()."""
    backend: str
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    size: int = 0
    max_size: Optional[int] = None

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def as_dict(self) -> dict:
        return {**asdict(self), "hit_ratio": round(self.hit_ratio, 4)}

class CacheStore(ABC):
    """
    Asynchronous key/value store used for route result caching.

    Stores are shared by every concurrent request and must be internally
    safe under concurrent access. Patterns are shell-style globs where
    ``*`` matches any run of characters.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    async def initialize(self) -> None:
        """Connect or start background work. Default: nothing to do."""

    async def shutdown(self) -> None:
        """Release resources. Default: nothing to do."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value; ttl in seconds, None or <= 0 means no expiry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def has(self, key: str) -> bool:
        ...

    @abstractmethod
    async def clear(self) -> int:
        ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        ...

    def escape(self, value: str) -> str:
        """Quote value so it matches literally inside this store's patterns."""
        return escape_glob(value)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching pattern; returns the number removed."""
        count = 0
        for key in await self.keys(pattern):
            if await self.delete(key):
                count += 1
        return count

    async def stats(self) -> CacheStats:
        return CacheStats(backend=self.name)
