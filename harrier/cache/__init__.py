"""
Harrier Cache - route result caching.

Provides:
- CacheStore contract with memory and Redis implementations
- CacheDirective and TTL parsing
- Deterministic key derivation and invalidation pattern substitution
- CacheManager holding an application's stores
"""

from .backends import MemoryCacheStore, RedisCacheStore
from .core import CacheEntry, CacheStats, CacheStore
from .directive import CacheDirective, parse_ttl
from .key_builder import CacheKeyBuilder, escape_glob, substitute_placeholders
from .manager import CacheManager, UnknownStoreError

__all__ = [
    "CacheDirective",
    "CacheEntry",
    "CacheKeyBuilder",
    "CacheManager",
    "CacheStats",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "UnknownStoreError",
    "escape_glob",
    "parse_ttl",
    "substitute_placeholders",
]
