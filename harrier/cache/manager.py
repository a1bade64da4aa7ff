"""
Harrier Cache - Per-application store registry.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Any, Optional

from .backends.memory import MemoryCacheStore
from .core import CacheStore
from .directive import CacheDirective
from .key_builder import CacheKeyBuilder, substitute_placeholders

logger = logging.getLogger("harrier.cache.manager")


class UnknownStoreError(LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No cache store registered under '{name}'")


class CacheManager:
    """
    Owns the default store plus any named stores for one application.

    Args:
        default: Default store (an in-memory store when omitted)
        key_builder: Key derivation strategy
    """

    def __init__(self, default: Optional[CacheStore] = None, key_builder: Optional[CacheKeyBuilder] = None):
        self._default = default or MemoryCacheStore()
        self._stores: Dict[str, CacheStore] = {}
        self.key_builder = key_builder or CacheKeyBuilder()

    @property
    def default(self) -> CacheStore:
        return self._default

    def set_default(self, store: CacheStore) -> None:
        self._default = store

    def register_store(self, name: str, store: CacheStore) -> None:
        self._stores[name] = store

    def store(self, name: Optional[str] = None) -> CacheStore:
        if name is None:
            return self._default
        try:
            return self._stores[name]
        except KeyError:
            raise UnknownStoreError(name) from None

    def store_for(self, directive: CacheDirective) -> CacheStore:
        return self.store(directive.store)

    def _all_stores(self) -> Iterable[CacheStore]:
        seen = []
        for store in [self._default, *self._stores.values()]:
            if all(store is not other for other in seen):
                seen.append(store)
        return seen

    async def initialize(self) -> None:
        for store in self._all_stores():
            await store.initialize()
            logger.debug(f"Cache store '{store.name}' initialized")

    async def shutdown(self) -> None:
        for store in self._all_stores():
            await store.shutdown()

    async def invalidate(
        self,
        patterns: Iterable[str],
        params: Optional[Mapping[str, Any]] = None,
        store: Optional[str] = None,
    ) -> int:
        """
        Substitute placeholders in each pattern and delete matching keys.

        Substituted values are escaped for the target store, so a value such
        as "*" only removes the key spelled with a literal "*".
        """
        target = self.store(store)
        removed = 0
        for pattern in patterns:
            concrete = substitute_placeholders(pattern, params or {}, escape=target.escape)
            count = await target.delete_pattern(concrete)
            logger.debug(f"Invalidated {count} keys for pattern '{concrete}'")
            removed += count
        return removed
