"""
ResolutionContext - per-request handle for request-scoped instances.
"""

from __future__ import annotations

import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger("harrier.di.context")

_ids = itertools.count(1)


class ResolutionContext:
    """
    Holds the request-scoped instance table for one request.

    The dispatcher creates one per request, attaches the compiled route to
    it, and closes it when the request finishes. Closing runs registered
    finalizers in LIFO order and forgets every instance, so nothing built
    for one request is reachable from another.

    Attributes:
        id: Monotonic identifier, useful in logs
        route: CompiledRoute being served (set by the dispatcher)
        request_ctx: RequestCtx of the request being served
    """

    __slots__ = ("id", "route", "request_ctx", "_instances", "_finalizers", "_closed")

    def __init__(self, route: Any = None, request_ctx: Any = None):
        self.id = next(_ids)
        self.route = route
        self.request_ctx = request_ctx
        self._instances: Dict[Any, Any] = {}
        self._finalizers: List[Callable[[], Any]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def has(self, provider: Any) -> bool:
        return provider in self._instances

    def get(self, provider: Any) -> Any:
        return self._instances[provider]

    def store(self, provider: Any, instance: Any) -> None:
        self._instances[provider] = instance

    def add_finalizer(self, finalizer: Callable[[], Any]) -> None:
        self._finalizers.append(finalizer)

    def forget(self) -> None:
        """Drop instances without running finalizers."""
        self._instances.clear()

    def __len__(self) -> int:
        return len(self._instances)

    async def close(self) -> None:
        """Run finalizers (LIFO) and drop all request-scoped instances."""
        if self._closed:
            return
        self._closed = True
        finalizers, self._finalizers = self._finalizers, []
        for finalizer in reversed(finalizers):
            try:
                result = finalizer()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(f"Finalizer failed for resolution context {self.id}", exc_info=True)
        self._instances.clear()

    def __repr__(self) -> str:
        return f"<ResolutionContext id={self.id} instances={len(self._instances)}>"
