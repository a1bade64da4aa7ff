"""
Container - scoped dependency resolution.

Scopes:
- singleton: one instance per container, built lazily; creation is guarded
  by a per-provider asyncio.Lock so concurrent first resolutions share it
- request: one instance per ResolutionContext
- transient: a fresh instance on every resolve
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .context import ResolutionContext
from .errors import CircularDependencyError, DIError, ProviderCreationError, provider_name
from .providers import ProviderPlan, Registration
from .scopes import ServiceScope

T = TypeVar("T")

logger = logging.getLogger("harrier.di")


class Container:
    """
    Dependency container.

    Unregistered providers can still be resolved: they default to request
    scope. Request scope without a ResolutionContext degrades to transient.
    """

    __slots__ = (
        "_registrations",
        "_plans",
        "_singletons",
        "_singleton_locks",
        "_finalizers",
        "_stats",
    )

    def __init__(self):
        self._registrations: Dict[Any, Registration] = {}
        self._plans: Dict[Any, ProviderPlan] = {}
        self._singletons: Dict[Any, Any] = {}
        self._singleton_locks: Dict[Any, asyncio.Lock] = {}
        self._finalizers: List[Callable[[], Any]] = []
        self._stats = self._empty_stats()

    # ========================================================================
    # Registration
    # ========================================================================

    def register(
        self,
        provider: Any,
        *,
        scope: ServiceScope | str = ServiceScope.TRANSIENT,
        factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        """
        Register a provider with a default scope.

        Args:
            provider: Class or factory used as the lookup key
            scope: Default lifetime when resolve() gets no explicit scope
            factory: Optional callable that builds the instance instead of
                     the provider itself (its parameters are injected too)
        """
        scope = ServiceScope(scope)
        if provider in self._registrations:
            logger.debug(f"Re-registering provider {provider_name(provider)}")
        self._registrations[provider] = Registration(provider=provider, scope=scope, factory=factory)
        self._plans.pop(provider, None)
        logger.debug(f"Registered {provider_name(provider)} (scope={scope.value})")

    def register_instance(self, provider: Any, instance: Any) -> None:
        """Register a pre-built value, served as a singleton."""
        self._registrations[provider] = Registration(
            provider=provider, scope=ServiceScope.SINGLETON, value=instance,
        )
        self._singletons[provider] = instance

    def is_registered(self, provider: Any) -> bool:
        return provider in self._registrations

    def scope_of(self, provider: Any) -> ServiceScope:
        registration = self._registrations.get(provider)
        if registration is not None:
            return registration.scope
        return ServiceScope.REQUEST

    # ========================================================================
    # Resolution
    # ========================================================================

    async def resolve(
        self,
        provider: Any,
        *,
        scope: Optional[ServiceScope | str] = None,
        context: Optional[ResolutionContext] = None,
        _stack: Tuple[Any, ...] = (),
    ) -> Any:
        """
        Resolve provider to an instance.

        Args:
            provider: Class or factory to resolve
            scope: Explicit lifetime; wins over the registered scope
            context: Per-request handle for request-scoped instances

        Raises:
            CircularDependencyError: provider is already being built on this path
            DIError: construction failed
        """
        effective = ServiceScope(scope) if scope is not None else self.scope_of(provider)

        if effective is ServiceScope.SINGLETON:
            if provider in self._singletons:
                self._stats["singleton_hits"] += 1
                return self._singletons[provider]
            self._check_cycle(provider, _stack)
            lock = self._singleton_locks.setdefault(provider, asyncio.Lock())
            async with lock:
                if provider in self._singletons:
                    self._stats["singleton_hits"] += 1
                    return self._singletons[provider]
                self._stats["singleton_misses"] += 1
                instance, finalizer = await self._create(provider, effective, context, _stack)
                self._singletons[provider] = instance
                self._track_finalizer(self._finalizers, instance, finalizer)
                return instance

        if effective is ServiceScope.REQUEST and context is not None:
            if context.has(provider):
                self._stats["request_hits"] += 1
                return context.get(provider)
            self._check_cycle(provider, _stack)
            self._stats["request_misses"] += 1
            instance, finalizer = await self._create(provider, effective, context, _stack)
            context.store(provider, instance)
            self._track_finalizer(context, instance, finalizer)
            return instance

        self._check_cycle(provider, _stack)
        self._stats["transient_creations"] += 1
        instance, finalizer = await self._create(provider, ServiceScope.TRANSIENT, context, _stack)
        if finalizer is not None:
            if context is not None:
                context.add_finalizer(finalizer)
            else:
                self._finalizers.append(finalizer)
        return instance

    def _check_cycle(self, provider: Any, stack: Tuple[Any, ...]) -> None:
        if provider in stack:
            index = stack.index(provider)
            raise CircularDependencyError(list(stack[index:]) + [provider])

    async def _create(
        self,
        provider: Any,
        scope: ServiceScope,
        context: Optional[ResolutionContext],
        stack: Tuple[Any, ...],
    ) -> Tuple[Any, Optional[Callable[[], Any]]]:
        registration = self._registrations.get(provider)
        if registration is not None and registration.has_value:
            return registration.value, None

        target = registration.factory if registration is not None and registration.factory else provider
        plan = self._plans.get(target)
        if plan is None:
            plan = ProviderPlan(target)
            self._plans[target] = plan

        try:
            instance, finalizer = await plan.build(self, context, stack + (provider,))
        except DIError:
            raise
        except Exception as exc:
            raise ProviderCreationError(provider, exc, scope.value) from exc

        async_init = getattr(instance, "async_init", None)
        if async_init is not None and inspect.iscoroutinefunction(async_init):
            await async_init()
        return instance, finalizer

    @staticmethod
    def _track_finalizer(target: Any, instance: Any, finalizer: Optional[Callable[[], Any]]) -> None:
        """Register generator teardown or instance shutdown hooks."""
        add = target.add_finalizer if isinstance(target, ResolutionContext) else target.append
        if finalizer is not None:
            add(finalizer)
        elif hasattr(instance, "__aexit__"):
            add(lambda: instance.__aexit__(None, None, None))
        elif callable(getattr(instance, "shutdown", None)):
            add(instance.shutdown)

    # ========================================================================
    # Lifecycle & diagnostics
    # ========================================================================

    def clear_request_scope(self, context: ResolutionContext) -> None:
        """Forget a context's request-scoped instances without running finalizers."""
        context.forget()

    def clear(self) -> None:
        """Drop every registration, cached singleton and statistic."""
        self._registrations.clear()
        self._plans.clear()
        self._singletons.clear()
        self._singleton_locks.clear()
        self._finalizers.clear()
        self.reset_stats()

    async def shutdown(self) -> None:
        """Run singleton finalizers in LIFO order and drop cached singletons."""
        finalizers, self._finalizers = self._finalizers, []
        for finalizer in reversed(finalizers):
            try:
                result = finalizer()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error("Error during container finalizer", exc_info=True)
        self._singletons = {
            p: r.value for p, r in self._registrations.items() if r.has_value
        }

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "singleton_hits": 0,
            "singleton_misses": 0,
            "request_hits": 0,
            "request_misses": 0,
            "transient_creations": 0,
        }

    def reset_stats(self) -> None:
        self._stats = self._empty_stats()

    def stats(self) -> Dict[str, float]:
        """Resolution counters plus hit rates (percent, two decimals)."""
        result: Dict[str, float] = dict(self._stats)
        for kind in ("singleton", "request"):
            hits = self._stats[f"{kind}_hits"]
            total = hits + self._stats[f"{kind}_misses"]
            result[f"{kind}_hit_rate"] = round(hits / total * 100, 2) if total else 0.0
        return result

    def __repr__(self) -> str:
        return f"<Container providers={len(self._registrations)} singletons={len(self._singletons)}>"
