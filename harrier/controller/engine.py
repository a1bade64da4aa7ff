"""
Request Dispatcher - executes compiled routes.

Per request:
  cache check -> extract -> resolve -> merge -> invoke -> cache write
  -> invalidate -> serialize

Any failure along the way is caught once and handed to the ErrorHandler,
so a response is only ever produced at one of those two exit points.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..cache.manager import CacheManager, UnknownStoreError
from ..di.container import Container
from ..di.scopes import ServiceScope
from ..faults import (
    CompileFault,
    DependencyResolutionFault,
    Fault,
    HandlerExecutionFault,
    MethodNotFoundFault,
)
from ..faults.handler import ErrorHandler
from ..middleware import Handler, Middleware, MiddlewareStack
from ..request import Request
from ..response import Response, ResponseSerializer
from .base import RequestCtx
from .compiler import CompiledRoute
from .extraction import ParameterExtractor
from .metadata import Declarative, Functional
from .router import Router

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"


class RequestDispatcher:
    """
    Binds compiled routes to the router and runs them per request.

    Args:
        container: Dependency container
        cache: Cache manager (required only when routes cache or invalidate)
        serializer: Result -> Response conversion
        error_handler: Terminal error handling point
        extractor: Parameter extraction rules
    """

    def __init__(
        self,
        container: Container,
        *,
        cache: Optional[CacheManager] = None,
        serializer: Optional[ResponseSerializer] = None,
        error_handler: Optional[ErrorHandler] = None,
        extractor: Optional[ParameterExtractor] = None,
    ):
        self.container = container
        self.cache = cache
        self.serializer = serializer or ResponseSerializer()
        self.error_handler = error_handler or ErrorHandler()
        self.extractor = extractor or ParameterExtractor()
        self.logger = logging.getLogger("harrier.controller.engine")
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    # ========================================================================
    # Installation
    # ========================================================================

    def install_all(
        self,
        router: Router,
        routes: Sequence[CompiledRoute],
        middleware: Iterable[Middleware] = (),
    ) -> int:
        """
        Install every compiled route on the router in one batch.

        Application middleware wraps route middleware, which wraps the
        dispatcher itself.

        Raises:
            CompileFault: called a second time, or a route caches without a
                cache manager or names a store that is not registered
        """
        if self._installed:
            raise CompileFault("routes were already installed; compile may run only once")

        for route in routes:
            if route.cache is not None or route.invalidate:
                self._check_cache_store(route)

        app_middleware = list(middleware)
        for route in routes:
            stack = MiddlewareStack(app_middleware + list(route.middleware))
            router.add(route, stack.build_handler(self.handler_for(route)))

        self._installed = True
        self.logger.info(f"Installed {len(routes)} routes")
        return len(routes)

    def _check_cache_store(self, route: CompiledRoute) -> None:
        if self.cache is None:
            raise CompileFault("route uses caching but no cache manager is configured", route=route.key)
        if route.cache is not None:
            try:
                self.cache.store_for(route.cache)
            except UnknownStoreError as exc:
                raise CompileFault(str(exc), route=route.key) from exc

    def handler_for(self, route: CompiledRoute) -> Handler:
        async def handle(request: Request, ctx: RequestCtx) -> Response:
            return await self.dispatch(route, ctx)

        handle.__qualname__ = f"dispatch[{route.key}]"
        return handle

    # ========================================================================
    # Per-request algorithm
    # ========================================================================

    async def dispatch(self, route: CompiledRoute, ctx: RequestCtx) -> Response:
        resolution = ctx.resolution
        try:
            ctx.route = route
            resolution.route = route

            directive = route.cache
            store = key = None
            if directive is not None:
                store = self.cache.store_for(directive)
                key = self.cache.key_builder.build(
                    directive,
                    route.method,
                    route.path,
                    ctx.path_params,
                    ctx.request.query_params.to_dict() if directive.include_query else None,
                    ctx.request.headers if directive.vary_by_headers else None,
                )
                cached = await store.get(key)
                if cached is not None:
                    ctx.cache_status = CACHE_HIT
                    self.logger.debug(f"Cache hit for {route.key} ({key})")
                    return await self.serializer.serialize(ctx, cached)
                ctx.cache_status = CACHE_MISS

            parameters = await self.extractor.extract(route, ctx)
            dependencies = await self.resolve_dependencies(route, ctx)
            arguments = self.merge_arguments(route, parameters, dependencies)
            result = await self.invoke(route, ctx, arguments)

            if directive is not None and self._cacheable(result) and directive.accepts(result):
                await store.set(key, result, directive.ttl)

            if route.invalidate:
                await self.cache.invalidate(
                    route.invalidate,
                    ctx.path_params,
                    directive.store if directive is not None else None,
                )

            return await self.serializer.serialize(ctx, result)
        except Exception as exc:
            return await self.error_handler.handle(exc, ctx)
        finally:
            await resolution.close()

    async def resolve_dependencies(self, route: CompiledRoute, ctx: RequestCtx) -> Dict[int, Any]:
        slots: Dict[int, Any] = {}
        for index in route.dependency_order:
            dependency = route.dependencies[index]
            try:
                slots[index] = await self.container.resolve(
                    dependency.provider,
                    scope=dependency.scope,
                    context=ctx.resolution,
                )
            except Exception as exc:
                raise DependencyResolutionFault(route.key, index, dependency.provider, exc) from exc
        return slots

    @staticmethod
    def merge_arguments(
        route: CompiledRoute,
        parameters: Dict[int, Any],
        dependencies: Dict[int, Any],
    ) -> List[Any]:
        """Dense positional list; a parameter slot wins over a dependency slot."""
        arguments: List[Any] = [None] * route.argument_count
        for index in range(route.argument_count):
            if index in parameters:
                arguments[index] = parameters[index]
            elif index in dependencies:
                arguments[index] = dependencies[index]
        return arguments

    async def invoke(self, route: CompiledRoute, ctx: RequestCtx, arguments: List[Any]) -> Any:
        body = route.body
        if isinstance(body, Functional):
            target = body.handler
            call_args = [ctx, *arguments]
        elif isinstance(body, Declarative):
            instance = await self.container.resolve(
                body.owner,
                scope=ServiceScope.TRANSIENT,
                context=ctx.resolution,
            )
            target = getattr(instance, body.method_name, None)
            if not callable(target):
                raise MethodNotFoundFault(body.owner.__qualname__, body.method_name)
            call_args = arguments
        else:
            raise CompileFault(f"unknown route registration kind {type(body).__name__}", route=route.key)

        try:
            result = target(*call_args)
            if inspect.isawaitable(result):
                result = await result
        except Fault:
            raise
        except Exception as exc:
            raise HandlerExecutionFault(route.key, exc) from exc
        return result

    def _cacheable(self, result: Any) -> bool:
        if result is None:
            return False
        if isinstance(result, Response):
            self.logger.debug("Response objects are not cached; return plain data to cache a route")
            return False
        return True
