"""
Application - the public entry point.

Collects route declarations into one MetadataStore, compiles them once and
serves them as an ASGI application.

Example::

    from typing import Annotated
    from harrier import Application, Depends, ServiceScope

    app = Application()
    app.provide(Database, scope=ServiceScope.SINGLETON)

    @app.get("/items/:id")
    async def show(ctx, db: Annotated[Database, Depends()], id: str):
        return await db.find(id)

    app.run()
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .asgi import ASGIAdapter
from .cache import CacheManager, MemoryCacheStore, RedisCacheStore
from .config import CacheSettings, ConfigError, HarrierConfig
from .controller.base import RequestCtx
from .controller.compiler import CompiledRoute, MetadataCompiler, normalize_path
from .controller.engine import RequestDispatcher
from .controller.metadata import MetadataStore, RouteDefinition
from .controller.registration import controller_routes, functional_route
from .controller.router import Router
from .di import Container, ServiceScope
from .faults import CompileFault, HTTPFault
from .faults.handler import CustomErrorHandler, ErrorHandler
from .log import configure_logging
from .middleware import CompressionMiddleware, Middleware, MiddlewareStack
from .middleware_ext import CORSMiddleware, RateLimitMiddleware
from .plugins import Plugin, PluginManager
from .request import Request
from .response import Response, ResponseSerializer

HandlerT = Callable[..., Any]


def build_cache(settings: CacheSettings) -> Optional[CacheManager]:
    """Create the cache manager described by the cache settings."""
    if not settings.enabled:
        return None
    if settings.backend == "memory":
        store = MemoryCacheStore(max_size=settings.max_size, sweep_interval=settings.sweep_interval)
    elif settings.backend == "redis":
        store = RedisCacheStore(url=settings.redis_url, key_prefix=settings.key_prefix)
    else:
        raise ConfigError(f"Unknown cache backend '{settings.backend}' (expected 'memory' or 'redis')")
    return CacheManager(store)


class RouteBuilder:
    """
    Registers several methods on one path.

    Example::

        items = app.route("/items")
        items.get(list_items)
        items.post(create_item, schema={"body": ItemIn})
    """

    def __init__(self, app: "Application", path: str):
        self.app = app
        self.path = path

    def method(self, method: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.app.add_route(method, self.path, handler, **options)

    def get(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("GET", handler, **options)

    def post(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("POST", handler, **options)

    def put(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("PUT", handler, **options)

    def patch(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("PATCH", handler, **options)

    def delete(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("DELETE", handler, **options)

    def head(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("HEAD", handler, **options)

    def options(self, handler: Optional[HandlerT] = None, **options: Any):
        return self.method("OPTIONS", handler, **options)


class Application:
    """
    Harrier application.

    Args:
        config: Application configuration (defaults when omitted)
        container: DI container (a fresh one when omitted)
        cache: Cache manager (built from config.cache when omitted)
    """

    def __init__(
        self,
        config: Optional[HarrierConfig] = None,
        *,
        container: Optional[Container] = None,
        cache: Optional[CacheManager] = None,
    ):
        self.config = config or HarrierConfig()
        self.logger = logging.getLogger("harrier.app")

        self.container = container or Container()
        self.cache = cache if cache is not None else build_cache(self.config.cache)
        self.store = MetadataStore(strict_keys=self.config.strict_route_keys)
        self.compiler = MetadataCompiler()
        self.router = Router()
        self.error_handler = ErrorHandler(debug=self.config.debug)
        self.dispatcher = RequestDispatcher(
            self.container,
            cache=self.cache,
            serializer=ResponseSerializer(),
            error_handler=self.error_handler,
        )

        self.plugins = PluginManager()
        self._middleware: List[Middleware] = []
        self._groups: List[Tuple[str, List[Middleware]]] = []
        self._compiled: Optional[List[CompiledRoute]] = None
        self._started = False
        self._asgi = ASGIAdapter(self)

    @property
    def debug(self) -> bool:
        return self.config.debug

    @property
    def compiled(self) -> bool:
        return self._compiled is not None

    @property
    def started(self) -> bool:
        return self._started

    # ========================================================================
    # Registration
    # ========================================================================

    def _ensure_open(self, what: str) -> None:
        if self.compiled:
            raise CompileFault(f"cannot {what} after the application was compiled")

    def _group_context(self) -> Tuple[str, List[Middleware]]:
        prefix = normalize_path(*(p for p, _ in self._groups)) if self._groups else ""
        middleware = [m for _, group in self._groups for m in group]
        return prefix, middleware

    def include(
        self,
        controller: type,
        *,
        prefix: str = "",
        middleware: Tuple[Middleware, ...] = (),
    ) -> List[RouteDefinition]:
        """Register every route of a controller class."""
        self._ensure_open("include controllers")
        group_prefix, group_middleware = self._group_context()
        routes = controller_routes(
            self.store,
            controller,
            prefix=normalize_path(group_prefix, prefix) if (group_prefix or prefix) else "",
            middleware=group_middleware + list(middleware),
        )
        self.logger.debug(f"Included {controller.__qualname__} ({len(routes)} routes)")
        return routes

    def add_route(self, method: str, path: str, handler: Optional[HandlerT] = None, **options: Any):
        """
        Register a functional route.

        Returns the handler, or a decorator when no handler is given.
        Options: schema, depends, middleware, cache, invalidate, docs, name,
        auth_required.
        """
        def register(func: HandlerT) -> HandlerT:
            self._ensure_open("register routes")
            group_prefix, group_middleware = self._group_context()
            route_options = dict(options)
            route_options["middleware"] = group_middleware + list(options.get("middleware", ()))
            definition = functional_route(method, normalize_path(group_prefix, path), func, **route_options)
            self.store.register_route(definition)
            return func

        if handler is None:
            return register
        return register(handler)

    def get(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("GET", path, handler, **options)

    def post(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("POST", path, handler, **options)

    def put(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("PUT", path, handler, **options)

    def patch(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("PATCH", path, handler, **options)

    def delete(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("DELETE", path, handler, **options)

    def head(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("HEAD", path, handler, **options)

    def options(self, path: str, handler: Optional[HandlerT] = None, **options: Any):
        return self.add_route("OPTIONS", path, handler, **options)

    def route(self, path: str) -> RouteBuilder:
        return RouteBuilder(self, path)

    @contextlib.contextmanager
    def group(self, prefix: str, middleware: Tuple[Middleware, ...] = ()) -> Iterator["Application"]:
        """
        Apply a path prefix and middleware to routes registered in the block.

        Example::

            with app.group("/api", middleware=[auth]):
                app.get("/me", me)
        """
        self._groups.append((prefix, list(middleware)))
        try:
            yield self
        finally:
            self._groups.pop()

    def use(self, middleware: Middleware) -> Middleware:
        """
        Add application middleware.

        Application middleware wraps every route (first added is
        outermost) and also sees requests that match no route, so it can
        answer them (CORS preflight) or reject them (rate limiting).
        """
        self._ensure_open("add middleware")
        self._middleware.append(middleware)
        return middleware

    def use_cors(self, **options: Any) -> CORSMiddleware:
        """Add CORSMiddleware; options are passed to its constructor."""
        return self.use(CORSMiddleware(**options))

    def use_rate_limit(self, **options: Any) -> RateLimitMiddleware:
        """Add RateLimitMiddleware; options are passed to its constructor."""
        return self.use(RateLimitMiddleware(**options))

    def use_compression(self, **options: Any) -> CompressionMiddleware:
        """Add CompressionMiddleware; options are passed to its constructor."""
        return self.use(CompressionMiddleware(**options))

    def use_plugin(self, plugin: Plugin) -> Plugin:
        """
        Register a plugin. It installs when the application compiles,
        after the plugins it depends on.

        Raises:
            PluginFault: a plugin with the same name is already registered
        """
        self._ensure_open("register plugins")
        return self.plugins.register(plugin)

    def on_error(self, handler: CustomErrorHandler) -> CustomErrorHandler:
        """
        Install a custom error handler.

        It receives (error, ctx) and returns a Response, or None to fall
        back to the default rendering.
        """
        self.error_handler.custom = handler
        return handler

    def provide(
        self,
        provider: Any,
        *,
        scope: ServiceScope | str = ServiceScope.TRANSIENT,
        factory: Optional[Callable[..., Any]] = None,
        instance: Any = None,
    ) -> Any:
        """Register a dependency provider (or a ready-made instance)."""
        if instance is not None:
            self.container.register_instance(provider, instance)
        else:
            self.container.register(provider, scope=scope, factory=factory)
        return provider

    # ========================================================================
    # Compilation & lifecycle
    # ========================================================================

    def compile(self) -> List[CompiledRoute]:
        """
        Install plugins, then compile and install every stored route.

        Runs once; later calls log a warning and return the first result.

        Raises:
            PluginFault: a plugin failed to install or its dependencies
                cannot be ordered
            CompileFault: misconfigured route (startup must abort)
            MethodNotFoundFault: controller lacks a declared method
        """
        if self._compiled is not None:
            self.logger.warning("Application already compiled; ignoring repeated compile()")
            return self._compiled

        self.plugins.install(self)
        compiled = self.compiler.compile_all(self.store.get_routes())
        self.dispatcher.install_all(self.router, compiled, self._middleware)
        self._compiled = compiled
        self.logger.info(f"Compiled {len(compiled)} routes")
        return compiled

    def compiled_routes(self) -> List[CompiledRoute]:
        """Compiled routes; before compile() they are compiled without installing."""
        if self._compiled is not None:
            return list(self._compiled)
        return self.compiler.compile_all(self.store.get_routes())

    def routes(self) -> List[Dict[str, Any]]:
        """Route listing for docs and inspection."""
        return [route.to_dict() for route in self.compiled_routes()]

    async def handle_unmatched(self, request: Request, ctx: RequestCtx, fault: HTTPFault) -> Response:
        """
        Answer a request no route matched (404 / 405).

        Application middleware still runs around the rendered fault; group
        and route middleware do not.
        """
        async def render_fault(request: Request, ctx: RequestCtx) -> Response:
            return await self.error_handler.handle(fault, ctx)

        return await MiddlewareStack(self._middleware).build_handler(render_fault)(request, ctx)

    async def startup(self) -> None:
        if self._started:
            return
        if not self.compiled:
            self.compile()
        if self.cache is not None:
            await self.cache.initialize()
        await self.plugins.startup(self)
        self._started = True
        self.logger.info(f"{self.config.title} {self.config.version} started")

    async def shutdown(self) -> None:
        if not self._started:
            return
        await self.plugins.shutdown(self)
        await self.container.shutdown()
        if self.cache is not None:
            await self.cache.shutdown()
        self._started = False
        self.logger.info(f"{self.config.title} stopped")

    # ========================================================================
    # Serving
    # ========================================================================

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        await self._asgi(scope, receive, send)

    def run(self, host: Optional[str] = None, port: Optional[int] = None, log_level: Optional[str] = None):
        """
        Run the development server.

        Args:
            host: Host to bind to (config.host by default)
            port: Port to bind to (config.port by default)
            log_level: Logging level (config.log_level by default)
        """
        import uvicorn

        level = (log_level or self.config.log_level).lower()
        configure_logging(level)
        host = host or self.config.host
        port = port or self.config.port

        self.logger.info(f"Starting uvicorn server on {host}:{port}")
        uvicorn.run(self, host=host, port=port, log_level=level, lifespan="on")
