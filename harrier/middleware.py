"""
Middleware - composable async wrappers around route handlers.

A middleware is ``async (request, ctx, next) -> Response``; calling
``next(request, ctx)`` runs the rest of the chain.
"""

from __future__ import annotations

import gzip
import logging
import os
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, List

from .request import Request
from .response import Response

if TYPE_CHECKING:
    from .controller.base import RequestCtx

Handler = Callable[[Request, "RequestCtx"], Awaitable[Response]]
Middleware = Callable[[Request, "RequestCtx", Handler], Awaitable[Response]]


class MiddlewareStack:
    """
    Ordered middleware list; the first entry ends up outermost.
    """

    def __init__(self, middlewares: Iterable[Middleware] = ()):
        self.middlewares: List[Middleware] = list(middlewares)

    def add(self, middleware: Middleware) -> None:
        self.middlewares.append(middleware)

    def __len__(self) -> int:
        return len(self.middlewares)

    def build_handler(self, final_handler: Handler) -> Handler:
        """Build middleware chain wrapping the final handler."""
        handler = final_handler
        for middleware in reversed(self.middlewares):
            handler = self._wrap_middleware(middleware, handler)
        return handler

    def _wrap_middleware(self, middleware: Middleware, next_handler: Handler) -> Handler:
        async def wrapped(request: Request, ctx: "RequestCtx") -> Response:
            return await middleware(request, ctx, next_handler)

        return wrapped


# Default middleware implementations

class RequestIdMiddleware:
    """Propagates or generates a correlation id and echoes it in the response."""

    def __init__(self, header_name: str = "X-Request-ID"):
        self.header_name = header_name

    async def __call__(self, request: Request, ctx: "RequestCtx", next: Handler) -> Response:
        request_id = request.header(self.header_name)
        if not request_id:
            request_id = os.urandom(16).hex()

        ctx.correlation_id = request_id
        response = await next(request, ctx)
        response.set_header(self.header_name, request_id)
        return response


class LoggingMiddleware:
    """Logs method, path, status and duration of each request."""

    def __init__(self, slow_threshold_ms: float = 1000.0):
        self.logger = logging.getLogger("harrier.requests")
        self.slow_threshold_ms = slow_threshold_ms

    async def __call__(self, request: Request, ctx: "RequestCtx", next: Handler) -> Response:
        if not self.logger.isEnabledFor(logging.INFO):
            return await next(request, ctx)

        start = time.monotonic()
        response = await next(request, ctx)
        elapsed_ms = (time.monotonic() - start) * 1000.0

        self.logger.info(
            "%s %s - %d (%.1fms)",
            request.method, request.path, response.status, elapsed_ms,
        )
        if elapsed_ms > self.slow_threshold_ms:
            self.logger.warning(
                "Slow request: %s %s took %.1fms",
                request.method, request.path, elapsed_ms,
            )
        return response


COMPRESSIBLE_TYPES = (
    "text/",
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
)


class CompressionMiddleware:
    """
    Gzips response bodies for clients that accept it.

    Streaming bodies, already-encoded bodies, bodies below ``minimum_size``
    and content types outside ``compressible_types`` are left untouched.
    """

    def __init__(
        self,
        minimum_size: int = 1024,
        level: int = 6,
        compressible_types: Iterable[str] = COMPRESSIBLE_TYPES,
    ):
        self.minimum_size = minimum_size
        self.level = level
        self.compressible_types = tuple(compressible_types)

    async def __call__(self, request: Request, ctx: "RequestCtx", next: Handler) -> Response:
        response = await next(request, ctx)

        accept_encoding = request.header("accept-encoding", "") or ""
        if "gzip" not in accept_encoding.lower():
            return response
        if "content-encoding" in response.headers:
            return response
        if not response.headers.get("content-type", "").startswith(self.compressible_types):
            return response
        if not isinstance(response._content, (bytes, str)):
            return response

        body = response.body
        if len(body) < self.minimum_size:
            return response

        compressed = gzip.compress(body, compresslevel=self.level)
        response._content = compressed
        response.headers["content-encoding"] = "gzip"
        response.headers["content-length"] = str(len(compressed))
        vary = response.headers.get("vary")
        response.headers["vary"] = f"{vary}, Accept-Encoding" if vary else "Accept-Encoding"
        return response
