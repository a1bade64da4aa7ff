"""
ASGI adapter - Bridges the ASGI protocol to Harrier's request/response system.

Per HTTP connection:
- build the Request and RequestCtx
- match the route (404 / 405 are rendered inside the application
  middleware, so CORS and rate limiting still apply)
- run the route's prebuilt middleware + dispatch chain
- send the Response (body suppressed for HEAD)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict

from .controller.base import RequestCtx
from .faults import HTTPFault
from .request import Request
from .response import Response

if TYPE_CHECKING:
    from .app import Application

Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]


class ASGIAdapter:
    """
    ASGI application adapter.

    Routes must be compiled before requests are served; a request that
    arrives first (no lifespan support in the host) triggers startup.
    """

    __slots__ = ("app", "logger")

    def __init__(self, app: "Application"):
        self.app = app
        self.logger = logging.getLogger("harrier.asgi")

    async def __call__(self, scope: dict, receive: Receive, send: Send):
        scope_type = scope["type"]
        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        else:
            self.logger.warning(f"Unsupported ASGI scope type '{scope_type}'")
            if scope_type == "websocket":
                await send({"type": "websocket.close", "code": 1003})

    async def handle_http(self, scope: dict, receive: Receive, send: Send):
        app = self.app
        if not app.started:
            await app.startup()

        ctx: RequestCtx

        async def watched_receive() -> Dict[str, Any]:
            message = await receive()
            if message["type"] == "http.disconnect":
                ctx.cancel_event.set()
            return message

        request = Request(scope, watched_receive, max_body_size=app.config.max_body_size)
        ctx = RequestCtx(request=request)

        try:
            try:
                match = app.router.match(request.method, request.path)
            except HTTPFault as fault:
                response = await app.handle_unmatched(request, ctx, fault)
            else:
                ctx.path_params = match.params
                response = await match.handler(request, ctx)
        except Exception as exc:
            # Failures raised by middleware outside the dispatcher
            response = await app.error_handler.handle(exc, ctx)
            await ctx.resolution.close()

        if not isinstance(response, Response):
            self.logger.error(f"Middleware returned {type(response).__name__} instead of Response")
            response = await app.error_handler.handle(
                TypeError(f"expected Response, got {type(response).__name__}"), ctx
            )

        if request.method == "HEAD":
            await response.send_asgi(_without_body(send))
        else:
            await response.send_asgi(send)

    async def handle_lifespan(self, scope: dict, receive: Receive, send: Send):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    await self.app.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self.logger.error(f"Startup error: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.app.shutdown()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    self.logger.error(f"Shutdown error: {e}", exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break


def _without_body(send: Send) -> Send:
    async def head_send(message: Dict[str, Any]) -> None:
        if message["type"] == "http.response.body":
            if message.get("more_body", False):
                return
            message = {"type": "http.response.body", "body": b"", "more_body": False}
        await send(message)

    return head_send
