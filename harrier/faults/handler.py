"""
Error handler - the single terminal point for request-time failures.

A user handler registered through Application.on_error() gets the first
chance to produce a response; returning None falls through to the default
rendering.
"""

from __future__ import annotations

import inspect
import logging
import traceback
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from ..response import Response
from .core import Fault
from .domains import HTTPFault, ValidationFault

if TYPE_CHECKING:
    from ..controller.base import RequestCtx

CustomErrorHandler = Callable[
    [BaseException, "RequestCtx"],
    Union[Optional[Response], Awaitable[Optional[Response]]],
]


class ErrorHandler:
    """
    Maps exceptions onto error responses.

    Faults render with their own status and code. Any other exception is a
    500 whose message and traceback are only exposed in debug mode.
    """

    def __init__(self, debug: bool = False, custom: Optional[CustomErrorHandler] = None):
        self.debug = debug
        self.custom = custom
        self.logger = logging.getLogger("harrier.faults.handler")

    async def handle(self, error: BaseException, ctx: "RequestCtx") -> Response:
        if self.custom is not None:
            try:
                result = self.custom(error, ctx)
                if inspect.isawaitable(result):
                    result = await result
                if result is not None:
                    return result
            except Exception:
                self.logger.error("Custom error handler raised; using default rendering", exc_info=True)

        if isinstance(error, Fault):
            return self._render_fault(error, ctx)
        return self._render_unexpected(error, ctx)

    def _render_fault(self, fault: Fault, ctx: "RequestCtx") -> Response:
        route = ctx.route.key if ctx.route is not None else None
        if fault.status >= 500:
            self.logger.error(f"{fault} (route={route})", exc_info=fault)
        elif self.debug:
            self.logger.warning(f"{fault} (route={route})")

        body: dict[str, Any] = {
            "code": fault.code,
            "status": fault.status,
        }
        if fault.public or self.debug:
            body["message"] = fault.message
        else:
            body["message"] = "Internal Server Error"

        if isinstance(fault, ValidationFault):
            body["field"] = fault.field_path
            body["errors"] = fault.errors
        if self.debug and fault.metadata:
            body["metadata"] = fault.metadata

        headers = dict(fault.headers) if isinstance(fault, HTTPFault) else {}
        return Response.json({"error": body}, fault.status, headers=headers)

    def _render_unexpected(self, error: BaseException, ctx: "RequestCtx") -> Response:
        self.logger.error(f"Unhandled {type(error).__name__} in {ctx.method} {ctx.path}", exc_info=error)
        body: dict[str, Any] = {"code": "INTERNAL_ERROR", "status": 500, "message": "Internal Server Error"}
        if self.debug:
            body["message"] = str(error)
            body["exception"] = type(error).__name__
            body["traceback"] = traceback.format_exception(type(error), error, error.__traceback__)
        return Response.json({"error": body}, 500)
