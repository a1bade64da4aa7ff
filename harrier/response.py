"""
Response - HTTP response builder and result serialization.

Provides:
- Response: ASGI 3 response with bytes/str/JSON/streaming bodies
- Structured results (Json, Html, Redirect, Stream) rendered on demand
- ResponseSerializer: turns whatever a handler returned into a Response
"""

from __future__ import annotations

import inspect
import logging
from typing import (
    TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Dict, Iterable,
    List, Mapping, Optional, Union,
)

import orjson

if TYPE_CHECKING:
    from .controller.base import RequestCtx

logger = logging.getLogger("harrier.response")


def _json_default(o: Any) -> Any:
    """Fallback encoder for types orjson does not know."""
    if hasattr(o, "model_dump"):
        return o.model_dump(mode="json")
    if isinstance(o, (set, frozenset, tuple)):
        return list(o)
    return str(o)


def dumps(obj: Any) -> bytes:
    return orjson.dumps(obj, default=_json_default)


class Response:
    """
    HTTP response with ASGI send support.

    Args:
        content: Body (bytes, str, or an async/sync iterator of chunks)
        status: HTTP status code
        headers: Response headers
        media_type: Content-Type override
    """

    def __init__(
        self,
        content: Union[bytes, str, AsyncIterator[bytes], Iterable[bytes]] = b"",
        status: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
    ):
        self.status = status
        self._content = content
        self._headers: Dict[str, str] = {}
        if headers:
            for key, value in headers.items():
                self._headers[key.lower()] = value
        if media_type:
            self._headers["content-type"] = media_type
        elif "content-type" not in self._headers and isinstance(content, str):
            self._headers["content-type"] = "text/plain; charset=utf-8"

    @property
    def headers(self) -> Dict[str, str]:
        return self._headers

    @property
    def body(self) -> bytes:
        """Body bytes for non-streaming responses."""
        if isinstance(self._content, bytes):
            return self._content
        if isinstance(self._content, str):
            return self._content.encode("utf-8")
        raise TypeError("streaming response has no materialized body")

    def set_header(self, name: str, value: str) -> None:
        self._headers[name.lower()] = value

    # ========================================================================
    # Factory Methods
    # ========================================================================

    @classmethod
    def json(cls, obj: Any, status: int = 200, *, headers: Optional[Mapping[str, str]] = None) -> "Response":
        return cls(
            content=dumps(obj),
            status=status,
            headers=headers,
            media_type="application/json",
        )

    @classmethod
    def html(cls, content: str, status: int = 200, **kwargs) -> "Response":
        return cls(content=content, status=status, media_type="text/html; charset=utf-8", **kwargs)

    @classmethod
    def text(cls, content: str, status: int = 200, **kwargs) -> "Response":
        return cls(content=content, status=status, media_type="text/plain; charset=utf-8", **kwargs)

    @classmethod
    def redirect(cls, url: str, status: int = 307, *, headers: Optional[Dict[str, str]] = None) -> "Response":
        redirect_headers = {"location": url}
        if headers:
            redirect_headers.update(headers)
        return cls(content=b"", status=status, headers=redirect_headers)

    @classmethod
    def stream(
        cls,
        iterator: Union[AsyncIterator[bytes], Iterable[bytes]],
        status: int = 200,
        media_type: str = "application/octet-stream",
        **kwargs,
    ) -> "Response":
        return cls(content=iterator, status=status, media_type=media_type, **kwargs)

    @classmethod
    def no_content(cls, headers: Optional[Mapping[str, str]] = None) -> "Response":
        return cls(content=b"", status=204, headers=headers)

    # ========================================================================
    # ASGI
    # ========================================================================

    def _prepare_headers(self) -> List[tuple]:
        return [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in self._headers.items()
        ]

    async def send_asgi(self, send: Callable[[dict], Awaitable[None]]) -> None:
        content = self._content
        if isinstance(content, str):
            content = content.encode("utf-8")

        if isinstance(content, bytes):
            self._headers.setdefault("content-length", str(len(content)))
            await send({"type": "http.response.start", "status": self.status, "headers": self._prepare_headers()})
            await send({"type": "http.response.body", "body": content, "more_body": False})
            return

        await send({"type": "http.response.start", "status": self.status, "headers": self._prepare_headers()})
        if hasattr(content, "__aiter__"):
            async for chunk in content:
                await send({"type": "http.response.body", "body": _ensure_bytes(chunk), "more_body": True})
        else:
            for chunk in content:
                await send({"type": "http.response.body", "body": _ensure_bytes(chunk), "more_body": True})
        await send({"type": "http.response.body", "body": b"", "more_body": False})

    def __repr__(self) -> str:
        return f"<Response status={self.status}>"


def _ensure_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return str(chunk).encode("utf-8")


# ============================================================================
# Structured results
# ============================================================================

class Json:
    """JSON result with explicit status and headers."""

    def __init__(self, data: Any, status: int = 200, headers: Optional[Mapping[str, str]] = None):
        self.data = data
        self.status = status
        self.headers = dict(headers or {})

    def render(self, ctx: "RequestCtx") -> Response:
        return Response.json(self.data, self.status, headers=self.headers)


class Html:
    def __init__(self, content: str, status: int = 200, headers: Optional[Mapping[str, str]] = None):
        self.content = content
        self.status = status
        self.headers = dict(headers or {})

    def render(self, ctx: "RequestCtx") -> Response:
        return Response.html(self.content, self.status, headers=self.headers)


class Redirect:
    def __init__(self, url: str, status: int = 302):
        self.url = url
        self.status = status

    def render(self, ctx: "RequestCtx") -> Response:
        return Response.redirect(self.url, self.status)


class Stream:
    def __init__(
        self,
        iterator: Union[AsyncIterator[bytes], Iterable[bytes]],
        media_type: str = "application/octet-stream",
        status: int = 200,
    ):
        self.iterator = iterator
        self.media_type = media_type
        self.status = status

    def render(self, ctx: "RequestCtx") -> Response:
        return Response.stream(self.iterator, self.status, self.media_type)


# ============================================================================
# Serializer
# ============================================================================

class ResponseSerializer:
    """
    Converts a handler result into a Response.

    - Response instances pass through
    - Objects exposing render(ctx) are rendered (sync or async)
    - None maps to 204 No Content
    - Everything else is serialized as a JSON body
    """

    async def serialize(self, ctx: "RequestCtx", value: Any) -> Response:
        if isinstance(value, Response):
            response = value
        elif value is not None and callable(getattr(value, "render", None)):
            response = value.render(ctx)
            if inspect.isawaitable(response):
                response = await response
        elif value is None:
            response = Response.no_content()
        else:
            response = Response.json(value)

        if ctx.cache_status is not None:
            response.set_header("x-cache", ctx.cache_status)
        return response
