"""
Request - ASGI request wrapper.

Provides lazy, cached access to method, path, query parameters, headers,
cookies and the body payload.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import parse_qsl

import orjson

from ._datastructures import Headers, MultiDict, parse_cookie_header
from .faults import HTTPFault

logger = logging.getLogger("harrier.request")


class ClientDisconnect(Exception):
    """Client went away while the body was being read."""


class PayloadTooLarge(HTTPFault):
    def __init__(self, limit: int):
        super().__init__(
            413,
            f"Request body exceeds {limit} bytes",
            code="PAYLOAD_TOO_LARGE",
            metadata={"limit": limit},
        )


class Request:
    """
    HTTP request bound to one ASGI connection.

    Args:
        scope: ASGI scope dict
        receive: ASGI receive callable
        max_body_size: Maximum accepted body size in bytes
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Optional[Callable[[], Awaitable[dict]]] = None,
        *,
        max_body_size: int = 10_485_760,
    ):
        self.scope = scope
        self._receive = receive
        self.max_body_size = max_body_size
        self.state: Dict[str, Any] = {}

        self._body: Optional[bytes] = None
        self._query_params: Optional[MultiDict] = None
        self._headers: Optional[Headers] = None
        self._cookies: Optional[Dict[str, str]] = None
        self._disconnected = False

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        return self.scope.get("method", "GET").upper()

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        return self.scope.get("query_string", b"").decode("utf-8")

    @property
    def client(self) -> Optional[tuple]:
        return self.scope.get("client")

    @property
    def query_params(self) -> MultiDict:
        """Parsed query parameters, repeated keys preserved."""
        if self._query_params is None:
            query_string = self.query_string
            if query_string:
                self._query_params = MultiDict(parse_qsl(query_string, keep_blank_values=True))
            else:
                self._query_params = MultiDict()
        return self._query_params

    @property
    def headers(self) -> Headers:
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    @property
    def cookies(self) -> Mapping[str, str]:
        """Cookies parsed from the Cookie header."""
        if self._cookies is None:
            self._cookies = parse_cookie_header(self.header("cookie"))
        return self._cookies

    # ========================================================================
    # Body
    # ========================================================================

    def is_disconnected(self) -> bool:
        return self._disconnected

    async def body(self) -> bytes:
        """
        Read full request body (idempotent).

        Raises:
            ClientDisconnect: If client disconnects mid-body
            PayloadTooLarge: If body exceeds max_body_size
        """
        if self._body is not None:
            return self._body
        if self._receive is None:
            self._body = b""
            return self._body

        chunks = []
        total = 0
        more_body = True
        while more_body:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self._disconnected = True
                raise ClientDisconnect("Client disconnected")
            chunk = message.get("body", b"")
            total += len(chunk)
            if total > self.max_body_size:
                raise PayloadTooLarge(self.max_body_size)
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        self._body = b"".join(chunks)
        return self._body

    async def json(self) -> Any:
        """Parse the body as JSON. Raises orjson.JSONDecodeError on bad input."""
        return orjson.loads(await self.body())

    async def json_or_none(self) -> Any:
        """Parse the body as JSON, or None when it is empty or unparseable."""
        raw = await self.body()
        if not raw:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.debug(f"Unparseable JSON body for {self.method} {self.path}")
            return None

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"
