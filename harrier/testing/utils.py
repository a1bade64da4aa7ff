"""
Harrier Testing - factories for ASGI scopes, requests and request contexts.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import orjson

from harrier.controller.base import RequestCtx
from harrier.request import Request

HeaderPairs = Iterable[Tuple[Union[str, bytes], Union[str, bytes]]]

# RequestCtx fields that make_test_ctx() accepts as keyword arguments
_CTX_SLOTS = frozenset({
    "principal",
    "credential",
    "provider_user",
    "provider_token",
    "session",
    "csrf_token",
    "authorized_resource",
    "authorized_attributes",
    "correlation_id",
})


def _latin1(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("latin-1")


def make_test_scope(
    method: str = "GET",
    path: str = "/",
    query_string: Union[str, bytes] = "",
    headers: Optional[HeaderPairs] = None,
    client: Optional[Tuple[str, int]] = None,
) -> dict:
    """HTTP scope as an ASGI 3 server would send it (header names lower-cased)."""
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "scheme": "http",
        "method": method.upper(),
        "path": path,
        "raw_path": path.encode("utf-8"),
        "root_path": "",
        "query_string": _latin1(query_string),
        "headers": [(_latin1(name).lower(), _latin1(value)) for name, value in headers or ()],
        "client": client or ("testclient", 50000),
        "server": ("testserver", 80),
    }


def make_test_receive(body: bytes = b"", *, chunks: Optional[List[bytes]] = None):
    """
    ASGI receive callable replaying a request body.

    Each chunk becomes one ``http.request`` message; afterwards every call
    reports ``http.disconnect``.
    """
    parts = chunks or [body]
    pending = [
        {"type": "http.request", "body": chunk, "more_body": position < len(parts) - 1}
        for position, chunk in enumerate(parts)
    ]

    async def receive() -> dict:
        if pending:
            return pending.pop(0)
        return {"type": "http.disconnect"}

    return receive


def make_test_request(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[HeaderPairs] = None,
    body: bytes = b"",
    json: Any = None,
    **kwargs: Any,
) -> Request:
    """
    Request over a test scope. ``json`` replaces ``body`` and adds the JSON
    content type; remaining keyword arguments go to Request().
    """
    header_list = list(headers or ())
    if json is not None:
        body = orjson.dumps(json)
        header_list += [("content-type", "application/json"), ("content-length", str(len(body)))]
    scope = make_test_scope(method, path, query_string, header_list)
    return Request(scope, make_test_receive(body), **kwargs)


def make_test_ctx(
    method: str = "GET",
    path: str = "/",
    *,
    path_params: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> RequestCtx:
    """
    RequestCtx around make_test_request().

    Collaborator slots (principal, session, correlation_id, ...) are set on
    the context; everything else is passed to make_test_request().
    """
    slots = {name: kwargs.pop(name) for name in list(kwargs) if name in _CTX_SLOTS}
    request = make_test_request(method, path, **kwargs)
    return RequestCtx(request=request, path_params=dict(path_params or {}), **slots)
