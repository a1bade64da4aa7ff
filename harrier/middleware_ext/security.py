"""
Cross-origin resource sharing.

Preflight requests (OPTIONS with an Origin header) are answered here with
204 and never reach a route; simple requests get the allow headers added
to whatever the route produced.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Pattern, Set, Union

from ..middleware import Handler
from ..request import Request
from ..response import Response

if TYPE_CHECKING:
    from ..controller.base import RequestCtx

OriginRule = Union[str, Pattern, Callable[[str], bool]]

DEFAULT_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
DEFAULT_HEADERS = ["Content-Type", "Authorization"]
PREFLIGHT_VARY = "Origin, Access-Control-Request-Method, Access-Control-Request-Headers"


class _OriginMatcher:
    """
    Matches Origin values against exact names, "*", globs such as
    "https://*.example.com", compiled regexes and predicates.

    Results for string rules are memoized in a small LRU.
    """

    __slots__ = ("allow_all", "_exact", "_patterns", "_predicates", "_seen", "_seen_limit")

    def __init__(self, origins: Iterable[OriginRule], cache_size: int = 512):
        self.allow_all = False
        self._exact: Set[str] = set()
        self._patterns: List[Pattern] = []
        self._predicates: List[Callable[[str], bool]] = []
        self._seen: "OrderedDict[str, bool]" = OrderedDict()
        self._seen_limit = cache_size

        for origin in origins:
            if isinstance(origin, str):
                if origin == "*":
                    self.allow_all = True
                elif "*" in origin:
                    body = re.escape(origin.lower()).replace(r"\*", "[^.]+")
                    self._patterns.append(re.compile(f"^{body}$"))
                else:
                    self._exact.add(origin.lower())
            elif isinstance(origin, re.Pattern):
                self._patterns.append(origin)
            elif callable(origin):
                self._predicates.append(origin)
            else:
                raise TypeError(f"unsupported origin rule {origin!r}")

    def matches(self, origin: str) -> bool:
        if self.allow_all:
            return True

        # Predicates may depend on outside state, so they are never memoized
        if any(predicate(origin) for predicate in self._predicates):
            return True

        lowered = origin.lower()
        known = self._seen.get(lowered)
        if known is not None:
            self._seen.move_to_end(lowered)
            return known

        result = lowered in self._exact or any(p.match(lowered) for p in self._patterns)
        self._seen[lowered] = result
        if len(self._seen) > self._seen_limit:
            self._seen.popitem(last=False)
        return result


class CORSMiddleware:
    """
    CORS middleware.

    Args:
        allow_origins: Allowed origins: "*", exact origins, globs, compiled
            regexes or predicates ``(origin) -> bool``. Defaults to "*".
        allow_methods: Access-Control-Allow-Methods on preflight
        allow_headers: Access-Control-Allow-Headers on preflight
        expose_headers: Access-Control-Expose-Headers on simple requests
        allow_credentials: Send Access-Control-Allow-Credentials; the
            origin is then reflected instead of "*"
        max_age: Preflight cache lifetime in seconds
        allow_origin_regex: Extra origin regex, as a string
    """

    def __init__(
        self,
        allow_origins: Optional[Iterable[OriginRule]] = None,
        allow_methods: Optional[List[str]] = None,
        allow_headers: Optional[List[str]] = None,
        expose_headers: Optional[List[str]] = None,
        allow_credentials: bool = False,
        max_age: int = 86400,
        allow_origin_regex: Optional[str] = None,
    ):
        if isinstance(allow_origins, str) or callable(allow_origins):
            allow_origins = [allow_origins]
        rules = list(allow_origins) if allow_origins is not None else ["*"]
        if allow_origin_regex:
            rules.append(re.compile(allow_origin_regex, re.IGNORECASE))

        self._matcher = _OriginMatcher(rules)
        self.allow_credentials = allow_credentials
        self.max_age = max_age
        self._methods = ", ".join(m.upper() for m in (allow_methods or DEFAULT_METHODS))
        self._headers = ", ".join(allow_headers or DEFAULT_HEADERS)
        self._expose = ", ".join(expose_headers or [])

    async def __call__(self, request: Request, ctx: "RequestCtx", next: Handler) -> Response:
        origin = request.header("origin")

        if not origin:
            response = await next(request, ctx)
            _add_vary(response.headers, "Origin")
            return response

        allowed = self._matcher.matches(origin)

        if request.method == "OPTIONS":
            return self._preflight(origin, allowed)

        response = await next(request, ctx)
        if allowed:
            self._set_origin(response.headers, origin)
            if self._expose:
                response.headers["access-control-expose-headers"] = self._expose
        _add_vary(response.headers, "Origin")
        return response

    def _preflight(self, origin: str, allowed: bool) -> Response:
        headers: Dict[str, str] = {"vary": PREFLIGHT_VARY}
        if allowed:
            self._set_origin(headers, origin)
            headers["access-control-allow-methods"] = self._methods
            headers["access-control-allow-headers"] = self._headers
            headers["access-control-max-age"] = str(self.max_age)
        return Response(b"", status=204, headers=headers)

    def _set_origin(self, headers: Dict[str, str], origin: str) -> None:
        # "*" is not valid together with credentials
        if self._matcher.allow_all and not self.allow_credentials:
            headers["access-control-allow-origin"] = "*"
        else:
            headers["access-control-allow-origin"] = origin
        if self.allow_credentials:
            headers["access-control-allow-credentials"] = "true"


def _add_vary(headers: Dict[str, str], value: str) -> None:
    existing = headers.get("vary")
    if not existing:
        headers["vary"] = value
    elif value.lower() not in (v.strip().lower() for v in existing.split(",")):
        headers["vary"] = f"{existing}, {value}"
