"""
Router - maps (method, path) onto installed route handlers.

Two tiers:
1. Static routes: O(1) dict lookup per method
2. Dynamic routes: compiled regexes tried in specificity order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..faults import MethodNotAllowedFault, NotFoundFault

if TYPE_CHECKING:
    from ..controller.base import RequestCtx
    from ..request import Request
    from ..response import Response
    from .compiler import CompiledRoute

logger = logging.getLogger("harrier.controller.router")

RouteHandler = Callable[["Request", "RequestCtx"], Awaitable["Response"]]

_EMPTY: Dict[str, str] = {}


@dataclass
class RouteMatch:
    """Result of a successful route match."""
    route: "CompiledRoute"
    handler: RouteHandler
    params: Dict[str, str]


def _specificity(route: "CompiledRoute") -> Tuple[int, int]:
    segments = [s for s in route.path.split("/") if s]
    static = sum(1 for s in segments if not (s.startswith(":") or (s.startswith("{") and s.endswith("}"))))
    return (static, len(segments))


def _normalize(path: str) -> str:
    return path.rstrip("/") or "/"


class Router:
    """Routing table populated by the RequestDispatcher at compile time."""

    def __init__(self):
        self._static: Dict[str, Dict[str, RouteMatch]] = {}
        self._dynamic: Dict[str, List[RouteMatch]] = {}
        self._count = 0

    def add(self, route: "CompiledRoute", handler: RouteHandler) -> None:
        method = route.method
        entry = RouteMatch(route=route, handler=handler, params=_EMPTY)
        if route.is_static:
            path = _normalize(route.path)
            table = self._static.setdefault(method, {})
            if path in table:
                logger.warning(
                    f"{method} {path} already served by {table[path].route.key}; "
                    f"{route.key} replaces it"
                )
            table[path] = entry
        else:
            routes = self._dynamic.setdefault(method, [])
            routes.append(entry)
            routes.sort(key=lambda m: _specificity(m.route), reverse=True)
        self._count += 1

    def __len__(self) -> int:
        return self._count

    def _match_method(self, method: str, path: str) -> Optional[RouteMatch]:
        static = self._static.get(method)
        if static is not None and path in static:
            return static[path]
        for entry in self._dynamic.get(method, ()):
            params = entry.route.match(path)
            if params is not None:
                return RouteMatch(route=entry.route, handler=entry.handler, params=params)
        return None

    def match(self, method: str, path: str) -> RouteMatch:
        """
        Find the handler for a request.

        HEAD falls back to GET routes.

        Raises:
            NotFoundFault: no route matches the path
            MethodNotAllowedFault: the path matches under other methods only
        """
        method = method.upper()
        path = _normalize(path)
        found = self._match_method(method, path)
        if found is None and method == "HEAD":
            found = self._match_method("GET", path)
        if found is not None:
            return found

        allowed = self.allowed_methods(path)
        if allowed:
            raise MethodNotAllowedFault(method, path, allowed)
        raise NotFoundFault(path)

    def allowed_methods(self, path: str) -> Set[str]:
        path = _normalize(path)
        methods = {m for m, table in self._static.items() if path in table}
        for method, entries in self._dynamic.items():
            if any(entry.route.match(path) is not None for entry in entries):
                methods.add(method)
        return methods

    def routes(self) -> List["CompiledRoute"]:
        listed: List["CompiledRoute"] = []
        for table in self._static.values():
            listed.extend(entry.route for entry in table.values())
        for entries in self._dynamic.values():
            listed.extend(entry.route for entry in entries)
        return listed
