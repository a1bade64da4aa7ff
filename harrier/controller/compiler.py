"""
Metadata Compiler - turns RouteDefinitions into CompiledRoutes.

Runs once per route at startup and precomputes:
- the path matcher (both {name} and :name capture one segment)
- the sorted parameter and dependency slot indices
- the maximum positional index and argument count
- capability flags that let the dispatcher skip unused branches
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from ..cache.directive import CacheDirective
from ..faults import CompileFault, MethodNotFoundFault
from .metadata import (
    Declarative,
    DependencyDefinition,
    Functional,
    ParameterDefinition,
    RouteDefinition,
    RouteDocs,
)
from .params import ParamKind

logger = logging.getLogger("harrier.controller.compiler")

_NAME = r"[A-Za-z_][A-Za-z0-9_]*"
# After re.escape, "{" / "}" and ":" may or may not be escaped depending on
# the Python version, so accept both spellings.
_ESCAPED_PLACEHOLDER = re.compile(rf"\\?\{{({_NAME})\\?\}}|\\?:({_NAME})")
_RAW_PLACEHOLDER = re.compile(rf"\{{({_NAME})\}}|:({_NAME})")

_BODY_KINDS = frozenset({ParamKind.BODY})
_QUERY_KINDS = frozenset({ParamKind.QUERY, ParamKind.QUERY_ALL})
_PATH_KINDS = frozenset({ParamKind.PATH, ParamKind.PATH_ALL})
_HEADER_KINDS = frozenset({ParamKind.HEADER, ParamKind.HEADER_ALL})
_COOKIE_KINDS = frozenset({ParamKind.COOKIE, ParamKind.COOKIE_ALL})


def path_param_names(template: str) -> List[str]:
    """Placeholder names in declaration order."""
    return [m.group(1) or m.group(2) for m in _RAW_PLACEHOLDER.finditer(template)]


def compile_path(template: str) -> Pattern[str]:
    """
    Compile a path template to a full-match regex.

    Regex metacharacters are escaped first, then each placeholder becomes a
    named group matching one segment.
    """
    escaped = re.escape(template)

    def to_group(match: re.Match) -> str:
        return f"(?P<{match.group(1) or match.group(2)}>[^/]+)"

    try:
        return re.compile("^" + _ESCAPED_PLACEHOLDER.sub(to_group, escaped) + "$")
    except re.error as exc:
        raise CompileFault(f"invalid path template '{template}': {exc}") from exc


def normalize_path(*segments: str) -> str:
    """Join prefix and path segments into one "/a/b" path."""
    joined = "/".join(s.strip("/") for s in segments if s and s.strip("/"))
    return "/" + joined if joined else "/"


@dataclass(frozen=True)
class CompiledRoute:
    """
    Immutable, ready-to-dispatch route.

    Attributes:
        definition: Source RouteDefinition
        matcher: Full-match path regex
        param_names: Placeholder names in the path
        parameter_order: Sorted parameter slot indices
        dependency_order: Sorted dependency slot indices
        max_argument_index: Largest slot index, clamped to >= 0
        argument_count: Length of the merged argument list
    """
    definition: RouteDefinition
    method: str
    path: str
    matcher: Pattern[str]
    param_names: Tuple[str, ...]
    parameters: Dict[int, ParameterDefinition]
    dependencies: Dict[int, DependencyDefinition]
    parameter_order: Tuple[int, ...]
    dependency_order: Tuple[int, ...]
    max_argument_index: int
    argument_count: int
    middleware: Tuple[Any, ...] = ()
    cache: Optional[CacheDirective] = None
    invalidate: Tuple[str, ...] = ()
    auth_required: bool = False
    has_body: bool = False
    has_query: bool = False
    has_path_params: bool = False
    has_headers: bool = False
    has_cookies: bool = False
    has_dependencies: bool = False
    is_static: bool = False

    @property
    def body(self):
        return self.definition.body

    @property
    def key(self) -> str:
        return self.definition.label

    @property
    def docs(self) -> Optional[RouteDocs]:
        return self.definition.docs

    def match(self, path: str) -> Optional[Dict[str, str]]:
        m = self.matcher.match(path)
        return m.groupdict() if m else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for inspection and route listings."""
        docs = self.docs
        return {
            "key": self.key,
            "method": self.method,
            "path": self.path,
            "pattern": self.matcher.pattern,
            "parameters": [
                {"index": i, "kind": self.parameters[i].kind.value, "name": self.parameters[i].name}
                for i in self.parameter_order
            ],
            "dependencies": [
                {"index": i, "provider": getattr(self.dependencies[i].provider, "__qualname__", repr(self.dependencies[i].provider))}
                for i in self.dependency_order
            ],
            "cached": self.cache is not None,
            "invalidate": list(self.invalidate),
            "auth_required": self.auth_required,
            "summary": docs.summary if docs else None,
            "tags": list(docs.tags) if docs else [],
            "deprecated": docs.deprecated if docs else False,
        }


class MetadataCompiler:
    """Compiles stored RouteDefinitions into CompiledRoutes."""

    def compile(self, route: RouteDefinition) -> CompiledRoute:
        """
        Compile one route.

        Raises:
            CompileFault: incomplete route or unknown body kind
            MethodNotFoundFault: declarative owner lacks the named method
        """
        self._check_body(route)
        if not route.method or route.path is None:
            raise CompileFault("route has no HTTP method or path", route=route.label)

        parameters = {i: p for i, p in route.parameters.items() if p is not None}
        dependencies = {i: d for i, d in route.dependencies.items() if d is not None}
        parameter_order = tuple(sorted(parameters))
        dependency_order = tuple(sorted(dependencies))

        if min(parameter_order + dependency_order, default=0) < 0:
            raise CompileFault("argument slots must be non-negative", route=route.label)
        overlap = set(parameter_order) & set(dependency_order)
        if overlap:
            logger.warning(
                f"Route {route.label} declares both a parameter and a dependency at "
                f"index {sorted(overlap)}; the parameter wins"
            )

        highest = max(parameter_order + dependency_order + (-1,))
        kinds = {p.kind for p in parameters.values()}
        names = path_param_names(route.path)

        compiled = CompiledRoute(
            definition=route,
            method=route.method.upper(),
            path=route.path,
            matcher=compile_path(route.path),
            param_names=tuple(names),
            parameters=parameters,
            dependencies=dependencies,
            parameter_order=parameter_order,
            dependency_order=dependency_order,
            max_argument_index=max(highest, 0),
            argument_count=highest + 1,
            middleware=tuple(route.middleware),
            cache=route.cache,
            invalidate=tuple(route.invalidate),
            auth_required=route.auth_required,
            has_body=bool(kinds & _BODY_KINDS),
            has_query=bool(kinds & _QUERY_KINDS),
            has_path_params=bool(kinds & _PATH_KINDS),
            has_headers=bool(kinds & _HEADER_KINDS),
            has_cookies=bool(kinds & _COOKIE_KINDS),
            has_dependencies=bool(dependency_order),
            is_static=not names,
        )
        logger.debug(f"Compiled {compiled.method} {compiled.path} -> {route.label}")
        return compiled

    def compile_all(self, routes: Iterable[RouteDefinition]) -> List[CompiledRoute]:
        return [self.compile(route) for route in routes]

    def _check_body(self, route: RouteDefinition) -> None:
        body = route.body
        if isinstance(body, Functional):
            if not callable(body.handler):
                raise CompileFault("functional route handler is not callable", route=route.label)
        elif isinstance(body, Declarative):
            if not callable(getattr(body.owner, body.method_name, None)):
                raise MethodNotFoundFault(body.owner.__qualname__, body.method_name)
        elif body is None:
            raise CompileFault("route has no handler", route=route.label)
        else:
            raise CompileFault(f"unknown route registration kind {type(body).__name__}", route=route.label)
