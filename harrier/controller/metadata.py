"""
Route metadata and the per-application Metadata Store.

Every route, whether declared on a controller class or registered as a
function, becomes one RouteDefinition keyed by (owner name, member name).
Declarations for the same key merge: middleware lists concatenate, other
fields take the newest non-empty value and untouched fields are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..cache.directive import CacheDirective
from ..di.scopes import ServiceScope
from ..faults import RouteConflictFault
from .params import ParamKind

logger = logging.getLogger("harrier.controller.metadata")

FUNCTIONAL_OWNER = "FunctionalRoute"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# ============================================================================
# Definitions
# ============================================================================

@dataclass(frozen=True)
class ParameterDefinition:
    """
    One extracted handler argument.

    Attributes:
        index: Positional slot in the handler call
        kind: Source kind
        name: Source name for named kinds (query key, header, ...)
        schema: Optional validation schema
        required: Whether a missing value is rejected
        default: Value used when the source is missing
    """
    index: int
    kind: ParamKind
    name: Optional[str] = None
    schema: Any = None
    required: bool = False
    default: Any = MISSING


@dataclass(frozen=True)
class DependencyDefinition:
    """
    One injected handler argument.

    Attributes:
        index: Positional slot in the handler call
        provider: Class or factory passed to the container
        scope: Lifetime (None defers to the container's registration)
    """
    index: int
    provider: Any
    scope: Optional[ServiceScope] = None


@dataclass(frozen=True)
class RouteDocs:
    """Documentation attached to a route."""
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    deprecated: bool = False
    responses: Dict[int, str] = field(default_factory=dict)

    def merged(self, other: Optional["RouteDocs"]) -> "RouteDocs":
        """Fields set on other win; tags accumulate."""
        if other is None:
            return self
        return RouteDocs(
            summary=other.summary or self.summary,
            description=other.description or self.description,
            tags=tuple(dict.fromkeys(self.tags + other.tags)),
            deprecated=other.deprecated or self.deprecated,
            responses={**self.responses, **other.responses},
        )


@dataclass(frozen=True)
class Functional:
    """Route body for function-registered routes: handler(ctx, *args)."""
    handler: Callable[..., Any]


@dataclass(frozen=True)
class Declarative:
    """Route body for controller methods: owner().method_name(*args)."""
    owner: type
    method_name: str


RouteBody = Union[Functional, Declarative]


@dataclass
class RouteDefinition:
    """
    Uncompiled route record.

    Attributes:
        owner_name: Owning type name (FUNCTIONAL_OWNER for functional routes)
        member: Member name, unique per owner
        method: HTTP method
        path: Path template ({name} and :name placeholders)
        owner: Owning class for declarative routes
        body: Functional or Declarative
        middleware: Route middleware, outermost first
        parameters: index -> ParameterDefinition (gaps are absent keys)
        dependencies: index -> DependencyDefinition (gaps are absent keys)
        docs: Optional documentation
        cache: Optional cache directive
        invalidate: Cache key patterns deleted after the handler runs
        auth_required: Whether a principal is mandatory
        name: Optional route name
    """
    owner_name: str
    member: str
    method: Optional[str] = None
    path: Optional[str] = None
    owner: Optional[type] = None
    body: Optional[RouteBody] = None
    middleware: List[Any] = field(default_factory=list)
    parameters: Dict[int, ParameterDefinition] = field(default_factory=dict)
    dependencies: Dict[int, DependencyDefinition] = field(default_factory=dict)
    docs: Optional[RouteDocs] = None
    cache: Optional[CacheDirective] = None
    invalidate: List[str] = field(default_factory=list)
    auth_required: bool = False
    name: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_name, self.member)

    @property
    def label(self) -> str:
        return f"{self.owner_name}.{self.member}"

    @property
    def is_complete(self) -> bool:
        return self.body is not None and self.method is not None and self.path is not None


@dataclass
class ControllerDefinition:
    """Controller-level prefix and middleware."""
    owner: type
    prefix: str = ""
    middleware: List[Any] = field(default_factory=list)
    tags: Tuple[str, ...] = ()


# ============================================================================
# Store
# ============================================================================

class MetadataStore:
    """
    Holds route and controller declarations for one application.

    Args:
        strict_keys: Raise RouteConflictFault when a second complete
                     declaration reuses an existing (owner, member) key
                     instead of overwriting it with a warning.
    """

    def __init__(self, *, strict_keys: bool = False):
        self.strict_keys = strict_keys
        self._routes: Dict[Tuple[str, str], RouteDefinition] = {}
        self._controllers: Dict[type, ControllerDefinition] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register_route(self, definition: RouteDefinition) -> RouteDefinition:
        """Insert or merge by identity key; returns the stored record."""
        key = definition.key
        existing = self._routes.get(key)
        if existing is None:
            stored = replace(
                definition,
                middleware=list(definition.middleware),
                parameters=dict(definition.parameters),
                dependencies=dict(definition.dependencies),
                invalidate=list(definition.invalidate),
            )
            self._routes[key] = stored
            return stored

        if existing.is_complete and definition.is_complete:
            if self.strict_keys:
                raise RouteConflictFault(definition.label)
            logger.warning(
                f"Route {definition.label} declared twice; "
                f"{definition.method} {definition.path} replaces {existing.method} {existing.path}"
            )
            del self._routes[key]
            return self.register_route(definition)

        self._merge(existing, definition)
        return existing

    def _merge(self, existing: RouteDefinition, new: RouteDefinition) -> None:
        existing.middleware.extend(new.middleware)
        if new.parameters:
            existing.parameters = dict(new.parameters)
        if new.dependencies:
            existing.dependencies = dict(new.dependencies)
        if new.invalidate:
            existing.invalidate = list(new.invalidate)
        if new.docs is not None:
            existing.docs = new.docs
        if new.cache is not None:
            existing.cache = new.cache
        for attr in ("method", "path", "owner", "body", "name"):
            value = getattr(new, attr)
            if value is not None:
                setattr(existing, attr, value)
        if new.auth_required:
            existing.auth_required = True

    def _ensure(self, owner_name: str, member: str) -> RouteDefinition:
        key = (owner_name, member)
        if key not in self._routes:
            self._routes[key] = RouteDefinition(owner_name=owner_name, member=member)
        return self._routes[key]

    def define_parameter(self, owner_name: str, member: str, parameter: ParameterDefinition) -> None:
        """Set one parameter slot, keeping the route's other slots."""
        self._ensure(owner_name, member).parameters[parameter.index] = parameter

    def define_dependency(self, owner_name: str, member: str, dependency: DependencyDefinition) -> None:
        """Set one dependency slot, keeping the route's other slots."""
        self._ensure(owner_name, member).dependencies[dependency.index] = dependency

    def define_cache(self, owner_name: str, member: str, directive: CacheDirective) -> None:
        self._ensure(owner_name, member).cache = directive

    def define_invalidation(self, owner_name: str, member: str, patterns: Iterable[str]) -> None:
        patterns = list(patterns)
        if patterns:
            self._ensure(owner_name, member).invalidate = patterns

    def define_docs(self, owner_name: str, member: str, docs: RouteDocs) -> None:
        route = self._ensure(owner_name, member)
        route.docs = route.docs.merged(docs) if route.docs is not None else docs

    def register_controller(
        self,
        owner: type,
        prefix: str = "",
        middleware: Iterable[Any] = (),
        tags: Iterable[str] = (),
    ) -> ControllerDefinition:
        definition = ControllerDefinition(
            owner=owner,
            prefix=prefix,
            middleware=list(middleware),
            tags=tuple(tags),
        )
        self._controllers[owner] = definition
        return definition

    def clear(self) -> None:
        """Full reset. Routes cannot be removed individually."""
        self._routes.clear()
        self._controllers.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_routes(self) -> List[RouteDefinition]:
        return list(self._routes.values())

    def get_route(self, owner_name: str, member: str) -> Optional[RouteDefinition]:
        return self._routes.get((owner_name, member))

    def get_routes_by_owner(self, owner: Union[type, str]) -> List[RouteDefinition]:
        name = owner if isinstance(owner, str) else owner.__qualname__
        return [route for route in self._routes.values() if route.owner_name == name]

    def get_controller(self, owner: type) -> Optional[ControllerDefinition]:
        return self._controllers.get(owner)

    def get_controllers(self) -> List[ControllerDefinition]:
        return list(self._controllers.values())

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._routes
