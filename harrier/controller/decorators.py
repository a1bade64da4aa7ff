"""
Controller Method Decorators

HTTP method, caching, middleware, documentation and auth decorators.
They only record declarations on the function; Application.include()
turns the records into RouteDefinitions when the controller is registered.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from ..cache.directive import TTL, CacheDirective
from .metadata import RouteDocs

F = TypeVar("F", bound=Callable[..., Any])

ROUTE_ATTR = "__route_metadata__"
OPTIONS_ATTR = "__route_options__"


def route_options(func: Callable[..., Any]) -> Dict[str, Any]:
    """Per-function option record shared by the non-verb decorators."""
    options = func.__dict__.get(OPTIONS_ATTR)
    if options is None:
        options = {
            "middleware": [],
            "cache": None,
            "invalidate": [],
            "docs": None,
            "auth_required": False,
        }
        setattr(func, OPTIONS_ATTR, options)
    return options


class RouteDecorator:
    """
    Base route decorator.

    Attaches verb/path metadata to controller methods for extraction when
    the controller is included.
    """

    method: Optional[str] = None

    def __init__(
        self,
        path: str = "",
        *,
        name: Optional[str] = None,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        deprecated: bool = False,
        responses: Optional[Dict[int, str]] = None,
    ):
        """
        Initialize route decorator.

        Args:
            path: Path template relative to the controller prefix
                  (e.g., "/{id}" or "/:id")
            name: Optional route name
            summary: Documentation summary
            description: Documentation description (defaults to docstring)
            tags: Documentation tags (extend controller tags)
            deprecated: Mark as deprecated
            responses: Status code -> description
        """
        self.path = path
        self.name = name
        self.summary = summary
        self.description = description
        self.tags = tags or []
        self.deprecated = deprecated
        self.responses = responses or {}

    def __call__(self, func: F) -> F:
        if ROUTE_ATTR not in func.__dict__:
            setattr(func, ROUTE_ATTR, [])

        func.__route_metadata__.append({
            "http_method": self.method,
            "path": self.path,
            "name": self.name,
            "docs": RouteDocs(
                summary=self.summary or func.__name__.replace("_", " ").title(),
                description=self.description or (func.__doc__ or "").strip() or None,
                tags=tuple(self.tags),
                deprecated=self.deprecated,
                responses=dict(self.responses),
            ),
        })
        return func


class GET(RouteDecorator):
    """GET request decorator."""
    method = "GET"


class POST(RouteDecorator):
    """POST request decorator."""
    method = "POST"


class PUT(RouteDecorator):
    """PUT request decorator."""
    method = "PUT"


class PATCH(RouteDecorator):
    """PATCH request decorator."""
    method = "PATCH"


class DELETE(RouteDecorator):
    """DELETE request decorator."""
    method = "DELETE"


class HEAD(RouteDecorator):
    """HEAD request decorator."""
    method = "HEAD"


class OPTIONS(RouteDecorator):
    """OPTIONS request decorator."""
    method = "OPTIONS"


def route(method: str, path: str = "", **kwargs) -> RouteDecorator:
    """Route decorator for an arbitrary HTTP method."""
    decorator = RouteDecorator(path, **kwargs)
    decorator.method = method.upper()
    return decorator


# ============================================================================
# Route options
# ============================================================================

def cached(
    ttl: TTL = 60,
    *,
    key: Optional[str] = None,
    prefix: Optional[str] = None,
    include_query: bool = False,
    vary_by_headers: Iterable[str] = (),
    condition: Optional[Callable[[Any], bool]] = None,
    store: Optional[str] = None,
) -> Callable[[F], F]:
    """
    Cache the route's result.

    Example::

        @GET("/{id}")
        @cached(ttl="5m", key="product:{id}")
        async def show(self, id: Annotated[str, Path()]): ...
    """
    directive = CacheDirective(
        ttl=ttl,
        key=key,
        prefix=prefix,
        include_query=include_query,
        vary_by_headers=tuple(vary_by_headers),
        condition=condition,
        store=store,
    )

    def decorator(func: F) -> F:
        route_options(func)["cache"] = directive
        return func

    return decorator


def invalidate(*patterns: str) -> Callable[[F], F]:
    """Delete cache keys matching patterns after the route runs ({name} takes path params)."""
    def decorator(func: F) -> F:
        route_options(func)["invalidate"].extend(patterns)
        return func

    return decorator


def use(*middleware: Any) -> Callable[[F], F]:
    """Attach route middleware (outermost first)."""
    def decorator(func: F) -> F:
        route_options(func)["middleware"].extend(middleware)
        return func

    return decorator


def docs(
    summary: Optional[str] = None,
    description: Optional[str] = None,
    *,
    tags: Iterable[str] = (),
    deprecated: bool = False,
    responses: Optional[Dict[int, str]] = None,
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        route_options(func)["docs"] = RouteDocs(
            summary=summary,
            description=description,
            tags=tuple(tags),
            deprecated=deprecated,
            responses=dict(responses or {}),
        )
        return func

    return decorator


def authenticated(func: F) -> F:
    """Require an authenticated principal for CurrentUser() arguments."""
    route_options(func)["auth_required"] = True
    return func
