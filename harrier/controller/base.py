"""
Controller Base Class

Provides the base Controller class and the RequestCtx abstraction.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..di.context import ResolutionContext

if TYPE_CHECKING:
    from ..request import Request
    from .compiler import CompiledRoute


@dataclass
class RequestCtx:
    """
    Per-request context.

    Functional handlers receive it as their first argument; controller
    methods declare a Ctx() parameter to get it. Authentication, session
    and authorization collaborators fill the identity slots before the
    handler runs (typically from middleware).

    Attributes:
        request: The HTTP request
        path_params: Captured path segments
        route: CompiledRoute being served
        resolution: Request-scoped dependency handle
        principal: Authenticated principal
        credential: Raw credential presented by the client
        provider_user: User record from an external identity provider
        provider_token: Token issued by an external identity provider
        session: Active session mapping
        csrf_token: Anti-forgery token for this request
        authorized_resource: Resource admitted by an authorization policy
        authorized_attributes: Attributes admitted by an authorization policy
        correlation_id: Request correlation identifier
        cancel_event: Set when the client disconnects
        cache_status: "HIT" / "MISS" when the route is cached
        state: Free-form per-request state
    """

    request: "Request"
    path_params: Dict[str, str] = field(default_factory=dict)
    route: Optional["CompiledRoute"] = None
    resolution: ResolutionContext = field(default_factory=ResolutionContext)
    principal: Optional[Any] = None
    credential: Optional[Any] = None
    provider_user: Optional[Any] = None
    provider_token: Optional[Any] = None
    session: Optional[Dict[str, Any]] = None
    csrf_token: Optional[str] = None
    authorized_resource: Optional[Any] = None
    authorized_attributes: Optional[Any] = None
    correlation_id: Optional[str] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    cache_status: Optional[str] = None
    state: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.resolution.request_ctx = self

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def headers(self):
        return self.request.headers

    @property
    def query_params(self):
        return self.request.query_params

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Captured path segment."""
        return self.path_params.get(name, default)


class Controller:
    """
    Base class for controllers.

    Class attributes:
        prefix: Path prefix for every route of the controller
        middleware: Middleware applied to every route, before route middleware
        tags: Documentation tags for every route

    Controllers are resolved as transient instances per request, so the
    constructor may declare dependencies with Annotated[T, Depends(...)].

    Example::

        class ProductsController(Controller):
            prefix = "/products"
            tags = ["products"]

            @GET("/{id}")
            async def show(self, id: Annotated[int, Path()]):
                ...
    """

    prefix: str = ""
    middleware: List[Any] = []
    tags: List[str] = []
