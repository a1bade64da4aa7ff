"""
Harrier Controller System

Route declaration, compilation and dispatch.

Two authoring styles feed one Metadata Store:

- Declarative: methods of a Controller subclass decorated with GET/POST/...
- Functional: handlers registered with app.get(...) / app.post(...)

Example:
    from typing import Annotated
    from harrier import Controller, GET, Path, Depends

    class ItemsController(Controller):
        prefix = "/items"

        @GET("/:id")
        async def show(self, repo: Annotated[ItemRepo, Depends()], id: Annotated[str, Path()]):
            return await repo.get(id)
"""

from .base import Controller, RequestCtx
from .compiler import CompiledRoute, MetadataCompiler, compile_path, normalize_path
from .decorators import (
    DELETE,
    GET,
    HEAD,
    OPTIONS,
    PATCH,
    POST,
    PUT,
    authenticated,
    cached,
    docs,
    invalidate,
    route,
    use,
)
from .engine import RequestDispatcher
from .extraction import ParameterExtractor
from .metadata import (
    FUNCTIONAL_OWNER,
    ControllerDefinition,
    Declarative,
    DependencyDefinition,
    Functional,
    MetadataStore,
    ParameterDefinition,
    RouteBody,
    RouteDefinition,
    RouteDocs,
)
from .params import (
    AllCookies,
    AllHeaders,
    AllPathParams,
    AllQuery,
    AuthorizedAttributes,
    AuthorizedResource,
    Body,
    CancelSignal,
    Cookie,
    CorrelationId,
    Credential,
    CsrfToken,
    Ctx,
    CurrentUser,
    Header,
    Param,
    ParamKind,
    Path,
    ProviderToken,
    ProviderUser,
    Query,
    Req,
    SessionHandle,
    SessionValue,
)
from .registration import controller_routes, functional_route, handler_slots
from .router import RouteMatch, Router

__all__ = [
    # Base
    "Controller",
    "RequestCtx",

    # Decorators
    "GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS",
    "route", "cached", "invalidate", "use", "docs", "authenticated",

    # Parameter markers
    "Param", "ParamKind",
    "Body", "Query", "AllQuery", "Path", "AllPathParams",
    "Header", "AllHeaders", "Cookie", "AllCookies",
    "Req", "Ctx", "CurrentUser", "Credential", "ProviderUser", "ProviderToken",
    "SessionHandle", "SessionValue", "CsrfToken",
    "AuthorizedResource", "AuthorizedAttributes", "CorrelationId", "CancelSignal",

    # Metadata
    "FUNCTIONAL_OWNER",
    "MetadataStore",
    "RouteDefinition",
    "ControllerDefinition",
    "ParameterDefinition",
    "DependencyDefinition",
    "RouteDocs",
    "RouteBody",
    "Functional",
    "Declarative",

    # Registration
    "controller_routes",
    "functional_route",
    "handler_slots",

    # Compilation
    "MetadataCompiler",
    "CompiledRoute",
    "compile_path",
    "normalize_path",

    # Dispatch
    "RequestDispatcher",
    "ParameterExtractor",
    "Router",
    "RouteMatch",
]
