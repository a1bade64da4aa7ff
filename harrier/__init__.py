"""
Harrier - async route compilation and request dispatch

Complete integration of:
- Controllers: declarative (class methods) and functional route authoring
- Compiler: routes compiled once at startup into ready-to-dispatch records
- DI: singleton / request / transient scoped dependency resolution
- Cache: per-route result caching with key templates and invalidation
- Validation: pydantic-backed parameter schemas
- Faults: structured error handling funnelled into one error handler
- Middleware: CORS, rate limiting and gzip compression
- Plugins: health endpoints and OpenAPI documents
"""

__version__ = "0.1.0"

# ============================================================================
# Core Framework
# ============================================================================

from .app import Application, RouteBuilder
from .config import CacheSettings, ConfigError, ConfigLoader, HarrierConfig
from .request import Request
from .response import Html, Json, Redirect, Response, ResponseSerializer, Stream
from .middleware import CompressionMiddleware, LoggingMiddleware, MiddlewareStack, RequestIdMiddleware
from .middleware_ext import CORSMiddleware, RateLimitMiddleware, RateLimitRule
from .log import configure_logging

# ============================================================================
# Controllers
# ============================================================================

from .controller import (
    DELETE,
    GET,
    HEAD,
    OPTIONS,
    PATCH,
    POST,
    PUT,
    AllCookies,
    AllHeaders,
    AllPathParams,
    AllQuery,
    AuthorizedAttributes,
    AuthorizedResource,
    Body,
    CancelSignal,
    CompiledRoute,
    Controller,
    Cookie,
    CorrelationId,
    Credential,
    CsrfToken,
    Ctx,
    CurrentUser,
    Header,
    MetadataCompiler,
    MetadataStore,
    ParamKind,
    Path,
    ProviderToken,
    ProviderUser,
    Query,
    Req,
    RequestCtx,
    RequestDispatcher,
    RouteDefinition,
    SessionHandle,
    SessionValue,
    authenticated,
    cached,
    docs,
    invalidate,
    route,
    use,
)

from .controller.openapi import OpenAPIConfig, OpenAPIGenerator

# ============================================================================
# DI, Cache, Faults
# ============================================================================

from .di import Container, Depends, ResolutionContext, ServiceScope
from .cache import CacheDirective, CacheManager, MemoryCacheStore, RedisCacheStore
from .faults import (
    AuthenticationRequiredFault,
    CompileFault,
    DependencyResolutionFault,
    Fault,
    HandlerExecutionFault,
    HTTPFault,
    MethodNotAllowedFault,
    MethodNotFoundFault,
    NotFoundFault,
    PluginFault,
    RateLimitExceededFault,
    RouteConflictFault,
    ValidationFault,
)
from .faults.handler import ErrorHandler
from .plugins import HealthPlugin, OpenAPIPlugin, Plugin, PluginManager

__all__ = [
    # Core
    "Application", "RouteBuilder",
    "HarrierConfig", "CacheSettings", "ConfigLoader", "ConfigError",
    "Request", "Response", "ResponseSerializer", "Json", "Html", "Redirect", "Stream",
    "MiddlewareStack", "RequestIdMiddleware", "LoggingMiddleware", "CompressionMiddleware",
    "CORSMiddleware", "RateLimitMiddleware", "RateLimitRule",
    "configure_logging",

    # Controllers
    "Controller", "RequestCtx",
    "GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "route",
    "cached", "invalidate", "use", "docs", "authenticated",
    "ParamKind", "Body", "Query", "AllQuery", "Path", "AllPathParams",
    "Header", "AllHeaders", "Cookie", "AllCookies", "Req", "Ctx",
    "CurrentUser", "Credential", "ProviderUser", "ProviderToken",
    "SessionHandle", "SessionValue", "CsrfToken",
    "AuthorizedResource", "AuthorizedAttributes", "CorrelationId", "CancelSignal",
    "MetadataStore", "RouteDefinition", "MetadataCompiler", "CompiledRoute", "RequestDispatcher",
    "OpenAPIConfig", "OpenAPIGenerator",

    # DI
    "Container", "Depends", "ResolutionContext", "ServiceScope",

    # Cache
    "CacheDirective", "CacheManager", "MemoryCacheStore", "RedisCacheStore",

    # Faults
    "Fault", "HTTPFault", "NotFoundFault", "MethodNotAllowedFault",
    "ValidationFault", "AuthenticationRequiredFault", "DependencyResolutionFault",
    "HandlerExecutionFault", "MethodNotFoundFault", "CompileFault", "RouteConflictFault",
    "PluginFault", "RateLimitExceededFault",
    "ErrorHandler",

    # Plugins
    "Plugin", "PluginManager", "HealthPlugin", "OpenAPIPlugin",
]
