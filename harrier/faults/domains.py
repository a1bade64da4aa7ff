"""
Harrier Faults - Typed faults raised by routing, dispatch and DI.

Request-time faults funnel into the ErrorHandler. Compile-time faults
(severity FATAL) propagate out of Application.compile() and abort startup.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# HTTP faults
# ============================================================================

class HTTPFault(Fault):
    """
    Fault that maps directly onto an HTTP error status.

    ``headers`` are added to the rendered error response (``allow`` on 405,
    ``retry-after`` on 429, ...).
    """

    def __init__(
        self,
        status: int,
        message: str,
        *,
        code: Optional[str] = None,
        domain: FaultDomain = FaultDomain.ROUTING,
        headers: Optional[Mapping[str, str]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.headers = {name.lower(): value for name, value in (headers or {}).items()}
        super().__init__(
            code=code or f"HTTP_{status}",
            message=message,
            domain=domain,
            status=status,
            public=True,
            metadata=metadata,
        )


class NotFoundFault(HTTPFault):
    def __init__(self, path: str):
        super().__init__(
            404,
            f"No route matches '{path}'",
            code="NOT_FOUND",
            metadata={"path": path},
        )


class MethodNotAllowedFault(HTTPFault):
    def __init__(self, method: str, path: str, allowed: Iterable[str]):
        self.allowed = sorted(allowed)
        super().__init__(
            405,
            f"Method {method} not allowed for '{path}'",
            code="METHOD_NOT_ALLOWED",
            headers={"allow": ", ".join(self.allowed)},
            metadata={"method": method, "path": path, "allowed": self.allowed},
        )


class RateLimitExceededFault(HTTPFault):
    """A client used up its request budget for the current window."""

    def __init__(self, limit: int, window: float, retry_after: float, headers: Optional[Mapping[str, str]] = None):
        self.limit = limit
        self.window = window
        self.retry_after = max(1, math.ceil(retry_after))
        super().__init__(
            429,
            f"Rate limit exceeded. Please try again in {self.retry_after} seconds.",
            code="RATE_LIMIT_EXCEEDED",
            domain=FaultDomain.SECURITY,
            headers={**(headers or {}), "retry-after": str(self.retry_after)},
            metadata={"limit": limit, "window": window, "retry_after": self.retry_after},
        )


# ============================================================================
# Request-time faults
# ============================================================================

class ValidationFault(Fault):
    """
    A declared schema rejected an extracted parameter.

    Attributes:
        field_path: Dotted path to the offending field ("" for the value itself)
        reason: Why the value was rejected
        errors: Every error reported by the validator
    """

    status = 422

    def __init__(
        self,
        field_path: str,
        reason: str,
        *,
        errors: Optional[List[dict[str, Any]]] = None,
        source: Optional[str] = None,
    ):
        self.field_path = field_path
        self.reason = reason
        self.errors = errors or [{"field": field_path, "reason": reason}]
        where = f" at '{field_path}'" if field_path else ""
        super().__init__(
            code="VALIDATION_FAILED",
            message=f"Validation failed{where}: {reason}",
            domain=FaultDomain.VALIDATION,
            public=True,
            metadata={"field": field_path, "source": source},
        )


class AuthenticationRequiredFault(Fault):
    status = 401

    def __init__(self, route: Optional[str] = None):
        super().__init__(
            code="AUTHENTICATION_REQUIRED",
            message="Authentication required",
            domain=FaultDomain.SECURITY,
            public=True,
            metadata={"route": route},
        )


class DependencyResolutionFault(Fault):
    """Resolver failure for one declared dependency slot."""

    def __init__(self, route: str, index: int, provider: Any, cause: BaseException):
        self.route = route
        self.index = index
        self.provider = provider
        self.cause = cause
        name = getattr(provider, "__qualname__", repr(provider))
        super().__init__(
            code="DEPENDENCY_RESOLUTION_FAILED",
            message=f"Failed to resolve dependency at index {index} ({name}) for route {route}: {cause}",
            domain=FaultDomain.DI,
            metadata={"route": route, "index": index, "provider": name},
        )


class HandlerExecutionFault(Fault):
    """The route handler or controller method raised."""

    def __init__(self, route: str, cause: BaseException):
        self.route = route
        self.cause = cause
        super().__init__(
            code="HANDLER_EXECUTION_FAILED",
            message=f"Handler for route {route} raised {type(cause).__name__}: {cause}",
            domain=FaultDomain.FLOW,
            metadata={"route": route, "exception": type(cause).__name__},
        )


class MethodNotFoundFault(Fault):
    """A declarative route names a method its owner does not define."""

    def __init__(self, owner: str, method: str):
        self.owner = owner
        self.method = method
        super().__init__(
            code="METHOD_NOT_FOUND",
            message=f"{owner} has no callable method '{method}'",
            domain=FaultDomain.FLOW,
            severity=Severity.FATAL,
            metadata={"owner": owner, "method": method},
        )


# ============================================================================
# Compile-time faults
# ============================================================================

class CompileFault(Fault):
    """Route table misconfiguration detected while compiling or installing."""

    def __init__(self, reason: str, *, route: Optional[str] = None, code: str = "COMPILE_MISCONFIGURATION"):
        self.reason = reason
        self.route = route
        prefix = f"{route}: " if route else ""
        super().__init__(
            code=code,
            message=f"{prefix}{reason}",
            domain=FaultDomain.CONFIG,
            severity=Severity.FATAL,
            metadata={"route": route},
        )


class RouteConflictFault(CompileFault):
    """Two declarations share one (owner name, member name) identity key."""

    def __init__(self, key: str):
        super().__init__(
            f"route key '{key}' declared more than once",
            route=key,
            code="ROUTE_CONFLICT",
        )


class PluginFault(CompileFault):
    """
    Plugin registration or installation failed.

    Raised for duplicate names, missing or circular plugin dependencies,
    and exceptions thrown by a plugin's install().
    """

    def __init__(self, plugin: str, reason: str, *, code: str = "PLUGIN_INSTALL_FAILED"):
        self.plugin = plugin
        super().__init__(f"plugin '{plugin}': {reason}", code=code)
