"""
Harrier Faults - structured fault taxonomy and the terminal error handler.
"""

from .core import DEFAULT_SEVERITY, Fault, FaultDomain, Severity
from .domains import (
    AuthenticationRequiredFault,
    CompileFault,
    DependencyResolutionFault,
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

__all__ = [
    "DEFAULT_SEVERITY",
    "Fault",
    "FaultDomain",
    "Severity",
    "AuthenticationRequiredFault",
    "CompileFault",
    "DependencyResolutionFault",
    "HandlerExecutionFault",
    "HTTPFault",
    "MethodNotAllowedFault",
    "MethodNotFoundFault",
    "NotFoundFault",
    "PluginFault",
    "RateLimitExceededFault",
    "RouteConflictFault",
    "ValidationFault",
]
