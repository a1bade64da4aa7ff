"""
Harrier DI - scoped dependency resolution.
"""

from .container import Container
from .context import ResolutionContext
from .dep import Depends
from .errors import (
    CircularDependencyError,
    DIError,
    InvalidProviderError,
    ProviderCreationError,
    UnresolvableParameterError,
)
from .scopes import ServiceScope

__all__ = [
    "Container",
    "ResolutionContext",
    "Depends",
    "ServiceScope",
    "DIError",
    "CircularDependencyError",
    "InvalidProviderError",
    "ProviderCreationError",
    "UnresolvableParameterError",
]
