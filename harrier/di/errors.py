"""
DI-specific error types with rich diagnostics.
"""

from typing import Any, List, Optional


def provider_name(provider: Any) -> str:
    """Human-readable name for a provider (class, function or value key)."""
    name = getattr(provider, "__qualname__", None) or getattr(provider, "__name__", None)
    if name:
        return name
    return repr(provider)[:50]


class DIError(Exception):
    """Base exception for DI errors."""
    pass


class InvalidProviderError(DIError):
    """The provider is neither a class nor a callable."""

    def __init__(self, provider: Any):
        self.provider = provider
        super().__init__(
            f"Invalid provider {provider!r}: expected a class or a factory callable"
            f"\n\nSuggested fixes:"
            f"\n  - Pass the class itself rather than an instance"
            f"\n  - Use Container.register_instance() to provide a fixed value"
        )


class UnresolvableParameterError(DIError):
    """A constructor or factory parameter cannot be satisfied."""

    def __init__(self, provider: Any, parameter: str, annotation: Any = None):
        self.provider = provider
        self.parameter = parameter
        msg = f"Cannot resolve parameter '{parameter}' of {provider_name(provider)}"
        if annotation is not None:
            msg += f" (annotation={annotation!r})"
        msg += "\n\nSuggested fixes:"
        msg += f"\n  - Annotate it as Annotated[T, Depends(provider)]"
        msg += f"\n  - Register a provider for its type"
        msg += f"\n  - Give '{parameter}' a default value"
        super().__init__(msg)


class CircularDependencyError(DIError):
    """Circular dependency detected."""

    def __init__(self, cycle: List[Any]):
        self.cycle = [provider_name(p) for p in cycle]
        msg = "Circular dependency detected: " + " -> ".join(self.cycle)
        msg += "\n\nSuggested fixes:"
        msg += "\n  - Break the cycle by injecting a factory instead of an instance"
        msg += "\n  - Move shared state into a third provider"
        super().__init__(msg)


class ProviderCreationError(DIError):
    """Constructor or factory raised while building an instance."""

    def __init__(self, provider: Any, cause: BaseException, scope: Optional[str] = None):
        self.provider = provider
        self.cause = cause
        msg = f"Failed to create {provider_name(provider)}"
        if scope:
            msg += f" (scope={scope})"
        msg += f": {type(cause).__name__}: {cause}"
        super().__init__(msg)
