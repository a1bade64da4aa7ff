"""
Provider registrations and injection plans.

A provider is a class (instantiated through its constructor) or a factory
callable (sync, async, or a generator that yields the instance and cleans up
afterwards). Constructor and factory parameters are injected from
``Annotated[T, Depends(...)]`` markers, from registered types, or receive the
current ResolutionContext when annotated with it.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, get_type_hints

from .context import ResolutionContext
from .dep import Depends, find_marker
from .errors import InvalidProviderError, UnresolvableParameterError
from .scopes import ServiceScope

if TYPE_CHECKING:
    from .container import Container


_MISSING = object()


@dataclass(frozen=True)
class Registration:
    """Registered defaults for one provider."""

    provider: Any
    scope: ServiceScope = ServiceScope.TRANSIENT
    factory: Optional[Callable[..., Any]] = None
    value: Any = _MISSING

    @property
    def has_value(self) -> bool:
        return self.value is not _MISSING


@dataclass(frozen=True)
class InjectionPoint:
    """
    One constructor/factory parameter.

    Attributes:
        name: Parameter name
        kind: "depends", "context", "type" or "missing"
        provider: Provider to resolve (for "depends"/"type")
        scope: Scope override from the Depends marker
        has_default: Whether the parameter can be left out
    """

    name: str
    kind: str
    provider: Any = None
    scope: Optional[ServiceScope] = None
    has_default: bool = False
    annotation: Any = None


_BUILTIN_TYPES = (str, bytes, int, float, bool, complex, list, dict, set, tuple, frozenset, type(None))


def _resolve_hints(target: Callable[..., Any]) -> Dict[str, Any]:
    try:
        return get_type_hints(target, include_extras=True)
    except Exception:
        # Unresolvable forward references: fall back to raw annotations
        return dict(getattr(target, "__annotations__", {}) or {})


class ProviderPlan:
    """
    Precomputed injection plan for a class or factory callable.

    Plans are built once per provider and cached by the container.
    """

    __slots__ = ("target", "is_class", "points", "is_generator", "is_async_generator")

    def __init__(self, target: Any):
        if not callable(target):
            raise InvalidProviderError(target)
        self.target = target
        self.is_class = inspect.isclass(target)
        self.is_generator = inspect.isgeneratorfunction(target)
        self.is_async_generator = inspect.isasyncgenfunction(target)
        self.points = self._inspect(target)

    def _inspect(self, target: Any) -> List[InjectionPoint]:
        if self.is_class:
            init = target.__init__
            if init is object.__init__:
                return []
            hints = _resolve_hints(init)
        else:
            hints = _resolve_hints(target)

        try:
            signature = inspect.signature(target)
        except (TypeError, ValueError):
            return []

        points: List[InjectionPoint] = []
        for name, param in signature.parameters.items():
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            has_default = param.default is not inspect.Parameter.empty
            annotation = hints.get(name, param.annotation)
            base, marker = find_marker(annotation, Depends)

            if marker is not None:
                provider = marker.provider if marker.provider is not None else base
                points.append(InjectionPoint(name, "depends", provider, marker.scope, has_default, annotation))
            elif base is ResolutionContext:
                points.append(InjectionPoint(name, "context", has_default=has_default, annotation=annotation))
            elif has_default:
                continue
            elif inspect.isclass(base) and base not in _BUILTIN_TYPES:
                points.append(InjectionPoint(name, "type", base, None, False, annotation))
            else:
                points.append(InjectionPoint(name, "missing", annotation=annotation))
        return points

    async def build(
        self,
        container: "Container",
        context: Optional[ResolutionContext],
        stack: Tuple[Any, ...],
    ) -> Tuple[Any, Optional[Callable[[], Any]]]:
        """
        Call the target with injected arguments.

        Returns:
            (instance, finalizer) where finalizer is set for generator factories
        """
        kwargs: Dict[str, Any] = {}
        for point in self.points:
            if point.kind == "context":
                kwargs[point.name] = context
            elif point.kind == "depends":
                kwargs[point.name] = await container.resolve(
                    point.provider, scope=point.scope, context=context, _stack=stack,
                )
            elif point.kind == "type" and container.is_registered(point.provider):
                kwargs[point.name] = await container.resolve(point.provider, context=context, _stack=stack)
            else:
                raise UnresolvableParameterError(self.target, point.name, point.annotation)

        if self.is_async_generator:
            agen = self.target(**kwargs)
            instance = await agen.__anext__()
            return instance, agen.aclose

        if self.is_generator:
            gen = self.target(**kwargs)
            instance = next(gen)
            return instance, gen.close

        instance = self.target(**kwargs)
        if inspect.isawaitable(instance):
            instance = await instance
        return instance, None
