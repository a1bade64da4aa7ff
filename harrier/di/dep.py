"""
Depends - dependency descriptor for Annotated[]-based injection.

Usage::

    from typing import Annotated
    from harrier import Depends, ServiceScope

    class Database:
        ...

    class UserRepo:
        def __init__(self, db: Annotated[Database, Depends(scope=ServiceScope.SINGLETON)]):
            self.db = db

    class UsersController(Controller):
        prefix = "/users"

        @GET("/{id}")
        async def show(self, repo: Annotated[UserRepo, Depends()], id: Annotated[str, Path()]):
            return await repo.find(id)

A bare Depends() resolves the annotated type itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Optional, get_args, get_origin

from .scopes import ServiceScope


@dataclass(frozen=True, slots=True)
class Depends:
    """Dependency marker.

    Attributes:
        provider: Class or factory to resolve. None means "the annotated type".
        scope:    Lifetime override. None defers to the provider's registered
                  scope, or request scope when it is not registered.
    """

    provider: Any = None
    scope: Optional[ServiceScope] = None

    def __post_init__(self):
        if self.scope is not None and not isinstance(self.scope, ServiceScope):
            object.__setattr__(self, "scope", ServiceScope(self.scope))


def find_marker(annotation: Any, marker_type: type) -> tuple[Any, Any]:
    """
    Split ``Annotated[T, ..., marker]`` into ``(T, marker)``.

    Returns ``(annotation, None)`` when no marker of ``marker_type`` is present.
    """
    if get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, marker_type):
                return base, extra
            if isinstance(extra, type) and issubclass(extra, marker_type):
                return base, extra()
        return base, None
    return annotation, None
