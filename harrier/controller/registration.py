"""
Route registration - turns controllers and functional handlers into
RouteDefinitions.

Handler signatures are read once, at registration:

- ``Annotated[T, Query()]`` and the other Param markers become parameter slots
- ``Annotated[T, Depends(...)]`` becomes a dependency slot
- an unmarked RequestCtx / Request annotation becomes the raw context / request
- an unmarked argument named after a path placeholder becomes that segment

Slot indices count from the first argument after ``self`` (controllers) or
``ctx`` (functional handlers).
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union, get_type_hints

from ..cache.directive import CacheDirective
from ..di.dep import Depends, find_marker
from ..faults import CompileFault
from ..request import Request
from .base import RequestCtx
from .compiler import normalize_path, path_param_names
from .decorators import OPTIONS_ATTR, ROUTE_ATTR
from .metadata import (
    FUNCTIONAL_OWNER,
    MISSING,
    Declarative,
    DependencyDefinition,
    Functional,
    MetadataStore,
    ParameterDefinition,
    RouteDefinition,
    RouteDocs,
)
from .params import DATA_KINDS, Param, ParamKind

logger = logging.getLogger("harrier.controller.registration")

Slots = Tuple[Dict[int, ParameterDefinition], Dict[int, DependencyDefinition]]

# Functional schema= keys, in slot order
SCHEMA_SOURCES: Tuple[Tuple[str, ParamKind], ...] = (
    ("body", ParamKind.BODY),
    ("query", ParamKind.QUERY_ALL),
    ("params", ParamKind.PATH_ALL),
    ("headers", ParamKind.HEADER_ALL),
)


def _schema_for(annotation: Any) -> Any:
    if annotation is Any or annotation is inspect.Parameter.empty:
        return None
    return annotation


def handler_slots(func: Callable[..., Any], path: str, *, skip: int = 1) -> Slots:
    """
    Read parameter and dependency slots from a handler signature.

    Args:
        func: Handler function (unbound for controller methods)
        path: Full path template, used to recognise unmarked path arguments
        skip: Leading arguments that are not slots (self or ctx)

    Raises:
        CompileFault: an argument has no recognisable source
    """
    label = getattr(func, "__qualname__", repr(func))
    try:
        hints = get_type_hints(func, include_extras=True)
    except Exception as exc:
        raise CompileFault(f"cannot resolve type hints of {label}: {exc}", route=label) from exc

    placeholders = set(path_param_names(path))
    parameters: Dict[int, ParameterDefinition] = {}
    dependencies: Dict[int, DependencyDefinition] = {}

    arguments = list(inspect.signature(func).parameters.values())[skip:]
    index = 0
    for argument in arguments:
        if argument.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if argument.kind is inspect.Parameter.KEYWORD_ONLY:
            raise CompileFault(
                f"argument '{argument.name}' of {label} is keyword-only; handler arguments are passed positionally",
                route=label,
            )

        annotation = hints.get(argument.name, argument.annotation)
        default = MISSING if argument.default is inspect.Parameter.empty else argument.default

        base, marker = find_marker(annotation, Param)
        if marker is not None:
            parameters[index] = _parameter(index, argument.name, base, marker, default)
        else:
            base, depends = find_marker(annotation, Depends)
            if depends is not None:
                provider = depends.provider if depends.provider is not None else base
                if provider is inspect.Parameter.empty or provider is Any:
                    raise CompileFault(
                        f"Depends() on '{argument.name}' of {label} needs a provider or a type annotation",
                        route=label,
                    )
                dependencies[index] = DependencyDefinition(index=index, provider=provider, scope=depends.scope)
            elif base is RequestCtx:
                parameters[index] = ParameterDefinition(index=index, kind=ParamKind.CONTEXT)
            elif base is Request:
                parameters[index] = ParameterDefinition(index=index, kind=ParamKind.REQUEST)
            elif argument.name in placeholders:
                parameters[index] = ParameterDefinition(
                    index=index,
                    kind=ParamKind.PATH,
                    name=argument.name,
                    schema=_schema_for(base),
                    required=default is MISSING,
                    default=default,
                )
            else:
                raise CompileFault(
                    f"argument '{argument.name}' of {label} has no source; annotate it with "
                    f"Annotated[T, Query()] (or another marker) or Annotated[T, Depends()]",
                    route=label,
                )
        index += 1

    return parameters, dependencies


def _parameter(index: int, argument: str, base: Any, marker: Param, default: Any) -> ParameterDefinition:
    if marker.kind in DATA_KINDS:
        schema = marker.schema if marker.schema is not None else _schema_for(base)
        required = marker.required if marker.required is not None else default is MISSING
    else:
        schema = marker.schema
        required = bool(marker.required)
    return ParameterDefinition(
        index=index,
        kind=marker.kind,
        name=marker.source_name(argument),
        schema=schema,
        required=required,
        default=default,
    )


def schema_slots(schema: Mapping[str, Any]) -> Dict[int, ParameterDefinition]:
    """
    Slots for a functional ``schema=`` mapping.

    Keys body / query / params / headers fill slots 0..n in that order;
    only the keys present get a slot.
    """
    unknown = set(schema) - {name for name, _ in SCHEMA_SOURCES}
    if unknown:
        raise CompileFault(f"unknown schema sources {sorted(unknown)}; expected body, query, params, headers")

    parameters: Dict[int, ParameterDefinition] = {}
    for name, kind in SCHEMA_SOURCES:
        if name in schema:
            index = len(parameters)
            parameters[index] = ParameterDefinition(
                index=index,
                kind=kind,
                name=None,
                schema=schema[name],
                required=kind is ParamKind.BODY,
            )
    return parameters


def _as_directive(cache: Any) -> Optional[CacheDirective]:
    if cache is None or isinstance(cache, CacheDirective):
        return cache
    if isinstance(cache, Mapping):
        return CacheDirective(**cache)
    return CacheDirective(ttl=cache)


def _handler_options(func: Callable[..., Any]) -> Dict[str, Any]:
    return getattr(func, OPTIONS_ATTR, None) or {}


# ============================================================================
# Functional routes
# ============================================================================

def functional_route(
    method: str,
    path: str,
    handler: Callable[..., Any],
    *,
    schema: Optional[Mapping[str, Any]] = None,
    depends: Iterable[Any] = (),
    middleware: Iterable[Any] = (),
    cache: Union[CacheDirective, Mapping[str, Any], int, float, str, None] = None,
    invalidate: Iterable[str] = (),
    docs: Optional[RouteDocs] = None,
    name: Optional[str] = None,
    auth_required: bool = False,
) -> RouteDefinition:
    """
    Build the RouteDefinition of a function-registered route.

    The handler is called as ``handler(ctx, *args)``. With ``schema=`` the
    argument slots come from the mapping (then ``depends`` in order);
    without it they are read from the handler's annotations.
    """
    if not callable(handler):
        raise CompileFault(f"handler for {method.upper()} {path} is not callable")

    method = method.upper()
    if schema is not None:
        parameters = schema_slots(schema)
        dependencies: Dict[int, DependencyDefinition] = {}
    else:
        parameters, dependencies = handler_slots(handler, path, skip=1)

    next_index = max(list(parameters) + list(dependencies) + [-1]) + 1
    for offset, provider in enumerate(depends):
        marker = provider if isinstance(provider, Depends) else Depends(provider)
        dependencies[next_index + offset] = DependencyDefinition(
            index=next_index + offset,
            provider=marker.provider,
            scope=marker.scope,
        )

    options = _handler_options(handler)
    route_docs = options.get("docs")
    if docs is not None:
        route_docs = route_docs.merged(docs) if route_docs is not None else docs
    if route_docs is None and handler.__doc__:
        route_docs = RouteDocs(summary=inspect.cleandoc(handler.__doc__).splitlines()[0])

    return RouteDefinition(
        owner_name=FUNCTIONAL_OWNER,
        member=f"{method.lower()}_{path}",
        method=method,
        path=path,
        owner=None,
        body=Functional(handler),
        middleware=list(middleware) + list(options.get("middleware", ())),
        parameters=parameters,
        dependencies=dependencies,
        docs=route_docs,
        cache=_as_directive(cache) or options.get("cache"),
        invalidate=list(invalidate) + list(options.get("invalidate", ())),
        auth_required=auth_required or options.get("auth_required", False),
        name=name,
    )


# ============================================================================
# Controllers
# ============================================================================

def controller_routes(
    store: MetadataStore,
    controller: type,
    *,
    prefix: str = "",
    middleware: Iterable[Any] = (),
) -> List[RouteDefinition]:
    """
    Register every decorated method of a controller class.

    Each route is registered as an explicit RouteDefinition followed by
    one define_parameter / define_dependency call per slot.

    Args:
        store: Target metadata store
        controller: Controller class
        prefix: Outer prefix (from an application group)
        middleware: Outer middleware (from an application group)

    Returns:
        The stored definitions, in declaration order
    """
    class_prefix = getattr(controller, "prefix", "") or ""
    if not isinstance(class_prefix, str):
        raise CompileFault(f"{controller.__qualname__}.prefix must be a string")

    full_prefix = normalize_path(prefix, class_prefix)
    outer_middleware = list(middleware) + list(getattr(controller, "middleware", []) or [])
    tags = tuple(getattr(controller, "tags", []) or [])
    store.register_controller(controller, full_prefix, outer_middleware, tags)

    owner_name = controller.__qualname__
    stored: List[RouteDefinition] = []
    members = inspect.getmembers(controller, predicate=inspect.isfunction)
    members.sort(key=lambda item: item[1].__code__.co_firstlineno)

    for method_name, func in members:
        specs = func.__dict__.get(ROUTE_ATTR)
        if not specs:
            continue
        options = _handler_options(func)

        for spec in specs:
            http_method = spec["http_method"]
            path = normalize_path(full_prefix, spec["path"])
            member = method_name if len(specs) == 1 else f"{method_name}_{http_method.lower()}"

            docs = RouteDocs(tags=tags).merged(spec["docs"]).merged(options.get("docs"))

            route = store.register_route(RouteDefinition(
                owner_name=owner_name,
                member=member,
                method=http_method,
                path=path,
                owner=controller,
                body=Declarative(controller, method_name),
                middleware=outer_middleware + list(options.get("middleware", ())),
                docs=docs,
                cache=options.get("cache"),
                invalidate=list(options.get("invalidate", ())),
                auth_required=options.get("auth_required", False),
                name=spec.get("name"),
            ))

            parameters, dependencies = handler_slots(func, path, skip=1)
            for parameter in parameters.values():
                store.define_parameter(owner_name, member, parameter)
            for dependency in dependencies.values():
                store.define_dependency(owner_name, member, dependency)

            logger.debug(f"Registered {http_method} {path} -> {route.label}")
            stored.append(route)

    if not stored:
        logger.warning(f"Controller {owner_name} declares no routes")
    return stored
