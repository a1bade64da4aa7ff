"""
Parameter extraction - per-kind rules for filling handler argument slots.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from ..faults import AuthenticationRequiredFault, ValidationFault
from ..validation import SchemaValidator
from .metadata import MISSING, ParameterDefinition
from .params import ParamKind

if TYPE_CHECKING:
    from .base import RequestCtx
    from .compiler import CompiledRoute

logger = logging.getLogger("harrier.controller.extraction")

Rule = Callable[["RequestCtx", ParameterDefinition], Awaitable[Any]]


class ParameterExtractor:
    """
    Extracts and validates the declared parameters of a route.

    Rules run in ascending slot order; each value is validated against its
    schema (if any) before the next slot is extracted.
    """

    def __init__(self, validator: Optional[SchemaValidator] = None):
        self.validator = validator or SchemaValidator()
        self._rules: Dict[ParamKind, Rule] = {
            ParamKind.BODY: self._body,
            ParamKind.QUERY: self._query,
            ParamKind.QUERY_ALL: self._query_all,
            ParamKind.PATH: self._path,
            ParamKind.PATH_ALL: self._path_all,
            ParamKind.HEADER: self._header,
            ParamKind.HEADER_ALL: self._header_all,
            ParamKind.COOKIE: self._cookie,
            ParamKind.COOKIE_ALL: self._cookie_all,
            ParamKind.REQUEST: self._request,
            ParamKind.CONTEXT: self._context,
            ParamKind.PRINCIPAL: self._principal,
            ParamKind.CREDENTIAL: self._slot("credential"),
            ParamKind.PROVIDER_USER: self._slot("provider_user"),
            ParamKind.PROVIDER_TOKEN: self._slot("provider_token"),
            ParamKind.SESSION: self._slot("session"),
            ParamKind.SESSION_VALUE: self._session_value,
            ParamKind.CSRF_TOKEN: self._slot("csrf_token"),
            ParamKind.AUTHORIZED_RESOURCE: self._slot("authorized_resource"),
            ParamKind.AUTHORIZED_ATTRIBUTES: self._slot("authorized_attributes"),
            ParamKind.CORRELATION_ID: self._slot("correlation_id"),
            ParamKind.CANCEL_SIGNAL: self._slot("cancel_event"),
        }

    async def extract(self, route: "CompiledRoute", ctx: "RequestCtx") -> Dict[int, Any]:
        """Return index -> value for every declared parameter slot."""
        slots: Dict[int, Any] = {}
        for index in route.parameter_order:
            parameter = route.parameters[index]
            slots[index] = await self.extract_one(parameter, ctx)
        return slots

    async def extract_one(self, parameter: ParameterDefinition, ctx: "RequestCtx") -> Any:
        rule = self._rules.get(parameter.kind)
        if rule is None:
            raise ValueError(f"No extraction rule for parameter kind {parameter.kind!r}")
        value = await rule(ctx, parameter)

        if value is None:
            if parameter.default is not MISSING:
                return parameter.default
            if parameter.required:
                field = parameter.name or parameter.kind.value
                raise ValidationFault(field, "Field required", source=parameter.kind.value)
            return None

        if parameter.schema is not None:
            value = await self.validator.validate(parameter.schema, value, source=parameter.kind.value)
        return value

    # ------------------------------------------------------------------
    # Request data
    # ------------------------------------------------------------------

    async def _body(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return await ctx.request.json_or_none()

    async def _query(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        values = ctx.request.query_params.get_all(parameter.name)
        if not values:
            return None
        return values[0] if len(values) == 1 else list(values)

    async def _query_all(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.request.query_params.to_dict()

    async def _path(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.path_params.get(parameter.name)

    async def _path_all(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return dict(ctx.path_params)

    async def _header(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.request.headers.get(parameter.name)

    async def _header_all(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.request.headers.to_dict()

    async def _cookie(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.request.cookies.get(parameter.name)

    async def _cookie_all(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return dict(ctx.request.cookies)

    # ------------------------------------------------------------------
    # Handles and collaborator slots
    # ------------------------------------------------------------------

    async def _request(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx.request

    async def _context(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        return ctx

    async def _principal(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        if ctx.principal is None and ctx.route is not None and ctx.route.auth_required:
            raise AuthenticationRequiredFault(ctx.route.key)
        return ctx.principal

    async def _session_value(self, ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
        if not ctx.session:
            return None
        return ctx.session.get(parameter.name)

    @staticmethod
    def _slot(attribute: str) -> Rule:
        async def rule(ctx: "RequestCtx", parameter: ParameterDefinition) -> Any:
            return getattr(ctx, attribute)

        rule.__name__ = f"_slot_{attribute}"
        return rule
