"""
Tests for parameter extraction and schema validation.

Covers:
- every request-data kind (body, query, path, header, cookie and their *_ALL forms)
- raw handles and collaborator-filled slots
- defaults, required values and the principal requirement
- pydantic and custom-validator schemas
"""

import json
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel

from harrier.controller import (
    FUNCTIONAL_OWNER,
    Functional,
    MetadataCompiler,
    ParameterDefinition,
    ParameterExtractor,
    ParamKind,
    RouteDefinition,
)
from harrier.faults import AuthenticationRequiredFault, ValidationFault
from harrier.validation import SchemaValidator
from tests.conftest import make_ctx


class Point(BaseModel):
    a: float
    b: str


class Upper:
    """Custom validator object."""

    def validate(self, value):
        if not isinstance(value, str):
            raise TypeError("expected a string")
        return value.upper()


class UnhashableUpper(Upper):
    __hash__ = None


async def handler(ctx, *args):
    return args


def compiled(parameters, *, path="/items", auth_required=False):
    return MetadataCompiler().compile(RouteDefinition(
        owner_name=FUNCTIONAL_OWNER,
        member=f"get_{path}",
        method="GET",
        path=path,
        body=Functional(handler),
        parameters={p.index: p for p in parameters},
        auth_required=auth_required,
    ))


async def extract_one(kind, ctx, **kwargs):
    parameter = ParameterDefinition(index=0, kind=kind, **kwargs)
    return await ParameterExtractor().extract_one(parameter, ctx)


# ============================================================================
# Request data
# ============================================================================


class TestRequestData:
    @pytest.mark.asyncio
    async def test_body_json(self):
        ctx = make_ctx("POST", "/items", json={"name": "pen"})
        assert await extract_one(ParamKind.BODY, ctx) == {"name": "pen"}

    @pytest.mark.asyncio
    async def test_unparseable_body_is_missing(self):
        ctx = make_ctx("POST", "/items", body=b"{not json")
        assert await extract_one(ParamKind.BODY, ctx) is None

    @pytest.mark.asyncio
    async def test_query_single_and_repeated(self):
        ctx = make_ctx("GET", "/items", query_string="tag=a&tag=b&page=2")

        assert await extract_one(ParamKind.QUERY, ctx, name="page") == "2"
        assert await extract_one(ParamKind.QUERY, ctx, name="tag") == ["a", "b"]
        assert await extract_one(ParamKind.QUERY, ctx, name="missing") is None

    @pytest.mark.asyncio
    async def test_query_all(self):
        ctx = make_ctx("GET", "/items", query_string="tag=a&tag=b&page=2")
        assert await extract_one(ParamKind.QUERY_ALL, ctx) == {"tag": ["a", "b"], "page": "2"}

    @pytest.mark.asyncio
    async def test_path(self):
        ctx = make_ctx("GET", "/items/42", path_params={"id": "42"})

        assert await extract_one(ParamKind.PATH, ctx, name="id") == "42"
        assert await extract_one(ParamKind.PATH_ALL, ctx) == {"id": "42"}

    @pytest.mark.asyncio
    async def test_headers(self):
        ctx = make_ctx("GET", "/", headers=[("X-Api-Key", "secret")])

        assert await extract_one(ParamKind.HEADER, ctx, name="x-api-key") == "secret"
        assert (await extract_one(ParamKind.HEADER_ALL, ctx))["x-api-key"] == "secret"

    @pytest.mark.asyncio
    async def test_cookies(self):
        ctx = make_ctx("GET", "/", headers=[("cookie", "sid=abc; theme=dark")])

        assert await extract_one(ParamKind.COOKIE, ctx, name="sid") == "abc"
        assert await extract_one(ParamKind.COOKIE_ALL, ctx) == {"sid": "abc", "theme": "dark"}


# ============================================================================
# Handles and collaborator slots
# ============================================================================


class TestSlots:
    @pytest.mark.asyncio
    async def test_request_and_context(self):
        ctx = make_ctx()

        assert await extract_one(ParamKind.REQUEST, ctx) is ctx.request
        assert await extract_one(ParamKind.CONTEXT, ctx) is ctx

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,attribute,value",
        [
            (ParamKind.CREDENTIAL, "credential", "bearer-token"),
            (ParamKind.PROVIDER_USER, "provider_user", {"sub": "1"}),
            (ParamKind.PROVIDER_TOKEN, "provider_token", "oauth"),
            (ParamKind.SESSION, "session", {"cart": [1]}),
            (ParamKind.CSRF_TOKEN, "csrf_token", "csrf"),
            (ParamKind.AUTHORIZED_RESOURCE, "authorized_resource", {"id": 1}),
            (ParamKind.AUTHORIZED_ATTRIBUTES, "authorized_attributes", ["name"]),
            (ParamKind.CORRELATION_ID, "correlation_id", "req-1"),
        ],
    )
    async def test_collaborator_slots(self, kind, attribute, value):
        ctx = make_ctx(**{attribute: value})
        assert await extract_one(kind, ctx) == value

    @pytest.mark.asyncio
    async def test_session_value(self):
        ctx = make_ctx(session={"cart": [1, 2]})

        assert await extract_one(ParamKind.SESSION_VALUE, ctx, name="cart") == [1, 2]
        assert await extract_one(ParamKind.SESSION_VALUE, make_ctx(), name="cart") is None

    @pytest.mark.asyncio
    async def test_cancel_signal(self):
        ctx = make_ctx()
        signal = await extract_one(ParamKind.CANCEL_SIGNAL, ctx)

        assert signal is ctx.cancel_event
        assert not signal.is_set()


# ============================================================================
# Principal
# ============================================================================


class TestPrincipal:
    @pytest.mark.asyncio
    async def test_optional_principal_missing(self):
        route = compiled([ParameterDefinition(index=0, kind=ParamKind.PRINCIPAL)])
        ctx = make_ctx()
        ctx.route = route

        assert await ParameterExtractor().extract(route, ctx) == {0: None}

    @pytest.mark.asyncio
    async def test_mandatory_principal_missing(self):
        route = compiled([ParameterDefinition(index=0, kind=ParamKind.PRINCIPAL)], auth_required=True)
        ctx = make_ctx()
        ctx.route = route

        with pytest.raises(AuthenticationRequiredFault) as exc_info:
            await ParameterExtractor().extract(route, ctx)
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_mandatory_principal_present(self):
        route = compiled([ParameterDefinition(index=0, kind=ParamKind.PRINCIPAL)], auth_required=True)
        ctx = make_ctx(principal={"id": "u1"})
        ctx.route = route

        assert await ParameterExtractor().extract(route, ctx) == {0: {"id": "u1"}}


# ============================================================================
# Defaults, requirements and validation
# ============================================================================


class TestValidation:
    @pytest.mark.asyncio
    async def test_default_used_when_missing(self):
        ctx = make_ctx()
        assert await extract_one(ParamKind.QUERY, ctx, name="page", schema=int, default=1) == 1

    @pytest.mark.asyncio
    async def test_required_missing(self):
        with pytest.raises(ValidationFault) as exc_info:
            await extract_one(ParamKind.QUERY, make_ctx(), name="page", required=True)

        assert exc_info.value.field_path == "page"
        assert exc_info.value.status == 422

    @pytest.mark.asyncio
    async def test_optional_missing_skips_schema(self):
        assert await extract_one(ParamKind.QUERY, make_ctx(), name="page", schema=int) is None

    @pytest.mark.asyncio
    async def test_scalar_coercion(self):
        ctx = make_ctx(query_string="page=3")
        assert await extract_one(ParamKind.QUERY, ctx, name="page", schema=int) == 3

    @pytest.mark.asyncio
    async def test_scalar_rejected(self):
        ctx = make_ctx(query_string="page=abc")

        with pytest.raises(ValidationFault):
            await extract_one(ParamKind.QUERY, ctx, name="page", schema=int)

    @pytest.mark.asyncio
    async def test_model_missing_field(self):
        ctx = make_ctx("POST", "/points", json={"a": 1})

        with pytest.raises(ValidationFault) as exc_info:
            await extract_one(ParamKind.BODY, ctx, schema=Point, required=True)

        fault = exc_info.value
        assert fault.field_path == "b"
        assert fault.errors[0]["field"] == "b"
        assert fault.code == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_model_valid(self):
        ctx = make_ctx("POST", "/points", json={"a": 1, "b": "x"})

        point = await extract_one(ParamKind.BODY, ctx, schema=Point, required=True)
        assert point == Point(a=1.0, b="x")

    @pytest.mark.asyncio
    async def test_generic_schema(self):
        ctx = make_ctx(query_string="tag=1&tag=2")
        assert await extract_one(ParamKind.QUERY, ctx, name="tag", schema=List[int]) == [1, 2]

    @pytest.mark.asyncio
    async def test_custom_validator(self):
        ctx = make_ctx(query_string="q=pen")
        assert await extract_one(ParamKind.QUERY, ctx, name="q", schema=Upper()) == "PEN"

    @pytest.mark.asyncio
    async def test_extract_in_slot_order(self):
        route = compiled(
            [
                ParameterDefinition(index=2, kind=ParamKind.QUERY, name="q"),
                ParameterDefinition(index=0, kind=ParamKind.PATH, name="id"),
            ],
            path="/items/{id}",
        )
        ctx = make_ctx("GET", "/items/1", path_params={"id": "1"}, query_string="q=x")

        slots = await ParameterExtractor().extract(route, ctx)
        assert list(slots) == [0, 2]
        assert slots == {0: "1", 2: "x"}


class TestSchemaValidator:
    @pytest.mark.asyncio
    async def test_adapter_cache(self):
        validator = SchemaValidator()
        await validator.validate(int, "1")
        await validator.validate(int, "2")

        assert len(validator._adapters) == 1

    @pytest.mark.asyncio
    async def test_mapping_schema(self):
        assert await SchemaValidator().validate(Dict[str, int], {"a": "1"}) == {"a": 1}

    @pytest.mark.asyncio
    async def test_unhashable_schema(self):
        validator = SchemaValidator()
        assert await validator.validate(UnhashableUpper(), "pen") == "PEN"
        assert validator._adapters == {}

    @pytest.mark.asyncio
    async def test_custom_validator_type_error(self):
        with pytest.raises(ValidationFault, match="expected a string"):
            await SchemaValidator().validate(Upper(), 5)

    @pytest.mark.asyncio
    async def test_optional_schema(self):
        assert await SchemaValidator().validate(Optional[int], None) is None

    def test_error_payload_is_json_safe(self):
        fault = ValidationFault("b", "Field required")
        json.dumps(fault.errors)
