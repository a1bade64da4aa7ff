"""
Parameter source markers.

Handler arguments declare where their value comes from with ``Annotated``::

    @GET("/items/{id}")
    async def show(
        self,
        id: Annotated[int, Path()],
        verbose: Annotated[bool, Query()] = False,
        user: Annotated[User, CurrentUser()] = None,
    ):
        ...

For data sources (body, query, path, header, cookie) the annotated type
doubles as the validation schema unless an explicit ``schema=`` is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional


class ParamKind(str, Enum):
    """Where a handler argument is extracted from."""

    BODY = "body"
    QUERY = "query"
    QUERY_ALL = "query_all"
    PATH = "path"
    PATH_ALL = "path_all"
    HEADER = "header"
    HEADER_ALL = "header_all"
    COOKIE = "cookie"
    COOKIE_ALL = "cookie_all"
    REQUEST = "request"
    CONTEXT = "context"
    PRINCIPAL = "principal"
    CREDENTIAL = "credential"
    PROVIDER_USER = "provider_user"
    PROVIDER_TOKEN = "provider_token"
    SESSION = "session"
    SESSION_VALUE = "session_value"
    CSRF_TOKEN = "csrf_token"
    AUTHORIZED_RESOURCE = "authorized_resource"
    AUTHORIZED_ATTRIBUTES = "authorized_attributes"
    CORRELATION_ID = "correlation_id"
    CANCEL_SIGNAL = "cancel_signal"


DATA_KINDS = frozenset({
    ParamKind.BODY,
    ParamKind.QUERY,
    ParamKind.QUERY_ALL,
    ParamKind.PATH,
    ParamKind.PATH_ALL,
    ParamKind.HEADER,
    ParamKind.HEADER_ALL,
    ParamKind.COOKIE,
    ParamKind.COOKIE_ALL,
})

NAMED_KINDS = frozenset({
    ParamKind.QUERY,
    ParamKind.PATH,
    ParamKind.HEADER,
    ParamKind.COOKIE,
    ParamKind.SESSION_VALUE,
})


@dataclass(frozen=True)
class Param:
    """
    Base marker.

    Attributes:
        name: Source name (query key, header name, ...). Defaults to the
              argument name; header names turn underscores into hyphens.
        schema: Explicit validation schema
        required: Reject a missing value. None derives it from whether the
                  argument has a default.
    """

    kind: ClassVar[ParamKind]

    name: Optional[str] = None
    schema: Any = None
    required: Optional[bool] = None

    def source_name(self, argument: str) -> Optional[str]:
        if self.kind not in NAMED_KINDS:
            return None
        if self.name:
            return self.name
        if self.kind is ParamKind.HEADER:
            return argument.replace("_", "-")
        return argument


# Request data ---------------------------------------------------------------

class Body(Param):
    kind = ParamKind.BODY


class Query(Param):
    kind = ParamKind.QUERY


class AllQuery(Param):
    kind = ParamKind.QUERY_ALL


class Path(Param):
    kind = ParamKind.PATH


class AllPathParams(Param):
    kind = ParamKind.PATH_ALL


class Header(Param):
    kind = ParamKind.HEADER


class AllHeaders(Param):
    kind = ParamKind.HEADER_ALL


class Cookie(Param):
    kind = ParamKind.COOKIE


class AllCookies(Param):
    kind = ParamKind.COOKIE_ALL


# Raw handles ----------------------------------------------------------------

class Req(Param):
    kind = ParamKind.REQUEST


class Ctx(Param):
    kind = ParamKind.CONTEXT


# Slots filled by authentication, session and authorization collaborators ---

class CurrentUser(Param):
    kind = ParamKind.PRINCIPAL


class Credential(Param):
    kind = ParamKind.CREDENTIAL


class ProviderUser(Param):
    kind = ParamKind.PROVIDER_USER


class ProviderToken(Param):
    kind = ParamKind.PROVIDER_TOKEN


class SessionHandle(Param):
    kind = ParamKind.SESSION


class SessionValue(Param):
    kind = ParamKind.SESSION_VALUE


class CsrfToken(Param):
    kind = ParamKind.CSRF_TOKEN


class AuthorizedResource(Param):
    kind = ParamKind.AUTHORIZED_RESOURCE


class AuthorizedAttributes(Param):
    kind = ParamKind.AUTHORIZED_ATTRIBUTES


class CorrelationId(Param):
    kind = ParamKind.CORRELATION_ID


class CancelSignal(Param):
    kind = ParamKind.CANCEL_SIGNAL
