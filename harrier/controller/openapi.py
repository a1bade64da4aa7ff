"""
OpenAPI 3.0 generation from compiled routes.

- ":id" / "{id}" placeholders become OpenAPI "{id}" templates
- query / path / header / cookie parameters come from the declared slots;
  a whole-source schema (``schema={"query": Model}``) expands into one
  parameter per model field
- the body schema becomes requestBody
- docs.responses become responses (200 when none are declared), and 422 is
  always listed since any declared schema may reject input
- pydantic models are hoisted into components/schemas and referenced
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, PydanticUserError, TypeAdapter

from .compiler import CompiledRoute
from .metadata import ParameterDefinition
from .params import ParamKind

logger = logging.getLogger("harrier.controller.openapi")

OPENAPI_VERSION = "3.0.0"
REF_TEMPLATE = "#/components/schemas/{model}"

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}|:([A-Za-z_][A-Za-z0-9_]*)")

_LOCATIONS = {
    ParamKind.QUERY: "query",
    ParamKind.QUERY_ALL: "query",
    ParamKind.PATH: "path",
    ParamKind.PATH_ALL: "path",
    ParamKind.HEADER: "header",
    ParamKind.HEADER_ALL: "header",
    ParamKind.COOKIE: "cookie",
    ParamKind.COOKIE_ALL: "cookie",
}

_STATUS_DESCRIPTIONS = {
    200: "Successful response",
    201: "Created",
    204: "No content",
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    422: "Validation error",
    429: "Too many requests",
}

ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "status": {"type": "integer"},
                "message": {"type": "string"},
                "field": {"type": "string"},
                "errors": {"type": "array", "items": {"type": "object"}},
            },
            "required": ["code", "status", "message"],
        },
    },
    "required": ["error"],
}


def openapi_path(template: str) -> str:
    """"/users/:id" -> "/users/{id}"."""
    return _PLACEHOLDER.sub(lambda m: "{" + (m.group(1) or m.group(2)) + "}", template)


@dataclass
class OpenAPIConfig:
    """Document info and the paths the OpenAPI plugin serves."""
    title: str = "Harrier API"
    version: str = "1.0.0"
    description: str = ""
    servers: List[Dict[str, str]] = field(default_factory=list)
    openapi_json_path: str = "/openapi.json"
    docs_path: str = "/docs"
    include_options: bool = False


class OpenAPIGenerator:
    """
    Builds an OpenAPI document from compiled routes.

    Usage::

        generator = OpenAPIGenerator(OpenAPIConfig(title="Shop", version="2.0.0"))
        document = generator.generate(app.compiled_routes())
    """

    def __init__(self, config: Optional[OpenAPIConfig] = None):
        self.config = config or OpenAPIConfig()
        self.schemas: Dict[str, Any] = {}

    def generate(self, routes: Iterable[CompiledRoute]) -> Dict[str, Any]:
        self.schemas = {}
        secured = False
        paths: Dict[str, Dict[str, Any]] = {}
        tags: Set[str] = set()

        for route in routes:
            if route.method == "OPTIONS" and not self.config.include_options:
                continue
            if route.path in (self.config.openapi_json_path, self.config.docs_path):
                continue
            operation = self.operation(route)
            tags.update(operation.get("tags", ()))
            secured = secured or route.auth_required
            paths.setdefault(openapi_path(route.path), {})[route.method.lower()] = operation

        info: Dict[str, Any] = {"title": self.config.title, "version": self.config.version}
        if self.config.description:
            info["description"] = self.config.description

        document: Dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": info, "paths": paths}
        if self.config.servers:
            document["servers"] = list(self.config.servers)
        if tags:
            document["tags"] = [{"name": tag} for tag in sorted(tags)]
        document["components"] = {"schemas": {**self.schemas, "Error": ERROR_SCHEMA}}
        if secured:
            document["components"]["securitySchemes"] = {"bearerAuth": {"type": "http", "scheme": "bearer"}}
        return document

    # ========================================================================
    # Operations
    # ========================================================================

    def operation(self, route: CompiledRoute) -> Dict[str, Any]:
        docs = route.docs
        operation: Dict[str, Any] = {"operationId": _operation_id(route)}
        if docs is not None:
            if docs.summary:
                operation["summary"] = docs.summary
            if docs.description:
                operation["description"] = docs.description
            if docs.tags:
                operation["tags"] = list(docs.tags)
            if docs.deprecated:
                operation["deprecated"] = True

        parameters = self.parameters(route)
        if parameters:
            operation["parameters"] = parameters

        for index in route.parameter_order:
            parameter = route.parameters[index]
            if parameter.kind is ParamKind.BODY:
                operation["requestBody"] = {
                    "required": parameter.required,
                    "content": {"application/json": {"schema": self.schema(parameter.schema)}},
                }
                break

        responses: Dict[str, Any] = {}
        for status, description in sorted((docs.responses if docs is not None else {}).items()):
            responses[str(status)] = {"description": description}
        if not responses:
            responses["200"] = {"description": _STATUS_DESCRIPTIONS[200]}
        responses.setdefault("422", {
            "description": _STATUS_DESCRIPTIONS[422],
            "content": {"application/json": {"schema": {"$ref": REF_TEMPLATE.format(model="Error")}}},
        })
        operation["responses"] = responses

        if route.auth_required:
            operation["security"] = [{"bearerAuth": []}]
        return operation

    def parameters(self, route: CompiledRoute) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        seen: Set[tuple] = set()

        def add(name: str, location: str, schema: Dict[str, Any], required: bool) -> None:
            if (name, location) in seen:
                return
            seen.add((name, location))
            result.append({
                "name": name,
                "in": location,
                "required": True if location == "path" else required,
                "schema": schema or {"type": "string"},
            })

        for index in route.parameter_order:
            parameter = route.parameters[index]
            location = _LOCATIONS.get(parameter.kind)
            if location is None:
                continue
            if parameter.name is not None:
                add(parameter.name, location, self.schema(parameter.schema, inline=True), parameter.required)
            else:
                for name, schema, required in self._fields(parameter):
                    add(name, location, schema, required)

        # Every placeholder is a path parameter whether or not the handler reads it
        for name in route.param_names:
            add(name, "path", {"type": "string"}, True)
        return result

    def _fields(self, parameter: ParameterDefinition) -> List[tuple]:
        schema = self.schema(parameter.schema, inline=True)
        properties = schema.get("properties") or {}
        required = set(schema.get("required") or ())
        return [(name, prop, name in required) for name, prop in properties.items()]

    # ========================================================================
    # Schemas
    # ========================================================================

    def schema(self, declared: Any, *, inline: bool = False) -> Dict[str, Any]:
        """
        JSON schema for a declared type; {} when there is none or pydantic
        cannot describe it. Models are registered as components and
        referenced unless ``inline`` is set.
        """
        if declared is None:
            return {}
        try:
            result = TypeAdapter(declared).json_schema(ref_template=REF_TEMPLATE)
        except PydanticUserError as exc:
            logger.debug(f"No JSON schema for {declared!r}: {exc}")
            return {}

        for name, definition in result.pop("$defs", {}).items():
            self.schemas.setdefault(name, definition)

        if not inline and isinstance(declared, type) and issubclass(declared, BaseModel):
            name = declared.__name__
            self.schemas.setdefault(name, result)
            return {"$ref": REF_TEMPLATE.format(model=name)}
        return result


def _operation_id(route: CompiledRoute) -> str:
    name = getattr(route.definition, "name", None)
    if name:
        return name
    slug = re.sub(r"[^A-Za-z0-9]+", "_", route.path).strip("_") or "root"
    return f"{route.method.lower()}_{slug}"


_SWAGGER_UI_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{title} - API docs</title>
    <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@5/swagger-ui.css">
</head>
<body>
    <div id="swagger-ui"></div>
    <script src="https://unpkg.com/swagger-ui-dist@5/swagger-ui-bundle.js"></script>
    <script>
        window.onload = () => {{
            window.ui = SwaggerUIBundle({{ url: "{spec_url}", dom_id: "#swagger-ui" }});
        }};
    </script>
</body>
</html>"""


def generate_swagger_html(config: OpenAPIConfig) -> str:
    """Swagger UI page pointed at the JSON document."""
    return _SWAGGER_UI_HTML.format(title=config.title, spec_url=config.openapi_json_path)
