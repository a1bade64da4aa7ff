"""
OpenAPI plugin - serves the generated document and a Swagger UI page.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from ..controller.base import RequestCtx
from ..controller.openapi import OpenAPIConfig, OpenAPIGenerator, generate_swagger_html
from ..response import Html, Json
from .base import Plugin

if TYPE_CHECKING:
    from ..app import Application


class OpenAPIPlugin(Plugin):
    """
    Serves ``config.openapi_json_path`` and ``config.docs_path``.

    Title and version default to the application's. The document is built
    on first request, after every route has compiled.
    """

    name = "openapi"
    version = "1.0.0"

    def __init__(self, config: Optional[OpenAPIConfig] = None, **options: Any):
        self.config = config or OpenAPIConfig(**options)
        self._explicit_info = config is not None or "title" in options or "version" in options
        self._app: Optional["Application"] = None
        self._document: Optional[Dict[str, Any]] = None

    def install(self, app: "Application") -> None:
        self._app = app
        if not self._explicit_info:
            self.config.title = app.config.title
            self.config.version = app.config.version
        app.get(self.config.openapi_json_path, self.openapi_json, name="openapi")
        app.get(self.config.docs_path, self.swagger_ui, name="docs")

    def document(self) -> Dict[str, Any]:
        if self._document is None:
            self._document = OpenAPIGenerator(self.config).generate(self._app.compiled_routes())
        return self._document

    async def openapi_json(self, ctx: RequestCtx) -> Json:
        return Json(self.document())

    async def swagger_ui(self, ctx: RequestCtx) -> Html:
        return Html(generate_swagger_html(self.config))
