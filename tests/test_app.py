"""
End-to-end tests for Application.

Covers:
- functional and controller routes served over ASGI (TestClient)
- groups, middleware ordering and RequestIdMiddleware
- 404 / 405 / HEAD handling
- compile-once semantics and registration after compile
- custom error handlers, lifespan and the route listing
- an httpx.ASGITransport round trip
"""

from typing import Annotated, Any, Dict, Optional

import httpx
import pytest
from pydantic import BaseModel

from harrier import (
    GET,
    POST,
    AllQuery,
    Application,
    Body,
    Controller,
    CurrentUser,
    Depends,
    HarrierConfig,
    Path,
    RequestIdMiddleware,
    Response,
    ServiceScope,
    authenticated,
    cached,
    invalidate,
)
from harrier.app import build_cache
from harrier.cache import MemoryCacheStore, RedisCacheStore
from harrier.config import CacheSettings, ConfigError
from harrier.faults import CompileFault, MethodNotFoundFault
from harrier.testing import TestClient


class ItemIn(BaseModel):
    name: str
    price: float


class ItemRepo:
    def __init__(self):
        self.items: Dict[str, Dict[str, Any]] = {"1": {"id": "1", "name": "pen", "price": 1.5}}
        self.reads = 0

    async def get(self, id: str) -> Optional[Dict[str, Any]]:
        self.reads += 1
        return self.items.get(id)

    async def add(self, item: ItemIn) -> Dict[str, Any]:
        id = str(len(self.items) + 1)
        self.items[id] = {"id": id, **item.model_dump()}
        return self.items[id]


class ItemsController(Controller):
    prefix = "/items"
    tags = ["items"]

    def __init__(self, repo: Annotated[ItemRepo, Depends()]):
        self.repo = repo

    @GET("/{id}")
    @cached(ttl=60, key="item:{id}")
    async def show(self, id: Annotated[str, Path()]):
        item = await self.repo.get(id)
        if item is None:
            return Response.json({"missing": id}, status=404)
        return item

    @POST("/")
    @invalidate("item:*")
    async def create(self, item: Annotated[ItemIn, Body()]):
        return Response.json(await self.repo.add(item), status=201)

    @GET("/search")
    async def search(self, query: Annotated[Dict[str, Any], AllQuery()]):
        return {"query": query}


class ProfileController(Controller):
    prefix = "/profile"

    @GET("/optional")
    async def optional(self, user: Annotated[Optional[dict], CurrentUser()] = None):
        return {"user": user}

    @GET("/mandatory")
    @authenticated
    async def mandatory(self, user: Annotated[Optional[dict], CurrentUser()] = None):
        return {"user": user}


def make_app(**overrides) -> Application:
    settings = {"debug": True, "cache": CacheSettings(sweep_interval=0), **overrides}
    config = HarrierConfig(**settings)
    app = Application(config)
    app.provide(ItemRepo, scope=ServiceScope.SINGLETON)
    app.include(ItemsController)
    return app


# ============================================================================
# Serving routes
# ============================================================================


class TestServing:
    @pytest.mark.asyncio
    async def test_functional_route(self):
        app = make_app()

        @app.get("/items/:id/label")
        async def label(ctx, repo: Annotated[ItemRepo, Depends()], id: str):
            item = await repo.get(id)
            return {"label": item["name"].upper()}

        async with TestClient(app) as client:
            resp = await client.get("/items/1/label")

        assert resp.status_code == 200
        assert resp.json() == {"label": "PEN"}

    @pytest.mark.asyncio
    async def test_controller_route_is_cached(self):
        app = make_app()

        async with TestClient(app) as client:
            first = await client.get("/items/1")
            second = await client.get("/items/1")
            repo = await app.container.resolve(ItemRepo)

        assert first.header("x-cache") == "MISS"
        assert second.header("x-cache") == "HIT"
        assert second.json()["name"] == "pen"
        assert repo.reads == 1

    @pytest.mark.asyncio
    async def test_create_invalidates(self):
        app = make_app()

        async with TestClient(app) as client:
            await client.get("/items/1")
            created = await client.post("/items", json={"name": "ink", "price": 3})
            after = await client.get("/items/1")

        assert created.status_code == 201
        assert created.json()["name"] == "ink"
        assert after.header("x-cache") == "MISS"

    @pytest.mark.asyncio
    async def test_validation_error(self):
        app = make_app()

        async with TestClient(app) as client:
            resp = await client.post("/items", json={"name": "ink"})

        assert resp.status_code == 422
        assert resp.json()["error"]["field"] == "price"

    @pytest.mark.asyncio
    async def test_static_route_beats_dynamic(self):
        app = make_app()

        async with TestClient(app) as client:
            resp = await client.get("/items/search", params={"q": "pen"})

        assert resp.json() == {"query": {"q": "pen"}}

    @pytest.mark.asyncio
    async def test_schema_mode_route(self):
        app = make_app()

        async def create(ctx, body):
            return {"total": body.price * 2}

        app.post("/quotes", create, schema={"body": ItemIn})

        async with TestClient(app) as client:
            resp = await client.post("/quotes", json={"name": "pen", "price": 2})

        assert resp.json() == {"total": 4.0}

    @pytest.mark.asyncio
    async def test_route_builder(self):
        app = make_app()

        async def read(ctx):
            return "read"

        async def write(ctx):
            return "write"

        things = app.route("/things")
        things.get(read)
        things.put(write)

        async with TestClient(app) as client:
            assert (await client.get("/things")).json() == "read"
            assert (await client.put("/things")).json() == "write"


# ============================================================================
# Principal
# ============================================================================


class TestPrincipal:
    @pytest.mark.asyncio
    async def test_optional_principal(self):
        app = make_app()
        app.include(ProfileController)

        async with TestClient(app) as client:
            resp = await client.get("/profile/optional")

        assert resp.status_code == 200
        assert resp.json() == {"user": None}

    @pytest.mark.asyncio
    async def test_mandatory_principal_missing(self):
        app = make_app()
        app.include(ProfileController)

        async with TestClient(app) as client:
            resp = await client.get("/profile/mandatory")

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"

    @pytest.mark.asyncio
    async def test_mandatory_principal_from_middleware(self):
        app = make_app()

        async def auth(request, ctx, next):
            if request.header("authorization") == "Bearer good":
                ctx.principal = {"id": "u1"}
            return await next(request, ctx)

        app.use(auth)
        app.include(ProfileController)

        async with TestClient(app, default_headers={"Authorization": "Bearer good"}) as client:
            resp = await client.get("/profile/mandatory")

        assert resp.json() == {"user": {"id": "u1"}}


# ============================================================================
# Routing errors
# ============================================================================


class TestRoutingErrors:
    @pytest.mark.asyncio
    async def test_not_found(self):
        async with TestClient(make_app()) as client:
            resp = await client.get("/nowhere")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_method_not_allowed(self):
        async with TestClient(make_app()) as client:
            resp = await client.delete("/items/1")

        assert resp.status_code == 405
        assert resp.header("allow") == "GET"

    @pytest.mark.asyncio
    async def test_head_falls_back_to_get(self):
        async with TestClient(make_app()) as client:
            resp = await client.head("/items/1")

        assert resp.status_code == 200
        assert resp.body == b""

    @pytest.mark.asyncio
    async def test_trailing_slash(self):
        async with TestClient(make_app()) as client:
            resp = await client.get("/items/1/")

        assert resp.status_code == 200


# ============================================================================
# Middleware & groups
# ============================================================================


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_order_app_group_route(self):
        app = make_app()
        order = []

        def tracer(name):
            async def middleware(request, ctx, next):
                order.append(f"{name}:in")
                response = await next(request, ctx)
                order.append(f"{name}:out")
                return response

            return middleware

        app.use(tracer("app"))
        with app.group("/api", middleware=[tracer("group")]):
            @app.get("/ping", middleware=[tracer("route")])
            async def ping(ctx):
                order.append("handler")
                return "pong"

        async with TestClient(app) as client:
            resp = await client.get("/api/ping")

        assert resp.json() == "pong"
        assert order == [
            "app:in", "group:in", "route:in", "handler", "route:out", "group:out", "app:out",
        ]

    @pytest.mark.asyncio
    async def test_nested_groups(self):
        app = make_app()

        with app.group("/api"):
            with app.group("/v1"):
                app.get("/status", lambda ctx: {"ok": True})

        async with TestClient(app) as client:
            assert (await client.get("/api/v1/status")).json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_request_id(self):
        app = make_app()
        app.use(RequestIdMiddleware())

        @app.get("/whoami")
        async def whoami(ctx):
            return {"id": ctx.correlation_id}

        async with TestClient(app) as client:
            given = await client.get("/whoami", headers={"X-Request-ID": "abc"})
            generated = await client.get("/whoami")

        assert given.json() == {"id": "abc"}
        assert given.header("x-request-id") == "abc"
        assert generated.header("x-request-id")

    @pytest.mark.asyncio
    async def test_short_circuit(self):
        app = make_app()

        async def deny(request, ctx, next):
            return Response.json({"denied": True}, status=403)

        app.use(deny)

        async with TestClient(app) as client:
            resp = await client.get("/items/1")

        assert resp.status_code == 403


# ============================================================================
# Compilation & lifecycle
# ============================================================================


class TestLifecycle:
    def test_compile_twice_is_noop(self, caplog):
        app = make_app()
        first = app.compile()

        with caplog.at_level("WARNING", logger="harrier.app"):
            second = app.compile()

        assert second is first
        assert len(app.router) == len(first)
        assert "already compiled" in caplog.text

    def test_registration_after_compile_rejected(self):
        app = make_app()
        app.compile()

        with pytest.raises(CompileFault):
            app.get("/late", lambda ctx: None)
        with pytest.raises(CompileFault):
            app.use(RequestIdMiddleware())
        with pytest.raises(CompileFault):
            app.include(ProfileController)

    def test_missing_method_aborts_compile(self):
        app = make_app()

        class Vanishing(Controller):
            @GET("/vanishing")
            async def gone(self):
                return None

        app.include(Vanishing)
        del Vanishing.gone

        with pytest.raises(MethodNotFoundFault):
            app.compile()

    def test_strict_route_keys(self):
        app = make_app(strict_route_keys=True)

        async def a(ctx):
            return "a"

        app.get("/dup", a)
        with pytest.raises(CompileFault):
            app.get("/dup", a)

    def test_routes_listing(self):
        app = make_app()
        listing = {entry["key"]: entry for entry in app.routes()}

        show = listing["ItemsController.show"]
        assert show["path"] == "/items/{id}"
        assert show["cached"] is True
        assert show["tags"] == ["items"]
        assert listing["ItemsController.create"]["invalidate"] == ["item:*"]

    @pytest.mark.asyncio
    async def test_lifespan(self):
        app = make_app()
        messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
        sent = []

        async def receive():
            return messages.pop(0)

        async def send(message):
            sent.append(message["type"])

        await app({"type": "lifespan"}, receive, send)

        assert sent == ["lifespan.startup.complete", "lifespan.shutdown.complete"]
        assert app.compiled
        assert not app.started

    @pytest.mark.asyncio
    async def test_first_request_starts_app(self):
        app = make_app()
        client = TestClient(app)

        resp = await client.get("/items/1")

        assert resp.status_code == 200
        assert app.started
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_custom_error_handler(self):
        app = make_app()

        @app.on_error
        async def handle(error, ctx):
            if getattr(error, "code", None) == "NOT_FOUND":
                return Response.text("nothing here", status=404)
            return None

        async with TestClient(app) as client:
            missing = await client.get("/nope")
            invalid = await client.post("/items", json={})

        assert missing.text == "nothing here"
        assert invalid.status_code == 422

    @pytest.mark.asyncio
    async def test_unexpected_error_in_middleware(self):
        app = make_app(debug=False)

        async def broken(request, ctx, next):
            raise RuntimeError("middleware bug")

        app.use(broken)

        async with TestClient(app) as client:
            resp = await client.get("/items/1")

        assert resp.status_code == 500
        assert resp.json()["error"] == {
            "code": "INTERNAL_ERROR",
            "status": 500,
            "message": "Internal Server Error",
        }


# ============================================================================
# Cache construction
# ============================================================================


class TestBuildCache:
    def test_memory(self):
        manager = build_cache(CacheSettings(max_size=10))
        assert isinstance(manager.default, MemoryCacheStore)

    def test_redis(self):
        manager = build_cache(CacheSettings(backend="redis", key_prefix="t:"))
        assert isinstance(manager.default, RedisCacheStore)

    def test_disabled(self):
        assert build_cache(CacheSettings(enabled=False)) is None

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            build_cache(CacheSettings(backend="memcached"))

    def test_disabled_cache_with_cached_route(self):
        app = Application(HarrierConfig(cache=CacheSettings(enabled=False)))
        app.provide(ItemRepo, scope=ServiceScope.SINGLETON)
        app.include(ItemsController)

        with pytest.raises(CompileFault, match="no cache manager"):
            app.compile()


# ============================================================================
# httpx transport
# ============================================================================


class TestHttpx:
    @pytest.mark.asyncio
    async def test_asgi_transport(self):
        app = make_app()
        await app.startup()
        try:
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                resp = await client.get("/items/1", headers={"Accept": "application/json"})
                created = await client.post("/items", json={"name": "ink", "price": 2.5})
        finally:
            await app.shutdown()

        assert resp.status_code == 200
        assert resp.json()["id"] == "1"
        assert resp.headers["x-cache"] == "MISS"
        assert created.status_code == 201
