"""
Tests for the Metadata Store.

Covers:
- register_route insert, merge and overwrite semantics
- strict identity keys (RouteConflictFault)
- define_parameter / define_dependency / define_cache / define_docs
- controller records, owner queries and clear()
"""

import pytest

from harrier.cache import CacheDirective
from harrier.controller import (
    FUNCTIONAL_OWNER,
    Declarative,
    DependencyDefinition,
    Functional,
    MetadataStore,
    ParameterDefinition,
    ParamKind,
    RouteDefinition,
    RouteDocs,
)
from harrier.faults import RouteConflictFault


async def list_items(ctx):
    return []


async def other_items(ctx):
    return ["other"]


class Repo:
    pass


class ItemsController:
    def show(self, id):
        return id


def functional(path="/items", handler=list_items, **kwargs) -> RouteDefinition:
    return RouteDefinition(
        owner_name=FUNCTIONAL_OWNER,
        member=f"get_{path}",
        method="GET",
        path=path,
        body=Functional(handler),
        **kwargs,
    )


# ============================================================================
# register_route
# ============================================================================


class TestRegisterRoute:
    def test_insert_returns_stored_copy(self, store):
        definition = functional(middleware=["a"])
        stored = store.register_route(definition)

        assert stored is not definition
        assert stored.middleware == ["a"]
        definition.middleware.append("b")
        assert stored.middleware == ["a"]

    def test_lookup_by_identity_key(self, store):
        store.register_route(functional())

        route = store.get_route(FUNCTIONAL_OWNER, "get_/items")
        assert route is not None
        assert route.path == "/items"
        assert (FUNCTIONAL_OWNER, "get_/items") in store
        assert len(store) == 1

    def test_partial_declaration_merges_into_existing(self, store):
        store.register_route(functional(middleware=["outer"]))
        store.register_route(RouteDefinition(
            owner_name=FUNCTIONAL_OWNER,
            member="get_/items",
            middleware=["inner"],
            docs=RouteDocs(summary="List items"),
        ))

        route = store.get_route(FUNCTIONAL_OWNER, "get_/items")
        assert route.middleware == ["outer", "inner"]
        assert route.docs.summary == "List items"
        assert route.method == "GET"
        assert route.path == "/items"
        assert isinstance(route.body, Functional)

    def test_merge_keeps_untouched_fields(self, store):
        directive = CacheDirective(ttl=30)
        store.register_route(functional(cache=directive, invalidate=["items:*"]))
        store.register_route(RouteDefinition(owner_name=FUNCTIONAL_OWNER, member="get_/items", auth_required=True))

        route = store.get_route(FUNCTIONAL_OWNER, "get_/items")
        assert route.cache is directive
        assert route.invalidate == ["items:*"]
        assert route.auth_required is True

    def test_partial_then_complete_declaration(self, store):
        store.define_parameter("ItemsController", "show", ParameterDefinition(index=0, kind=ParamKind.PATH, name="id"))
        store.register_route(RouteDefinition(
            owner_name="ItemsController",
            member="show",
            method="GET",
            path="/items/{id}",
            owner=ItemsController,
            body=Declarative(ItemsController, "show"),
        ))

        route = store.get_route("ItemsController", "show")
        assert route.is_complete
        assert route.parameters[0].name == "id"

    def test_second_complete_declaration_overwrites(self, store, caplog):
        store.register_route(functional(handler=list_items))
        with caplog.at_level("WARNING", logger="harrier.controller.metadata"):
            store.register_route(functional(handler=other_items))

        route = store.get_route(FUNCTIONAL_OWNER, "get_/items")
        assert route.body.handler is other_items
        assert len(store) == 1
        assert "declared twice" in caplog.text

    def test_strict_keys_raise_on_conflict(self):
        store = MetadataStore(strict_keys=True)
        store.register_route(functional())

        with pytest.raises(RouteConflictFault) as exc_info:
            store.register_route(functional(handler=other_items))

        assert exc_info.value.code == "ROUTE_CONFLICT"
        assert "FunctionalRoute.get_/items" in exc_info.value.message

    def test_strict_keys_still_merge_partial_declarations(self):
        store = MetadataStore(strict_keys=True)
        store.register_route(functional())
        store.register_route(RouteDefinition(owner_name=FUNCTIONAL_OWNER, member="get_/items", name="items"))

        assert store.get_route(FUNCTIONAL_OWNER, "get_/items").name == "items"


# ============================================================================
# Slot and option definitions
# ============================================================================


class TestDefinitions:
    def test_define_parameter_keeps_other_slots(self, store):
        store.define_parameter("C", "m", ParameterDefinition(index=0, kind=ParamKind.QUERY, name="q"))
        store.define_parameter("C", "m", ParameterDefinition(index=2, kind=ParamKind.BODY))

        route = store.get_route("C", "m")
        assert sorted(route.parameters) == [0, 2]
        assert not route.is_complete

    def test_define_parameter_replaces_same_index(self, store):
        store.define_parameter("C", "m", ParameterDefinition(index=0, kind=ParamKind.QUERY, name="q"))
        store.define_parameter("C", "m", ParameterDefinition(index=0, kind=ParamKind.HEADER, name="x-q"))

        assert store.get_route("C", "m").parameters[0].kind is ParamKind.HEADER

    def test_define_dependency(self, store):
        store.define_dependency("C", "m", DependencyDefinition(index=1, provider=Repo))

        assert store.get_route("C", "m").dependencies[1].provider is Repo

    def test_define_cache_and_invalidation(self, store):
        directive = CacheDirective(ttl="5m")
        store.define_cache("C", "m", directive)
        store.define_invalidation("C", "m", ["items:{id}"])
        store.define_invalidation("C", "m", [])

        route = store.get_route("C", "m")
        assert route.cache.ttl == 300
        assert route.invalidate == ["items:{id}"]

    def test_define_docs_merges(self, store):
        store.define_docs("C", "m", RouteDocs(summary="First", tags=("a",)))
        store.define_docs("C", "m", RouteDocs(description="More", tags=("b",)))

        docs = store.get_route("C", "m").docs
        assert docs.summary == "First"
        assert docs.description == "More"
        assert docs.tags == ("a", "b")


# ============================================================================
# Controllers & queries
# ============================================================================


class TestQueries:
    def test_register_controller(self, store):
        store.register_controller(ItemsController, "/items", ["mw"], ["items"])

        definition = store.get_controller(ItemsController)
        assert definition.prefix == "/items"
        assert definition.middleware == ["mw"]
        assert definition.tags == ("items",)
        assert store.get_controllers() == [definition]

    def test_get_routes_by_owner(self, store):
        store.register_route(functional())
        store.define_parameter("ItemsController", "show", ParameterDefinition(index=0, kind=ParamKind.PATH, name="id"))

        assert [r.member for r in store.get_routes_by_owner(ItemsController)] == ["show"]
        assert [r.member for r in store.get_routes_by_owner(FUNCTIONAL_OWNER)] == ["get_/items"]

    def test_get_routes_in_insertion_order(self, store):
        store.register_route(functional("/a"))
        store.register_route(functional("/b"))

        assert [r.path for r in store.get_routes()] == ["/a", "/b"]

    def test_clear(self, store):
        store.register_route(functional())
        store.register_controller(ItemsController)
        store.clear()

        assert len(store) == 0
        assert store.get_controllers() == []
