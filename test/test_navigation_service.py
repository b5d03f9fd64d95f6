"""
Tests for the admin navigation service
"""

import pytest

from storefront.exceptions import ConstraintViolationError, NotFoundError, ProtectedItemError
from storefront.models.navigation import NavigationItem
from storefront.schemas.navigation import NavigationItemCreate
from storefront.services import navigation_service, plugin_service


def _item(key, parent_key=None, **kwargs):
    kwargs.setdefault("label", key.title())
    return NavigationItemCreate(key=key, parent_key=parent_key, **kwargs)


def _keys(nodes):
    return [node["key"] for node in nodes]


class TestOrderPosition:
    @pytest.mark.asyncio
    async def test_first_child_gets_position_one(self, test_db):
        await navigation_service.upsert_item(test_db, _item("shop"))

        child = await navigation_service.upsert_item(test_db, _item("shop-a", parent_key="shop"))

        assert child.order_position == 1

    @pytest.mark.asyncio
    async def test_appends_after_max_sibling(self, test_db):
        await navigation_service.upsert_item(test_db, _item("shop"))
        await navigation_service.upsert_item(test_db, _item("shop-a", parent_key="shop", order_position=5))

        child = await navigation_service.upsert_item(test_db, _item("shop-b", parent_key="shop"))

        assert child.order_position == 6

    @pytest.mark.asyncio
    async def test_scope_is_per_parent(self, test_db):
        await navigation_service.upsert_item(test_db, _item("one", order_position=9))

        child = await navigation_service.upsert_item(test_db, _item("one-a", parent_key="one"))

        assert child.order_position == 1

    @pytest.mark.asyncio
    async def test_update_keeps_position_when_omitted(self, test_db):
        await navigation_service.upsert_item(test_db, _item("one", order_position=4))

        updated = await navigation_service.upsert_item(test_db, NavigationItemCreate(key="one", label="Renamed"))

        assert updated.order_position == 4
        assert updated.label == "Renamed"

    @pytest.mark.asyncio
    async def test_moving_to_another_parent_appends(self, test_db):
        await navigation_service.upsert_item(test_db, _item("shop"))
        await navigation_service.upsert_item(test_db, _item("shop-a", parent_key="shop", order_position=3))
        await navigation_service.upsert_item(test_db, _item("loose", order_position=1))

        moved = await navigation_service.upsert_item(test_db, _item("loose", parent_key="shop"))

        assert moved.parent_key == "shop"
        assert moved.order_position == 4

    @pytest.mark.asyncio
    async def test_moving_with_explicit_position(self, test_db):
        await navigation_service.upsert_item(test_db, _item("shop"))
        await navigation_service.upsert_item(test_db, _item("shop-a", parent_key="shop", order_position=3))
        await navigation_service.upsert_item(test_db, _item("loose", order_position=1))

        moved = await navigation_service.upsert_item(test_db, _item("loose", parent_key="shop", order_position=1))

        assert moved.order_position == 1


class TestListTree:
    @pytest.mark.asyncio
    async def test_siblings_ordered_by_position_then_key(self, test_db):
        await navigation_service.upsert_item(test_db, _item("root"))
        await navigation_service.upsert_item(test_db, _item("c", parent_key="root", order_position=1))
        await navigation_service.upsert_item(test_db, _item("b", parent_key="root", order_position=2))
        await navigation_service.upsert_item(test_db, _item("a", parent_key="root", order_position=1))

        tree = await navigation_service.list_tree(test_db)

        assert _keys(tree) == ["root"]
        assert _keys(tree[0]["children"]) == ["a", "c", "b"]

    @pytest.mark.asyncio
    async def test_missing_parent_is_orphaned_at_root(self, test_db):
        await navigation_service.upsert_item(test_db, _item("lost", parent_key="gone"))

        tree = await navigation_service.list_tree(test_db)

        assert _keys(tree) == ["lost"]
        assert tree[0]["orphaned"] is True

    @pytest.mark.asyncio
    async def test_hidden_items_and_their_children(self, test_db):
        await navigation_service.upsert_item(test_db, _item("secret", is_visible=False))
        await navigation_service.upsert_item(test_db, _item("secret-a", parent_key="secret"))
        await navigation_service.upsert_item(test_db, _item("shown"))

        assert _keys(await navigation_service.list_tree(test_db)) == ["shown"]
        with_hidden = await navigation_service.list_tree(test_db, include_hidden=True)
        assert _keys(with_hidden) == ["secret", "shown"]
        assert _keys(with_hidden[0]["children"]) == ["secret-a"]

    @pytest.mark.asyncio
    async def test_items_of_inactive_plugins_are_left_out(self, test_db, widget_registry, install_plugin):
        await install_plugin("P", status="disabled", navigation=[_item("p-page")])
        await install_plugin("Q", navigation=[_item("q-page")])

        assert _keys(await navigation_service.list_tree(test_db)) == ["q-page"]

    @pytest.mark.asyncio
    async def test_parent_cycle_is_still_listed(self, test_db):
        await navigation_service.upsert_item(test_db, _item("x", parent_key="y"))
        await navigation_service.upsert_item(test_db, _item("y", parent_key="x"))

        tree = await navigation_service.list_tree(test_db)

        assert _keys(tree) == ["x"]
        assert tree[0]["orphaned"] is True
        assert _keys(tree[0]["children"]) == ["y"]


class TestCoreNavigation:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, test_db):
        created = await navigation_service.seed_core_navigation(test_db)
        again = await navigation_service.seed_core_navigation(test_db)

        assert created == len(navigation_service.CORE_NAVIGATION)
        assert again == 0
        tree = await navigation_service.list_tree(test_db)
        assert _keys(tree) == [entry["key"] for entry in navigation_service.CORE_NAVIGATION]

    @pytest.mark.asyncio
    async def test_core_items_are_protected(self, test_db):
        await navigation_service.seed_core_navigation(test_db)

        with pytest.raises(ProtectedItemError):
            await navigation_service.remove_item(test_db, "dashboard")

    @pytest.mark.asyncio
    async def test_remove_plugin_item(self, test_db):
        await navigation_service.upsert_item(test_db, _item("extra"))

        await navigation_service.remove_item(test_db, "extra")

        assert await navigation_service.list_tree(test_db) == []

    @pytest.mark.asyncio
    async def test_remove_missing_item(self, test_db):
        with pytest.raises(NotFoundError):
            await navigation_service.remove_item(test_db, "nope")

    @pytest.mark.asyncio
    async def test_register_plugin_navigation(self, test_db, install_plugin):
        await install_plugin("P")

        items = await navigation_service.register_plugin_navigation(
            test_db, "P", [_item("p-reports", is_core=True)]
        )

        assert items[0].plugin_id == "P"
        assert items[0].is_core is False


class TestOwnership:
    @pytest.mark.asyncio
    async def test_plugin_cannot_take_over_core_item(self, test_db, install_plugin):
        await navigation_service.seed_core_navigation(test_db)

        with pytest.raises(ProtectedItemError):
            await install_plugin("P", navigation=[_item("dashboard", route="/admin/p")])

        assert await plugin_service.get_plugin(test_db, "P") is None
        dashboard = await test_db.get(NavigationItem, "dashboard")
        assert dashboard.is_core is True
        assert dashboard.plugin_id is None
        assert dashboard.route == "/admin"

    @pytest.mark.asyncio
    async def test_core_item_survives_plugin_uninstall(self, test_db, widget_registry, install_plugin):
        await navigation_service.seed_core_navigation(test_db)
        await install_plugin("P")

        with pytest.raises(ProtectedItemError):
            await navigation_service.register_plugin_navigation(test_db, "P", [_item("orders")])
        await test_db.rollback()

        await plugin_service.uninstall_plugin(test_db, widget_registry, "P", force=True)
        tree = await navigation_service.list_tree(test_db)
        assert _keys(tree) == [entry["key"] for entry in navigation_service.CORE_NAVIGATION]

    @pytest.mark.asyncio
    async def test_core_item_cannot_lose_core_flag(self, test_db):
        await navigation_service.seed_core_navigation(test_db)

        with pytest.raises(ProtectedItemError):
            await navigation_service.upsert_item(test_db, _item("settings"))

    @pytest.mark.asyncio
    async def test_key_of_another_plugin_is_rejected(self, test_db, install_plugin):
        await install_plugin("P", navigation=[_item("reports")])

        with pytest.raises(ConstraintViolationError):
            await install_plugin("Q", navigation=[_item("reports", label="Q Reports")])

        reports = await test_db.get(NavigationItem, "reports")
        assert reports.plugin_id == "P"
        assert reports.label == "Reports"
