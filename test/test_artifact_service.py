"""
Tests for the code artifact service

Covers natural-key upserts, load ordering, orphan rejection and the
dependency version guard, against a real SQLite database.
"""

import pytest

from storefront.exceptions import ConstraintViolationError, NotFoundError, ValidationError
from storefront.schemas.plugin import ArtifactCreate, PluginCreate
from storefront.services import artifact_service, plugin_service


@pytest.fixture
async def plugin(test_db):
    return await plugin_service.register_plugin(test_db, PluginCreate(id="P", slug="p", name="P"))


class TestPutArtifact:
    @pytest.mark.asyncio
    async def test_insert_sets_natural_key_from_file_name(self, test_db, plugin):
        artifact = await artifact_service.put_artifact(
            test_db, "P", ArtifactCreate(kind="script", file_name="main.js", content="x")
        )

        assert artifact.id is not None
        assert artifact.natural_key == "main.js"
        assert artifact.load_priority == 10

    @pytest.mark.asyncio
    async def test_event_is_keyed_by_event_name(self, test_db, plugin):
        first = await artifact_service.put_artifact(
            test_db,
            "P",
            ArtifactCreate(kind="event", file_name="old_name.js", event_name="order.placed", content="v1"),
        )
        # Renaming the file keeps the same row
        second = await artifact_service.put_artifact(
            test_db,
            "P",
            ArtifactCreate(kind="event", file_name="new_name.js", event_name="order.placed", content="v2"),
        )

        assert second.id == first.id
        assert second.file_name == "new_name.js"
        assert second.content == "v2"
        assert len(await artifact_service.list_by_plugin(test_db, "P")) == 1

    @pytest.mark.asyncio
    async def test_update_moves_updated_at_forward(self, test_db, plugin):
        data = ArtifactCreate(kind="controller", file_name="c.py", controller_name="checkout", content="a")
        first = await artifact_service.put_artifact(test_db, "P", data)
        first_updated_at = first.updated_at

        second = await artifact_service.put_artifact(test_db, "P", data.model_copy(update={"content": "b"}))

        assert second.updated_at > first_updated_at

    @pytest.mark.asyncio
    async def test_unknown_plugin_is_rejected(self, test_db):
        with pytest.raises(ConstraintViolationError) as exc_info:
            await artifact_service.put_artifact(
                test_db, "ghost", ArtifactCreate(kind="script", file_name="main.js")
            )

        assert exc_info.value.details["plugin_id"] == "ghost"
        assert await artifact_service.list_by_plugin(test_db, "ghost") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data, field",
        [
            ({"kind": "event", "file_name": "e.js"}, "event_name"),
            ({"kind": "controller", "file_name": "c.py"}, "controller_name"),
            ({"kind": "dependency", "file_name": "d.js"}, "package_name"),
            ({"kind": "controller", "file_name": "c.py", "controller_name": "a:b"}, "controller_name"),
            ({"kind": "event", "file_name": "e.js", "event_name": "x", "widget_meta": {"name": "w"}}, "widget_meta"),
        ],
    )
    async def test_kind_specific_validation(self, test_db, plugin, data, field):
        with pytest.raises(ValidationError) as exc_info:
            await artifact_service.put_artifact(test_db, "P", ArtifactCreate(**data))

        assert exc_info.value.details["field"] == field


class TestListByPlugin:
    @pytest.mark.asyncio
    async def test_load_order_by_priority_then_insertion(self, test_db, plugin):
        for name, priority in [("c.js", 3), ("a.js", 1), ("b.js", 2), ("a2.js", 1)]:
            await artifact_service.put_artifact(
                test_db, "P", ArtifactCreate(kind="script", file_name=name, load_priority=priority)
            )

        ordered = await artifact_service.list_by_plugin(test_db, "P")

        assert [a.file_name for a in ordered] == ["a.js", "a2.js", "b.js", "c.js"]
        assert [a.load_priority for a in ordered] == [1, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_filter_by_kind(self, test_db, plugin):
        await artifact_service.put_artifact(test_db, "P", ArtifactCreate(kind="script", file_name="a.js"))
        await artifact_service.put_artifact(
            test_db, "P", ArtifactCreate(kind="hook", file_name="h.js", hook_name="composition.tree")
        )

        hooks = await artifact_service.list_by_plugin(test_db, "P", kind="hook")

        assert [a.natural_key for a in hooks] == ["composition.tree"]


class TestDependencies:
    @pytest.mark.asyncio
    async def test_version_conflict_is_rejected(self, test_db, plugin):
        await artifact_service.put_artifact(
            test_db,
            "P",
            ArtifactCreate(kind="dependency", file_name="swiper.js", package_name="swiper", version="8.0.0"),
        )

        with pytest.raises(ConstraintViolationError) as exc_info:
            await artifact_service.put_artifact(
                test_db,
                "P",
                ArtifactCreate(kind="dependency", file_name="swiper.js", package_name="swiper", version="9.0.0"),
            )

        assert exc_info.value.details["existing_version"] == "8.0.0"
        stored = await artifact_service.list_dependencies(test_db, "P")
        assert [d.version for d in stored] == ["8.0.0"]

    @pytest.mark.asyncio
    async def test_replace_overwrites_version(self, test_db, plugin):
        data = ArtifactCreate(kind="dependency", file_name="swiper.js", package_name="swiper", version="8.0.0")
        await artifact_service.put_artifact(test_db, "P", data)

        await artifact_service.put_artifact(test_db, "P", data.model_copy(update={"version": "9.0.0"}), replace=True)

        stored = await artifact_service.list_dependencies(test_db, "P")
        assert [(d.package_name, d.version) for d in stored] == [("swiper", "9.0.0")]

    @pytest.mark.asyncio
    async def test_same_version_is_an_update(self, test_db, plugin):
        data = ArtifactCreate(
            kind="dependency", file_name="swiper.js", package_name="swiper", version="8.0.0", bundled_code="a"
        )
        await artifact_service.put_artifact(test_db, "P", data)

        updated = await artifact_service.put_artifact(test_db, "P", data.model_copy(update={"bundled_code": "b"}))

        assert updated.bundled_code == "b"

    @pytest.mark.asyncio
    async def test_disabled_dependencies_are_not_listed(self, test_db, plugin):
        await artifact_service.put_artifact(
            test_db,
            "P",
            ArtifactCreate(kind="dependency", file_name="a.js", package_name="a", version="1", is_enabled=False),
        )

        assert await artifact_service.list_dependencies(test_db, "P") == []


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_controller_ignores_disabled(self, test_db, plugin):
        await artifact_service.put_artifact(
            test_db,
            "P",
            ArtifactCreate(kind="controller", file_name="c.py", controller_name="checkout", is_enabled=False),
        )

        assert await artifact_service.get_controller(test_db, "P", "checkout") is None

    @pytest.mark.asyncio
    async def test_list_handlers_skips_inactive_plugins(self, test_db, plugin):
        await plugin_service.register_plugin(test_db, PluginCreate(id="Q", slug="q", name="Q", status="disabled"))
        for plugin_id in ("P", "Q"):
            await artifact_service.put_artifact(
                test_db,
                plugin_id,
                ArtifactCreate(kind="event", file_name="e.py", event_name="plugin.installed"),
            )

        handlers = await artifact_service.list_handlers(test_db, "event", "plugin.installed")

        assert [h.plugin_id for h in handlers] == ["P"]

    @pytest.mark.asyncio
    async def test_list_widget_artifacts(self, test_db, plugin):
        await artifact_service.put_artifact(
            test_db, "P", ArtifactCreate(kind="script", file_name="hero.js", widget_meta={"name": "hero"})
        )
        await artifact_service.put_artifact(test_db, "P", ArtifactCreate(kind="script", file_name="util.js"))

        widgets = await artifact_service.list_widget_artifacts(test_db)

        assert [a.file_name for a in widgets] == ["hero.js"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_artifact(self, test_db, plugin):
        await artifact_service.put_artifact(test_db, "P", ArtifactCreate(kind="script", file_name="a.js"))

        await artifact_service.delete_artifact(test_db, "P", "script", "a.js")

        assert await artifact_service.list_by_plugin(test_db, "P") == []

    @pytest.mark.asyncio
    async def test_delete_missing_artifact(self, test_db, plugin):
        with pytest.raises(NotFoundError):
            await artifact_service.delete_artifact(test_db, "P", "script", "nope.js")

    @pytest.mark.asyncio
    async def test_delete_by_plugin(self, test_db, plugin):
        for name in ("a.js", "b.js"):
            await artifact_service.put_artifact(test_db, "P", ArtifactCreate(kind="script", file_name=name))

        assert await artifact_service.delete_by_plugin(test_db, "P") == 2
