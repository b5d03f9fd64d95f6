"""
Widget registry and widget id tests

Registry tests are pure unit tests; widget_from_artifact works on unsaved
CodeArtifact rows, and only the startup rebuild reads the database.
"""

import pytest

from storefront.models.code_artifact import CodeArtifact
from storefront.plugins.base import WidgetDefinition, is_qualified_id, make_widget_id, split_qualified_id
from storefront.plugins.loader import load_widget_registry, widget_from_artifact
from storefront.plugins.registry import WidgetRegistry


def _widget(plugin_id, name, **kwargs):
    return WidgetDefinition(plugin_id=plugin_id, name=name, **kwargs)


class TestQualifiedIds:
    def test_make_widget_id(self):
        assert make_widget_id("hero-plugin", "hero") == "hero-plugin:hero"

    def test_definition_widget_id_is_derived(self):
        assert _widget("P", "hero").widget_id == "P:hero"

    @pytest.mark.parametrize("value", ["P:hero", "a1b2-c3:banner_v2", "plugin.with.dots:w"])
    def test_well_formed_ids(self, value):
        assert is_qualified_id(value)

    @pytest.mark.parametrize("value", ["hero", ":hero", "P:", "P:hero:extra", "P :hero", "", None, 42])
    def test_malformed_ids(self, value):
        assert not is_qualified_id(value)

    def test_split_qualified_id(self):
        assert split_qualified_id("P:hero") == ("P", "hero")

    def test_split_rejects_malformed(self):
        with pytest.raises(ValueError):
            split_qualified_id("hero")


class TestWidgetRegistry:
    def test_register_and_get(self):
        registry = WidgetRegistry()
        widget_id = registry.register_widget("P", _widget("P", "hero"))

        assert widget_id == "P:hero"
        assert registry.get_widget("P:hero").name == "hero"
        assert "P:hero" in registry
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        assert WidgetRegistry().get_widget("P:missing") is None

    def test_register_rejects_foreign_definition(self):
        registry = WidgetRegistry()
        with pytest.raises(ValueError):
            registry.register_widget("Q", _widget("P", "hero"))

    def test_reregister_overwrites(self):
        registry = WidgetRegistry()
        registry.register_widget("P", _widget("P", "hero", display_name="Old"))
        registry.register_widget("P", _widget("P", "hero", display_name="New"))

        assert len(registry) == 1
        assert registry.get_widget("P:hero").display_name == "New"

    def test_unregister_plugin_widgets_only_touches_that_plugin(self):
        registry = WidgetRegistry()
        registry.register_widget("P", _widget("P", "hero"))
        registry.register_widget("P", _widget("P", "banner"))
        registry.register_widget("Q", _widget("Q", "hero"))

        removed = registry.unregister_plugin_widgets("P")

        assert removed == 2
        assert registry.get_widget("P:hero") is None
        assert registry.get_widgets_by_plugin("P") == []
        assert [w.widget_id for w in registry.get_widgets_by_plugin("Q")] == ["Q:hero"]
        assert registry.get_widget("Q:hero") is not None

    def test_snapshot_is_stable_across_mutations(self):
        registry = WidgetRegistry()
        registry.register_widget("P", _widget("P", "hero"))
        snapshot = registry.snapshot()

        registry.unregister_plugin_widgets("P")

        assert "P:hero" in snapshot
        assert "P:hero" not in registry

    def test_snapshot_is_read_only(self):
        registry = WidgetRegistry()
        with pytest.raises(TypeError):
            registry.snapshot()["P:hero"] = _widget("P", "hero")

    def test_replace_plugin_widgets(self):
        registry = WidgetRegistry()
        registry.register_widget("P", _widget("P", "old"))
        registry.register_widget("Q", _widget("Q", "keep"))

        count = registry.replace_plugin_widgets("P", [_widget("P", "new"), _widget("Q", "ignored")])

        assert count == 1
        assert sorted(w.widget_id for w in registry.all_widgets()) == ["P:new", "Q:keep"]

    def test_replace_all(self):
        registry = WidgetRegistry()
        registry.register_widget("P", _widget("P", "old"))

        registry.replace_all([_widget("Q", "a"), _widget("R", "b")])

        assert [w.widget_id for w in registry.all_widgets()] == ["Q:a", "R:b"]

    def test_to_dict_uses_camel_case(self):
        data = _widget("P", "hero", default_config={"size": "m"}).to_dict()

        assert data["widgetId"] == "P:hero"
        assert data["pluginId"] == "P"
        assert data["displayName"] == "hero"
        assert data["defaultConfig"] == {"size": "m"}


class TestWidgetFromArtifact:
    def _artifact(self, kind="script", widget_meta=None, **kwargs):
        return CodeArtifact(
            id=7,
            plugin_id="P",
            kind=kind,
            file_name="hero.jsx",
            natural_key="hero.jsx",
            content="render()",
            widget_meta=widget_meta,
            **kwargs,
        )

    def test_builds_definition(self):
        artifact = self._artifact(
            widget_meta={
                "name": "hero",
                "displayName": "Hero Banner",
                "configSchema": {"type": "object"},
                "defaultConfig": {"size": "m"},
                "category": "marketing",
                "dependencies": ["swiper"],
            }
        )

        widget = widget_from_artifact(artifact)

        assert widget.widget_id == "P:hero"
        assert widget.display_name == "Hero Banner"
        assert widget.component_code == "render()"
        assert widget.category == "marketing"
        assert widget.dependencies == ("swiper",)
        assert widget.artifact_id == 7

    def test_untagged_artifact_is_not_a_widget(self):
        assert widget_from_artifact(self._artifact()) is None

    def test_non_widget_kind_is_ignored(self):
        assert widget_from_artifact(self._artifact(kind="controller", widget_meta={"name": "x"})) is None

    @pytest.mark.parametrize("name", [None, "", "a:b", 3])
    def test_invalid_name_is_ignored(self, name):
        assert widget_from_artifact(self._artifact(widget_meta={"name": name})) is None

    def test_missing_dependencies_means_all(self):
        widget = widget_from_artifact(self._artifact(widget_meta={"name": "hero"}))
        assert widget.dependencies is None


class TestLoadWidgetRegistry:
    @pytest.mark.asyncio
    async def test_startup_rebuild_skips_inactive_plugins(self, test_db, install_plugin):
        await install_plugin("P", widgets=["hero", "banner"])
        await install_plugin("Q", status="disabled", widgets=["hidden"])
        registry = WidgetRegistry()
        registry.register_widget("stale", _widget("stale", "gone"))

        count = await load_widget_registry(test_db, registry)

        assert count == 2
        assert len(registry) == 2
        assert sorted(w.widget_id for w in registry.all_widgets()) == ["P:banner", "P:hero"]
