"""
Widget Base Classes

WidgetDefinition: the renderable unit a plugin exposes to slot layouts.
Widget ids are always `<plugin_id>:<name>`; helpers here build and parse them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

# One non-empty, colon-free, whitespace-free segment on each side of a single ':'
_QUALIFIED_ID_RE = re.compile(r"^[^:\s]+:[^:\s]+$")


def make_widget_id(plugin_id: str, name: str) -> str:
    """Return the deterministic widget id for a plugin's widget."""
    return f"{plugin_id}:{name}"


def is_qualified_id(value: Any) -> bool:
    """Return True if `value` is syntactically `pluginId:name`."""
    return isinstance(value, str) and bool(_QUALIFIED_ID_RE.match(value))


def split_qualified_id(value: str) -> tuple[str, str]:
    """
    Split a `pluginId:name` reference into its two parts.

    Raises:
        ValueError: if the value is not a well-formed qualified id.
    """
    if not is_qualified_id(value):
        raise ValueError(f"Malformed qualified id: {value!r}")
    plugin_id, name = value.split(":", 1)
    return plugin_id, name


@dataclass(frozen=True)
class WidgetDefinition:
    """
    A renderable widget derived from a plugin's code artifacts.

    Attributes:
        plugin_id:      Owning plugin (opaque string).
        name:           Widget name, unique within the plugin.
        display_name:   Label shown in the slot editor.
        component_code: Source handed to the rendering layer.
        config_schema:  JSON Schema describing configurable options.
        default_config: Config used when a slot does not override it.
        category:       Editor grouping, e.g. "functional" or "marketing".
        dependencies:   Package names this widget needs; None means every
                        dependency bundle the plugin ships.
        artifact_id:    Source CodeArtifact row, if any.
    """

    plugin_id: str
    name: str
    display_name: str = ""
    component_code: str = ""
    config_schema: dict[str, Any] = field(default_factory=dict)
    default_config: dict[str, Any] = field(default_factory=dict)
    category: str = "functional"
    dependencies: tuple[str, ...] | None = None
    artifact_id: int | None = None

    @property
    def widget_id(self) -> str:
        return make_widget_id(self.plugin_id, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "widgetId": self.widget_id,
            "pluginId": self.plugin_id,
            "name": self.name,
            "displayName": self.display_name or self.name,
            "componentCode": self.component_code,
            "configSchema": self.config_schema,
            "defaultConfig": self.default_config,
            "category": self.category,
        }
