"""
Plugin Event and Filter Names

Names of the lifecycle events the runtime fires and the filter hooks it
applies. Plugins subscribe by storing an `event` artifact with a matching
`event_name`, or a `hook` artifact with a matching `hook_name`.
Names follow the `category.action` convention.
"""

from __future__ import annotations

# ── Plugin lifecycle ──────────────────────────────────────────────────────────
EVENT_PLUGIN_INSTALLED = "plugin.installed"
EVENT_PLUGIN_ENABLED = "plugin.enabled"
EVENT_PLUGIN_DISABLED = "plugin.disabled"
EVENT_PLUGIN_UNINSTALLED = "plugin.uninstalled"

# ── Slot configuration ────────────────────────────────────────────────────────
EVENT_SLOT_CONFIGURATION_SAVED = "slot_configuration.saved"
EVENT_SLOT_CONFIGURATION_PUBLISHED = "slot_configuration.published"

# ── Filters ───────────────────────────────────────────────────────────────────
FILTER_COMPOSITION_TREE = "composition.tree"

# ── Master lists ──────────────────────────────────────────────────────────────
ALL_EVENTS: list[str] = [
    EVENT_PLUGIN_INSTALLED,
    EVENT_PLUGIN_ENABLED,
    EVENT_PLUGIN_DISABLED,
    EVENT_PLUGIN_UNINSTALLED,
    EVENT_SLOT_CONFIGURATION_SAVED,
    EVENT_SLOT_CONFIGURATION_PUBLISHED,
]

ALL_FILTERS: list[str] = [
    FILTER_COMPOSITION_TREE,
]
