"""
Widget Registry

WidgetRegistry: process-lifetime catalog mapping widget ids to
WidgetDefinitions. One instance is created by the application factory and
injected where needed (it lives on `app.state.widget_registry`).

Readers never take the lock. Every mutation copies the current mapping,
edits the copy and swaps the reference in one assignment, so a reader sees
either the state before or after a mutation, never a half-built map.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from storefront.plugins.base import WidgetDefinition

logger = logging.getLogger(__name__)


class WidgetRegistry:
    """In-memory widget catalog with copy-on-write updates."""

    def __init__(self) -> None:
        self._widgets: Mapping[str, WidgetDefinition] = MappingProxyType({})
        self._lock = threading.Lock()

    # ── Registration ──────────────────────────────────────────────────────────

    def register_widget(self, plugin_id: str, definition: WidgetDefinition) -> str:
        """
        Register (or re-register) a widget and return its widget id.

        The id is derived from `plugin_id` and the definition's name, so a
        redeploy of the same widget overwrites the previous entry.
        """
        if definition.plugin_id != plugin_id:
            raise ValueError(
                f"Widget {definition.name!r} belongs to plugin {definition.plugin_id!r}, not {plugin_id!r}"
            )
        widget_id = definition.widget_id
        with self._lock:
            updated = dict(self._widgets)
            updated[widget_id] = definition
            self._widgets = MappingProxyType(updated)
        logger.info("Widget registered: %s", widget_id)
        return widget_id

    def unregister_plugin_widgets(self, plugin_id: str) -> int:
        """Remove every widget owned by `plugin_id` and return how many were removed."""
        with self._lock:
            kept = {wid: w for wid, w in self._widgets.items() if w.plugin_id != plugin_id}
            removed = len(self._widgets) - len(kept)
            if removed:
                self._widgets = MappingProxyType(kept)
        logger.info("Unregistered %d widget(s) for plugin %s", removed, plugin_id)
        return removed

    def replace_plugin_widgets(self, plugin_id: str, definitions: Iterable[WidgetDefinition]) -> int:
        """Atomically replace all widgets of one plugin (install / redeploy)."""
        fresh = [d for d in definitions if d.plugin_id == plugin_id]
        with self._lock:
            updated = {wid: w for wid, w in self._widgets.items() if w.plugin_id != plugin_id}
            for definition in fresh:
                updated[definition.widget_id] = definition
            self._widgets = MappingProxyType(updated)
        logger.info("Plugin %s now provides %d widget(s)", plugin_id, len(fresh))
        return len(fresh)

    def replace_all(self, definitions: Iterable[WidgetDefinition]) -> int:
        """Atomically replace the whole catalog (startup rebuild)."""
        rebuilt = {d.widget_id: d for d in definitions}
        with self._lock:
            self._widgets = MappingProxyType(rebuilt)
        logger.info("Widget registry rebuilt with %d widget(s)", len(rebuilt))
        return len(rebuilt)

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get_widget(self, widget_id: str) -> WidgetDefinition | None:
        """Return the widget, or None; a miss is a render-fallback condition, not an error."""
        return self._widgets.get(widget_id)

    def get_widgets_by_plugin(self, plugin_id: str) -> list[WidgetDefinition]:
        return [w for w in self._widgets.values() if w.plugin_id == plugin_id]

    def all_widgets(self) -> list[WidgetDefinition]:
        """Return all widgets sorted by widget id."""
        snapshot = self._widgets
        return [snapshot[wid] for wid in sorted(snapshot)]

    def snapshot(self) -> Mapping[str, WidgetDefinition]:
        """Return the current immutable mapping; safe to hold across awaits."""
        return self._widgets

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._widgets

    def __len__(self) -> int:
        return len(self._widgets)
