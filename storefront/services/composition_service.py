"""
Composition Service

CompositionResolver turns a stored slot configuration into the tree the
storefront renders for one (store, page type, viewport):

1. Read the requested version (published by default). A missing row or a
   configuration whose top-level structure is unreadable falls back to the
   page type's built-in template.
2. Apply the viewport's overrides to each slot and drop slots hidden there.
3. Resolve widget references against the WidgetRegistry. A reference that
   cannot be resolved becomes a placeholder for that slot only.
4. Invoke controller slots concurrently through the ControllerSandbox.
   Each controller node carries `ok`, `status_code` and `body`; failures add
   an `error` payload on that slot only.
5. Collect the dependency bundles of the resolved widgets, once per
   (plugin, package).

Nothing in a single slot can fail the whole page.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import Settings
from storefront.constants.slot_templates import get_default_template
from storefront.exceptions import ValidationError
from storefront.models.plugin import Plugin, PluginStatus
from storefront.models.slot_configuration import ConfigurationStatus
from storefront.plugins.base import is_qualified_id, split_qualified_id
from storefront.plugins.hooks import FILTER_COMPOSITION_TREE
from storefront.plugins.registry import WidgetRegistry
from storefront.plugins.sandbox import ControllerRequest, ControllerResult, ControllerSandbox
from storefront.services import artifact_service, slot_configuration_service

logger = logging.getLogger(__name__)

__all__ = [
    "CompositionResolver",
    "CompositionResult",
    "ControllerResult",
    "DependencyBundle",
    "PlaceholderReason",
]


class PlaceholderReason:
    PLUGIN_DISABLED = "plugin_disabled"
    PLUGIN_NOT_FOUND = "plugin_not_found"
    WIDGET_NOT_FOUND = "widget_not_found"
    INVALID_SLOT = "invalid_slot"


@dataclass(frozen=True)
class DependencyBundle:
    plugin_id: str
    package_name: str
    version: str | None
    bundled_code: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "package_name": self.package_name,
            "version": self.version,
            "bundled_code": self.bundled_code,
        }


@dataclass
class CompositionResult:
    store_id: str
    page_type: str
    viewport: str
    version: str
    tree: list[dict[str, Any]] = field(default_factory=list)
    dependencies: list[DependencyBundle] = field(default_factory=list)
    # Slot ids of the placeholder nodes, in tree order
    placeholders: list[str] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "store_id": self.store_id,
            "page_type": self.page_type,
            "viewport": self.viewport,
            "version": self.version,
            "fallback": self.fallback,
            "tree": self.tree,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "placeholders": self.placeholders,
        }


def _order_key(node: dict[str, Any]) -> tuple:
    position = node.get("position") or {}
    return (position.get("row", 0), position.get("col", 0), node["id"])


class CompositionResolver:
    """Merges slot configuration, widget registry and dependency bundles into a render tree."""

    def __init__(self, widget_registry: WidgetRegistry, sandbox: ControllerSandbox, settings: Settings):
        self.widget_registry = widget_registry
        self.sandbox = sandbox
        self.settings = settings

    # ── Configuration loading ─────────────────────────────────────────────────

    async def _load_configuration(
        self, db: AsyncSession, store_id: str, page_type: str, status: str
    ) -> tuple[dict[str, Any], bool]:
        row = await slot_configuration_service.get_version(db, store_id, page_type, status)
        if row is None:
            logger.info("No %s configuration for store=%s page=%s; using default template", status, store_id, page_type)
            return get_default_template(page_type), True

        configuration = row.configuration
        if (
            not isinstance(configuration, dict)
            or not isinstance(configuration.get("slots"), dict)
            or not isinstance(configuration.get("metadata", {}), dict)
        ):
            logger.error(
                "Corrupt %s configuration id=%s for store=%s page=%s; rendering default template",
                status,
                row.id,
                store_id,
                page_type,
            )
            return get_default_template(page_type), True
        return copy.deepcopy(configuration), False

    # ── Per-slot resolution ───────────────────────────────────────────────────

    def _apply_viewport(self, slot_id: str, raw: Any, viewport: str) -> dict[str, Any] | None:
        """Return the effective node for `viewport`, or None when hidden there."""
        slot_configuration_service.validate_node(slot_id, raw)
        node = {k: v for k, v in raw.items() if k != "viewports"}
        override = (raw.get("viewports") or {}).get(viewport)
        if override:
            if override.get("hidden") is True:
                return None
            if "position" in override:
                node["position"] = override["position"]
            if "widgetId" in override:
                node["widgetId"] = override["widgetId"]
            if "metadata" in override:
                node["metadata"] = {**(node.get("metadata") or {}), **override["metadata"]}
        node["viewport"] = viewport
        return node

    def _placeholder(self, node: dict[str, Any], reason: str, widget_id: str | None = None) -> str:
        """Turn `node` into a placeholder in place; returns its slot id."""
        node["type"] = "placeholder"
        node["placeholder"] = {"reason": reason, "widgetId": widget_id, "visible": not self.settings.is_production}
        return node["id"]

    async def _plugin_statuses(self, db: AsyncSession, plugin_ids: set[str]) -> dict[str, str]:
        if not plugin_ids:
            return {}
        result = await db.execute(select(Plugin.id, Plugin.status).where(Plugin.id.in_(plugin_ids)))
        return {plugin_id: status for plugin_id, status in result.all()}

    async def _collect_dependencies(
        self, db: AsyncSession, needed: dict[str, set[str] | None]
    ) -> list[DependencyBundle]:
        bundles: dict[tuple[str, str], DependencyBundle] = {}
        for plugin_id, packages in needed.items():
            for artifact in await artifact_service.list_dependencies(db, plugin_id):
                if packages is not None and artifact.package_name not in packages:
                    continue
                key = (plugin_id, artifact.package_name)
                if key not in bundles:
                    bundles[key] = DependencyBundle(
                        plugin_id=plugin_id,
                        package_name=artifact.package_name,
                        version=artifact.version,
                        bundled_code=artifact.bundled_code,
                    )
        return list(bundles.values())

    # ── Public API ────────────────────────────────────────────────────────────

    async def resolve(
        self,
        db: AsyncSession,
        store_id: str,
        page_type: str,
        viewport: str | None = None,
        published: bool = True,
        request: ControllerRequest | None = None,
    ) -> CompositionResult:
        """
        Build the render tree for a page.

        Never raises for problems inside individual slots: unknown or
        disabled widgets and malformed nodes become placeholders, and
        failing controllers carry an error payload on their own node.
        """
        viewport = viewport or self.settings.default_viewport
        status = ConfigurationStatus.published.value if published else ConfigurationStatus.draft.value
        configuration, fallback = await self._load_configuration(db, store_id, page_type, status)
        result = CompositionResult(
            store_id=store_id, page_type=page_type, viewport=viewport, version=status, fallback=fallback
        )

        raw_slots = configuration["slots"]
        nodes: dict[str, dict[str, Any]] = {}
        hidden: set[str] = set()
        invalid: set[str] = set()
        for slot_id, raw in raw_slots.items():
            try:
                node = self._apply_viewport(slot_id, raw, viewport)
            except ValidationError as e:
                logger.warning("Invalid slot %s in store=%s page=%s: %s", slot_id, store_id, page_type, e.message)
                node = {"id": str(slot_id), "position": {"col": 0, "row": 0}, "viewport": viewport}
                invalid.add(node["id"])
                result.placeholders.append(self._placeholder(node, PlaceholderReason.INVALID_SLOT))
                nodes[node["id"]] = node
                continue
            if node is None:
                hidden.add(slot_id)
                continue
            nodes[slot_id] = node

        # Widgets
        snapshot = self.widget_registry.snapshot()
        misses: list[dict[str, Any]] = []
        needed: dict[str, set[str] | None] = {}
        for slot_id, node in nodes.items():
            widget_id = node.get("widgetId")
            if slot_id in invalid or widget_id is None:
                continue
            widget = snapshot.get(widget_id)
            if widget is None:
                misses.append(node)
                continue
            config = (node.get("metadata") or {}).get("config") or {}
            node["widget"] = widget.to_dict()
            node["config"] = {**widget.default_config, **config}
            if widget.dependencies is None or needed.get(widget.plugin_id, set()) is None:
                needed[widget.plugin_id] = None
            else:
                needed.setdefault(widget.plugin_id, set()).update(widget.dependencies)

        if misses:
            statuses = await self._plugin_statuses(db, {split_qualified_id(n["widgetId"])[0] for n in misses})
            for node in misses:
                widget_id = node["widgetId"]
                plugin_status = statuses.get(split_qualified_id(widget_id)[0])
                if plugin_status is None:
                    reason = PlaceholderReason.PLUGIN_NOT_FOUND
                elif plugin_status != PluginStatus.active.value:
                    reason = PlaceholderReason.PLUGIN_DISABLED
                else:
                    reason = PlaceholderReason.WIDGET_NOT_FOUND
                result.placeholders.append(self._placeholder(node, reason, widget_id))

        # Controllers
        controller_nodes = [
            node
            for slot_id, node in nodes.items()
            if slot_id not in invalid and node.get("type") == "controller"
        ]
        for node in [n for n in controller_nodes if not is_qualified_id(n.get("controllerId"))]:
            controller_nodes.remove(node)
            invalid.add(node["id"])
            result.placeholders.append(self._placeholder(node, PlaceholderReason.INVALID_SLOT))
        if controller_nodes:
            outcomes = await asyncio.gather(
                *(self._invoke_for_slot(store_id, node, request) for node in controller_nodes)
            )
            for node, outcome in zip(controller_nodes, outcomes):
                node["ok"] = outcome.ok
                node["status_code"] = outcome.status_code
                node["body"] = outcome.body
                if outcome.error is not None:
                    node["error"] = outcome.error

        result.tree = self._build_tree(nodes, raw_slots, hidden)
        filtered = await self.sandbox.apply_filters(db, FILTER_COMPOSITION_TREE, result.tree)
        if isinstance(filtered, list):
            result.tree = filtered
        result.dependencies = await self._collect_dependencies(db, needed)

        order = {slot_id: i for i, slot_id in enumerate(self._flatten(result.tree))}
        result.placeholders.sort(key=lambda slot_id: order.get(slot_id, len(order)))
        logger.debug(
            "Resolved store=%s page=%s viewport=%s version=%s: %d slot(s), %d placeholder(s), %d dependency bundle(s)",
            store_id,
            page_type,
            viewport,
            status,
            len(nodes),
            len(result.placeholders),
            len(result.dependencies),
        )
        return result

    def _build_tree(
        self, nodes: dict[str, dict[str, Any]], raw_slots: dict[str, Any], hidden: set[str]
    ) -> list[dict[str, Any]]:
        def parent_of(slot_id: str) -> str | None:
            parent_id = nodes[slot_id].get("parentId")
            return parent_id if isinstance(parent_id, str) else None

        def hidden_by_ancestor(slot_id: str) -> bool:
            seen = set()
            parent_id = parent_of(slot_id)
            while parent_id is not None and parent_id not in seen:
                if parent_id in hidden:
                    return True
                seen.add(parent_id)
                raw = raw_slots.get(parent_id)
                parent_id = raw.get("parentId") if isinstance(raw, dict) else None
            return False

        children: dict[str, list[dict[str, Any]]] = {}
        roots: list[dict[str, Any]] = []
        for slot_id, node in nodes.items():
            if hidden_by_ancestor(slot_id):
                continue
            node["children"] = []
            parent_id = parent_of(slot_id)
            if parent_id is not None and parent_id in nodes:
                children.setdefault(parent_id, []).append(node)
            else:
                roots.append(node)

        placed: set[str] = set()

        def attach(node: dict[str, Any]) -> dict[str, Any]:
            placed.add(node["id"])
            for child in sorted(children.get(node["id"], []), key=_order_key):
                if child["id"] not in placed:
                    node["children"].append(attach(child))
            return node

        tree = [attach(node) for node in sorted(roots, key=_order_key)]
        # Slots caught in a parent cycle are unreachable from any root
        stranded = [node for group in children.values() for node in group]
        for node in sorted(stranded, key=_order_key):
            if node["id"] not in placed:
                tree.append(attach(node))
        return tree

    def _flatten(self, tree: list[dict[str, Any]]) -> list[str]:
        ids = []
        for node in tree:
            ids.append(node["id"])
            ids.extend(self._flatten(node.get("children", [])))
        return ids

    async def _invoke_for_slot(
        self, store_id: str, node: dict[str, Any], request: ControllerRequest | None
    ) -> ControllerResult:
        plugin_id, controller_name = split_qualified_id(node["controllerId"])
        params = (node.get("metadata") or {}).get("params") or {}
        slot_request = ControllerRequest(
            method=request.method if request else "GET",
            path=request.path if request else "/",
            query=dict(request.query) if request else {},
            body=request.body if request else None,
            headers=dict(request.headers) if request else {},
            store_id=store_id,
            params={**params, "slot_id": node["id"]},
        )
        return await self.sandbox.invoke_controller(plugin_id, controller_name, slot_request)

    async def invoke_controller(
        self, plugin_id: str, controller_name: str, request: ControllerRequest
    ) -> ControllerResult:
        """On-demand invocation for admin actions; controller faults come back in the result."""
        return await self.sandbox.invoke_controller(plugin_id, controller_name, request)
