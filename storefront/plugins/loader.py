"""
Widget Loader

Builds WidgetDefinitions from stored code artifacts and (re)populates the
WidgetRegistry: fully at application startup, per plugin on install,
enable and redeploy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from storefront.plugins.base import WidgetDefinition
from storefront.services import artifact_service

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from storefront.models.code_artifact import CodeArtifact
    from storefront.plugins.registry import WidgetRegistry

logger = logging.getLogger(__name__)


def widget_from_artifact(artifact: CodeArtifact) -> WidgetDefinition | None:
    """
    Derive a WidgetDefinition from a script/admin_page artifact.

    Returns None when the artifact is not tagged as a widget or its
    widget_meta has no usable name.
    """
    if not artifact.is_widget:
        return None
    meta = artifact.widget_meta or {}
    name = meta.get("name")
    if not isinstance(name, str) or not name or ":" in name:
        logger.warning(
            "Ignoring widget artifact %s of plugin %s: invalid widget name %r",
            artifact.file_name,
            artifact.plugin_id,
            name,
        )
        return None
    dependencies = meta.get("dependencies")
    return WidgetDefinition(
        plugin_id=artifact.plugin_id,
        name=name,
        display_name=meta.get("displayName") or name,
        component_code=artifact.content or "",
        config_schema=meta.get("configSchema") or {},
        default_config=meta.get("defaultConfig") or {},
        category=meta.get("category") or "functional",
        dependencies=tuple(dependencies) if isinstance(dependencies, list) else None,
        artifact_id=artifact.id,
    )


def _definitions(artifacts: list[CodeArtifact]) -> list[WidgetDefinition]:
    definitions = []
    for artifact in artifacts:
        definition = widget_from_artifact(artifact)
        if definition is not None:
            definitions.append(definition)
    return definitions


async def load_widget_registry(db: AsyncSession, registry: WidgetRegistry) -> int:
    """
    Rebuild the whole registry from every active plugin's widget artifacts.

    Called from main.py lifespan() at startup.
    """
    artifacts = await artifact_service.list_widget_artifacts(db)
    count = registry.replace_all(_definitions(artifacts))
    logger.info("Widget registry initialisation complete — %d widgets loaded", count)
    return count


async def register_plugin_widgets(db: AsyncSession, registry: WidgetRegistry, plugin_id: str) -> int:
    """Swap in the current widget set of one plugin; returns the number registered."""
    artifacts = await artifact_service.list_widget_artifacts(db, plugin_ids=[plugin_id])
    return registry.replace_plugin_widgets(plugin_id, _definitions(artifacts))
