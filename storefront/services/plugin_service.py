"""
Plugin Service

Async CRUD and lifecycle operations for Plugin rows. All functions accept an
injected AsyncSession; lifecycle transitions that change which widgets are
renderable also take the WidgetRegistry held on app.state.

Slug uniqueness is enforced here rather than by a database constraint:
a slug must be unique among plugins that are not disabled, so a disabled
plugin can leave its slug behind for a replacement.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.exceptions import (
    ConstraintViolationError,
    DuplicateSlugError,
    PluginDisabledError,
    PluginNotFoundError,
)
from storefront.models.plugin import Plugin, PluginStatus
from storefront.plugins.loader import register_plugin_widgets
from storefront.plugins.registry import WidgetRegistry
from storefront.schemas.plugin import PluginCreate, PluginInstall
from storefront.services import artifact_service, navigation_service
from storefront.utils.timestamps import next_timestamp

logger = logging.getLogger(__name__)


async def _ensure_slug_available(db: AsyncSession, slug: str, plugin_id: str | None = None) -> None:
    query = select(Plugin).where(Plugin.slug == slug, Plugin.status == PluginStatus.active.value)
    if plugin_id is not None:
        query = query.where(Plugin.id != plugin_id)
    result = await db.execute(query)
    clash = result.scalars().first()
    if clash is not None:
        raise DuplicateSlugError(slug, existing_plugin_id=clash.id)


async def _stage_plugin(db: AsyncSession, data: PluginCreate) -> Plugin:
    if await db.get(Plugin, data.id) is not None:
        raise ConstraintViolationError(
            f"Plugin with id '{data.id}' already exists",
            details={"plugin_id": data.id},
        )
    status = PluginStatus(data.status).value
    if status != PluginStatus.disabled.value:
        await _ensure_slug_available(db, data.slug)

    now = next_timestamp(None)
    plugin = Plugin(
        id=data.id,
        slug=data.slug,
        name=data.name,
        version=data.version,
        description=data.description,
        category=data.category,
        status=status,
        creator_id=data.creator_id,
        manifest=dict(data.manifest),
        created_at=now,
        updated_at=now,
    )
    db.add(plugin)
    await db.flush()
    return plugin


async def register_plugin(db: AsyncSession, data: PluginCreate) -> Plugin:
    """
    Create a plugin row.

    Raises:
        DuplicateSlugError: the plugin is not disabled and an active plugin
            already uses the slug. Pending plugins do not hold their slug.
        ConstraintViolationError: a plugin with the same id exists.
    """
    try:
        plugin = await _stage_plugin(db, data)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConstraintViolationError(
            f"Plugin with id '{data.id}' already exists",
            details={"plugin_id": data.id},
        ) from e
    except Exception:
        await db.rollback()
        raise
    await db.refresh(plugin)
    logger.info("Plugin registered: id=%s slug=%s status=%s", plugin.id, plugin.slug, plugin.status)
    return plugin


async def get_plugin(db: AsyncSession, plugin_id: str) -> Plugin | None:
    """Return a Plugin by id, or None if not found."""
    result = await db.execute(select(Plugin).where(Plugin.id == plugin_id))
    return result.scalars().first()


async def resolve_plugin(db: AsyncSession, plugin_id: str) -> Plugin:
    """
    Return an active plugin.

    Raises:
        PluginNotFoundError: no plugin has this id.
        PluginDisabledError: the plugin exists but is not active.
    """
    plugin = await get_plugin(db, plugin_id)
    if plugin is None:
        raise PluginNotFoundError(plugin_id)
    if not plugin.is_active:
        raise PluginDisabledError(plugin_id, plugin.status)
    return plugin


async def list_plugins(db: AsyncSession, status: PluginStatus | str | None = None) -> list[Plugin]:
    query = select(Plugin).order_by(Plugin.name, Plugin.id)
    if status is not None:
        query = query.where(Plugin.status == PluginStatus(status).value)
    result = await db.execute(query)
    return list(result.scalars().all())


async def set_plugin_status(
    db: AsyncSession,
    widget_registry: WidgetRegistry,
    plugin_id: str,
    status: PluginStatus | str,
) -> Plugin:
    """
    Transition a plugin to a new status.

    Leaving `active` removes the plugin's widgets from the registry before
    this returns; artifacts are never deleted. Entering `active` re-checks
    slug uniqueness and registers widgets from the stored artifacts.
    """
    status = PluginStatus(status).value
    plugin = await get_plugin(db, plugin_id)
    if plugin is None:
        raise PluginNotFoundError(plugin_id)
    if plugin.status == status:
        return plugin

    if status != PluginStatus.disabled.value:
        await _ensure_slug_available(db, plugin.slug, plugin_id=plugin.id)

    previous = plugin.status
    plugin.status = status
    plugin.updated_at = next_timestamp(plugin.updated_at)
    await db.commit()
    await db.refresh(plugin)

    if status == PluginStatus.active.value:
        await register_plugin_widgets(db, widget_registry, plugin_id)
    else:
        widget_registry.unregister_plugin_widgets(plugin_id)

    logger.info("Plugin status changed: id=%s %s -> %s", plugin_id, previous, status)
    return plugin


async def update_plugin_slug(db: AsyncSession, plugin_id: str, slug: str) -> Plugin:
    plugin = await get_plugin(db, plugin_id)
    if plugin is None:
        raise PluginNotFoundError(plugin_id)
    if plugin.slug == slug:
        return plugin
    if plugin.status != PluginStatus.disabled.value:
        await _ensure_slug_available(db, slug, plugin_id=plugin.id)
    plugin.slug = slug
    plugin.updated_at = next_timestamp(plugin.updated_at)
    await db.commit()
    await db.refresh(plugin)
    logger.info("Plugin slug changed: id=%s slug=%s", plugin_id, slug)
    return plugin


async def install_plugin(db: AsyncSession, widget_registry: WidgetRegistry, bundle: PluginInstall) -> Plugin:
    """
    Install a complete plugin package in one transaction.

    The plugin row, all its artifacts and its admin navigation entries are
    written together; any failure rolls the whole package back. Widgets are
    registered only after the commit succeeds.
    """
    plugin_id = bundle.plugin.id
    try:
        plugin = await _stage_plugin(db, bundle.plugin)
        for artifact in bundle.artifacts:
            await artifact_service.stage_artifact(db, plugin_id, artifact)
        for item in bundle.navigation:
            await navigation_service.stage_item(db, item.model_copy(update={"plugin_id": plugin_id, "is_core": False}))
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConstraintViolationError(
            f"Installing plugin '{plugin_id}' violated a database constraint",
            details={"plugin_id": plugin_id, "reason": str(e.orig)},
        ) from e
    except Exception:
        await db.rollback()
        raise

    await db.refresh(plugin)
    registered = 0
    if plugin.is_active:
        registered = await register_plugin_widgets(db, widget_registry, plugin_id)
    logger.info(
        "Plugin installed: id=%s artifacts=%d navigation=%d widgets=%d",
        plugin_id,
        len(bundle.artifacts),
        len(bundle.navigation),
        registered,
    )
    return plugin


async def uninstall_plugin(
    db: AsyncSession,
    widget_registry: WidgetRegistry,
    plugin_id: str,
    force: bool = False,
) -> None:
    """
    Hard-delete a plugin with its artifacts and navigation entries.

    Only a disabled plugin may be uninstalled unless `force` is set. Slot
    configurations that reference its widgets are left alone and render
    placeholders from then on.
    """
    plugin = await get_plugin(db, plugin_id)
    if plugin is None:
        raise PluginNotFoundError(plugin_id)
    if plugin.status != PluginStatus.disabled.value and not force:
        raise ConstraintViolationError(
            f"Plugin '{plugin_id}' must be disabled before it can be uninstalled",
            details={"plugin_id": plugin_id, "status": plugin.status},
        )

    widget_registry.unregister_plugin_widgets(plugin_id)
    await db.delete(plugin)
    await db.commit()
    logger.info("Plugin uninstalled: id=%s force=%s", plugin_id, force)
