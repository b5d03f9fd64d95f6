"""
Plugin Administration Routes

All routes require the admin role.

GET    /api/v1/plugins                                        → list plugins
POST   /api/v1/plugins                                        → register a plugin row
POST   /api/v1/plugins/install                                → install a complete package
GET    /api/v1/plugins/{plugin_id}                            → get plugin
PUT    /api/v1/plugins/{plugin_id}/status                     → activate / disable
PUT    /api/v1/plugins/{plugin_id}/slug                       → change slug
DELETE /api/v1/plugins/{plugin_id}                            → uninstall
GET    /api/v1/plugins/{plugin_id}/artifacts                  → list code artifacts
PUT    /api/v1/plugins/{plugin_id}/artifacts                  → upsert a code artifact
DELETE /api/v1/plugins/{plugin_id}/artifacts/{kind}/{key}     → delete a code artifact
POST   /api/v1/plugins/{plugin_id}/controllers/{name}/invoke  → run a controller
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import require_admin
from storefront.database import get_db
from storefront.dependencies import get_resolver, get_sandbox, get_widget_registry
from storefront.exceptions import PluginNotFoundError
from storefront.models.code_artifact import WIDGET_KINDS, ArtifactKind
from storefront.models.plugin import PluginStatus
from storefront.plugins.hooks import (
    EVENT_PLUGIN_DISABLED,
    EVENT_PLUGIN_ENABLED,
    EVENT_PLUGIN_INSTALLED,
    EVENT_PLUGIN_UNINSTALLED,
)
from storefront.plugins.loader import register_plugin_widgets
from storefront.plugins.registry import WidgetRegistry
from storefront.plugins.sandbox import ControllerRequest, ControllerSandbox
from storefront.schemas.composition import ControllerResultResponse
from storefront.schemas.plugin import (
    ArtifactCreate,
    ArtifactResponse,
    ControllerInvokeRequest,
    PluginCreate,
    PluginInstall,
    PluginResponse,
    PluginSlugUpdate,
    PluginStatusUpdate,
)
from storefront.services import artifact_service, plugin_service
from storefront.services.composition_service import CompositionResolver

router = APIRouter(tags=["Plugins"])
logger = logging.getLogger(__name__)


async def _get_or_404(db: AsyncSession, plugin_id: str):
    plugin = await plugin_service.get_plugin(db, plugin_id)
    if plugin is None:
        raise PluginNotFoundError(plugin_id)
    return plugin


@router.get("", response_model=list[PluginResponse])
async def list_plugins(
    plugin_status: Optional[PluginStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    return await plugin_service.list_plugins(db, status=plugin_status)


@router.post("", response_model=PluginResponse, status_code=status.HTTP_201_CREATED)
async def register_plugin(
    data: PluginCreate,
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    return await plugin_service.register_plugin(db, data)


@router.post("/install", response_model=PluginResponse, status_code=status.HTTP_201_CREATED)
async def install_plugin(
    bundle: PluginInstall,
    db: AsyncSession = Depends(get_db),
    registry: WidgetRegistry = Depends(get_widget_registry),
    sandbox: ControllerSandbox = Depends(get_sandbox),
    _admin: dict[str, Any] = Depends(require_admin),
):
    """Install a plugin with its artifacts and navigation in one transaction."""
    plugin = await plugin_service.install_plugin(db, registry, bundle)
    await sandbox.fire_event(db, EVENT_PLUGIN_INSTALLED, {"plugin_id": plugin.id})
    return plugin


@router.get("/{plugin_id}", response_model=PluginResponse)
async def get_plugin(
    plugin_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    return await _get_or_404(db, plugin_id)


@router.put("/{plugin_id}/status", response_model=PluginResponse)
async def set_plugin_status(
    plugin_id: str,
    update: PluginStatusUpdate,
    db: AsyncSession = Depends(get_db),
    registry: WidgetRegistry = Depends(get_widget_registry),
    sandbox: ControllerSandbox = Depends(get_sandbox),
    _admin: dict[str, Any] = Depends(require_admin),
):
    plugin = await plugin_service.set_plugin_status(db, registry, plugin_id, update.status)
    event = EVENT_PLUGIN_ENABLED if plugin.is_active else EVENT_PLUGIN_DISABLED
    await sandbox.fire_event(db, event, {"plugin_id": plugin_id, "status": plugin.status})
    return plugin


@router.put("/{plugin_id}/slug", response_model=PluginResponse)
async def update_plugin_slug(
    plugin_id: str,
    update: PluginSlugUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    return await plugin_service.update_plugin_slug(db, plugin_id, update.slug)


@router.delete("/{plugin_id}", status_code=status.HTTP_204_NO_CONTENT)
async def uninstall_plugin(
    plugin_id: str,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    registry: WidgetRegistry = Depends(get_widget_registry),
    sandbox: ControllerSandbox = Depends(get_sandbox),
    _admin: dict[str, Any] = Depends(require_admin),
):
    await plugin_service.uninstall_plugin(db, registry, plugin_id, force=force)
    await sandbox.fire_event(db, EVENT_PLUGIN_UNINSTALLED, {"plugin_id": plugin_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Code artifacts ─────────────────────────────────────────────────────────────


@router.get("/{plugin_id}/artifacts", response_model=list[ArtifactResponse])
async def list_artifacts(
    plugin_id: str,
    kind: Optional[ArtifactKind] = Query(None),
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    await _get_or_404(db, plugin_id)
    return await artifact_service.list_by_plugin(db, plugin_id, kind=kind.value if kind else None)


@router.put("/{plugin_id}/artifacts", response_model=ArtifactResponse)
async def put_artifact(
    plugin_id: str,
    data: ArtifactCreate,
    replace: bool = Query(False, description="Overwrite a dependency bundled at another version"),
    db: AsyncSession = Depends(get_db),
    registry: WidgetRegistry = Depends(get_widget_registry),
    _admin: dict[str, Any] = Depends(require_admin),
):
    artifact = await artifact_service.put_artifact(db, plugin_id, data, replace=replace)
    if artifact.kind in WIDGET_KINDS:
        plugin = await plugin_service.get_plugin(db, plugin_id)
        if plugin is not None and plugin.is_active:
            await register_plugin_widgets(db, registry, plugin_id)
    return artifact


@router.delete("/{plugin_id}/artifacts/{kind}/{natural_key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_artifact(
    plugin_id: str,
    kind: ArtifactKind,
    natural_key: str,
    db: AsyncSession = Depends(get_db),
    registry: WidgetRegistry = Depends(get_widget_registry),
    _admin: dict[str, Any] = Depends(require_admin),
):
    await artifact_service.delete_artifact(db, plugin_id, kind.value, natural_key)
    if kind.value in WIDGET_KINDS:
        plugin = await plugin_service.get_plugin(db, plugin_id)
        if plugin is not None and plugin.is_active:
            await register_plugin_widgets(db, registry, plugin_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{plugin_id}/controllers/{controller_name}/invoke", response_model=ControllerResultResponse)
async def invoke_controller(
    plugin_id: str,
    controller_name: str,
    payload: ControllerInvokeRequest,
    resolver: CompositionResolver = Depends(get_resolver),
    _admin: dict[str, Any] = Depends(require_admin),
):
    """Run a plugin controller on demand; controller faults are returned, not raised."""
    request = ControllerRequest(
        method=payload.method.upper(),
        path=payload.path,
        query=payload.query,
        body=payload.body,
        store_id=payload.params.get("store_id"),
        params=payload.params,
    )
    result = await resolver.invoke_controller(plugin_id, controller_name, request)
    return ControllerResultResponse(**result.to_dict())
