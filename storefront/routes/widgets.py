"""
Widget Catalog Routes

GET /api/v1/widgets              → widgets currently renderable (optionally per plugin)
GET /api/v1/widgets/{widget_id}  → one widget by `pluginId:name`
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from storefront.auth import get_current_operator
from storefront.dependencies import get_widget_registry
from storefront.exceptions import NotFoundError
from storefront.plugins.registry import WidgetRegistry

router = APIRouter(tags=["Widgets"])


@router.get("")
async def list_widgets(
    plugin_id: Optional[str] = Query(None),
    registry: WidgetRegistry = Depends(get_widget_registry),
    _operator: dict[str, Any] = Depends(get_current_operator),
) -> list[dict[str, Any]]:
    widgets = registry.get_widgets_by_plugin(plugin_id) if plugin_id else registry.all_widgets()
    return [w.to_dict() for w in sorted(widgets, key=lambda w: w.widget_id)]


@router.get("/{widget_id}")
async def get_widget(
    widget_id: str,
    registry: WidgetRegistry = Depends(get_widget_registry),
    _operator: dict[str, Any] = Depends(get_current_operator),
) -> dict[str, Any]:
    widget = registry.get_widget(widget_id)
    if widget is None:
        raise NotFoundError("Widget", widget_id)
    return widget.to_dict()
