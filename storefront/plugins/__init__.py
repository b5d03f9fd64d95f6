"""
Storefront Plugin Runtime

Public API for the plugin system:
    WidgetDefinition   — renderable widget derived from stored artifacts
    WidgetRegistry     — in-memory widget catalog with atomic swaps
    ControllerSandbox  — compiles and runs stored plugin code
"""

from .base import WidgetDefinition, is_qualified_id, make_widget_id, split_qualified_id
from .registry import WidgetRegistry
from .sandbox import ControllerRequest, ControllerResponse, ControllerResult, ControllerSandbox

__all__ = [
    "ControllerRequest",
    "ControllerResponse",
    "ControllerResult",
    "ControllerSandbox",
    "WidgetDefinition",
    "WidgetRegistry",
    "is_qualified_id",
    "make_widget_id",
    "split_qualified_id",
]
