"""
FastAPI dependencies for the process-wide runtime services.

The widget registry, sandbox and resolver are created once in the
application lifespan and kept on app.state; routes receive them through
these functions so tests can install their own instances.
"""

from fastapi import Request

from storefront.plugins.registry import WidgetRegistry
from storefront.plugins.sandbox import ControllerSandbox
from storefront.services.composition_service import CompositionResolver


def get_widget_registry(request: Request) -> WidgetRegistry:
    return request.app.state.widget_registry


def get_sandbox(request: Request) -> ControllerSandbox:
    return request.app.state.sandbox


def get_resolver(request: Request) -> CompositionResolver:
    return request.app.state.resolver
