from .composition import (
    CompositionResponse,
    ControllerResultResponse,
    DependencyBundleResponse,
)
from .navigation import NavigationItemCreate, NavigationNode
from .plugin import (
    ArtifactCreate,
    ArtifactResponse,
    ControllerInvokeRequest,
    PluginCreate,
    PluginInstall,
    PluginResponse,
    PluginSlugUpdate,
    PluginStatusUpdate,
)
from .slot import CustomSlotCreate, DraftUpdate, PublishRequest, SlotConfigurationResponse

__all__ = [
    "ArtifactCreate",
    "ArtifactResponse",
    "CompositionResponse",
    "ControllerInvokeRequest",
    "ControllerResultResponse",
    "CustomSlotCreate",
    "DependencyBundleResponse",
    "DraftUpdate",
    "NavigationItemCreate",
    "NavigationNode",
    "PluginCreate",
    "PluginInstall",
    "PluginResponse",
    "PluginSlugUpdate",
    "PluginStatusUpdate",
    "PublishRequest",
    "SlotConfigurationResponse",
]
