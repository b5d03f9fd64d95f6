from .code_artifact import ArtifactKind, CodeArtifact
from .navigation import NavigationItem
from .plugin import Plugin, PluginStatus
from .slot_configuration import ConfigurationStatus, SlotConfiguration
from .store import Store, StoreStatus

__all__ = [
    "ArtifactKind",
    "CodeArtifact",
    "NavigationItem",
    "Plugin",
    "PluginStatus",
    "ConfigurationStatus",
    "SlotConfiguration",
    "Store",
    "StoreStatus",
]
