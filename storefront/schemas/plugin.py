from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.code_artifact import ArtifactKind
from storefront.models.plugin import PluginStatus
from storefront.schemas.navigation import NavigationItemCreate

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class PluginCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=255, title="Plugin ID", description="Opaque, stable plugin identifier.")
    slug: str = Field(..., max_length=255, pattern=SLUG_PATTERN, title="Slug", description="URL-safe plugin slug.")
    name: str = Field(..., min_length=1, max_length=255, title="Name")
    version: str = Field("1.0.0", max_length=50, title="Version")
    description: Optional[str] = Field(None, title="Description")
    category: str = Field("utility", max_length=50, title="Category")
    status: PluginStatus = Field(PluginStatus.active, title="Initial Status")
    creator_id: Optional[str] = Field(None, max_length=255, title="Creator ID", description="Owner reference.")
    manifest: dict[str, Any] = Field(default_factory=dict, title="Manifest")


class PluginStatusUpdate(BaseModel):
    status: PluginStatus = Field(..., title="Plugin Status")


class PluginSlugUpdate(BaseModel):
    slug: str = Field(..., max_length=255, pattern=SLUG_PATTERN, title="Slug")


class PluginResponse(BaseModel):
    id: str
    slug: str
    name: str
    version: str
    description: Optional[str] = None
    category: str
    status: str
    creator_id: Optional[str] = None
    manifest: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArtifactCreate(BaseModel):
    """
    A code artifact as submitted by a plugin package or the plugin editor.

    Which optional fields are required depends on `kind`; the artifact
    service enforces that before anything is written.
    """

    kind: ArtifactKind = Field(..., title="Artifact Kind")
    file_name: str = Field(..., min_length=1, max_length=500, title="File Name", description="Operator-visible file name.")
    load_priority: int = Field(10, title="Load Priority", description="Ascending execution/load order.")
    content: str = Field("", title="Content", description="Source text or handler body.")
    is_enabled: bool = Field(True, title="Enabled")

    event_name: Optional[str] = Field(None, max_length=255, title="Event Name")
    hook_name: Optional[str] = Field(None, max_length=255, title="Hook Name")

    controller_name: Optional[str] = Field(None, max_length=255, title="Controller Name")
    http_method: Optional[str] = Field(None, max_length=10, title="HTTP Method")
    route_path: Optional[str] = Field(None, max_length=500, title="Route Path")

    package_name: Optional[str] = Field(None, max_length=255, title="Package Name")
    version: Optional[str] = Field(None, max_length=50, title="Package Version")
    bundled_code: Optional[str] = Field(None, title="Bundled Code")

    widget_meta: Optional[dict[str, Any]] = Field(
        None,
        title="Widget Metadata",
        description="{name, displayName, configSchema, defaultConfig, category, dependencies}",
    )

    model_config = ConfigDict(use_enum_values=True)


class ArtifactResponse(BaseModel):
    id: int
    plugin_id: str
    kind: str
    file_name: str
    natural_key: str
    load_priority: int
    content: str
    is_enabled: bool
    event_name: Optional[str] = None
    hook_name: Optional[str] = None
    controller_name: Optional[str] = None
    http_method: Optional[str] = None
    route_path: Optional[str] = None
    package_name: Optional[str] = None
    version: Optional[str] = None
    widget_meta: Optional[dict[str, Any]] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PluginInstall(BaseModel):
    """A complete plugin package: identity, code artifacts and admin navigation."""

    plugin: PluginCreate
    artifacts: list[ArtifactCreate] = Field(default_factory=list)
    navigation: list[NavigationItemCreate] = Field(default_factory=list)


class ControllerInvokeRequest(BaseModel):
    method: str = Field("POST", title="HTTP Method")
    path: str = Field("/", title="Path")
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    params: dict[str, Any] = Field(default_factory=dict)
