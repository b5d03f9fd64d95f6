from typing import Any, Optional

from pydantic import BaseModel, Field


class DependencyBundleResponse(BaseModel):
    plugin_id: str
    package_name: str
    version: Optional[str] = None
    bundled_code: Optional[str] = None


class CompositionResponse(BaseModel):
    store_id: str
    page_type: str
    viewport: str
    version: str
    fallback: bool = False
    tree: list[dict[str, Any]] = Field(default_factory=list)
    dependencies: list[DependencyBundleResponse] = Field(default_factory=list)
    placeholders: list[str] = Field(default_factory=list)


class ControllerResultResponse(BaseModel):
    plugin_id: str
    controller_name: str
    ok: bool
    status_code: int
    body: Any = None
    error: Optional[dict[str, Any]] = None
