"""
Slot configuration schemas.

The slot tree itself is stored as free-form JSON (renderer keys such as
`className` or `styles` pass through untouched), so these models describe
request/response envelopes; structural validation of the tree happens in
slot_configuration_service.validate_tree().
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class DraftUpdate(BaseModel):
    configuration: dict[str, Any] = Field(
        ..., title="Configuration", description='{"slots": {slot_id: node}, "metadata": {...}}'
    )
    expected_updated_at: datetime = Field(
        ...,
        title="Expected Updated At",
        description="The draft's updated_at as last read; the write is rejected if it has changed since.",
    )


class PublishRequest(BaseModel):
    expected_updated_at: Optional[datetime] = Field(
        None, title="Expected Updated At", description="Optional check against the draft's updated_at."
    )


class CustomSlotCreate(BaseModel):
    slot_id: str = Field(..., min_length=1, max_length=255, title="Slot ID")
    type: str = Field("container", max_length=50, title="Slot Type")
    col: int = Field(0, ge=0, title="Column")
    row: int = Field(0, ge=0, title="Row")
    widget_id: Optional[str] = Field(None, title="Widget ID", description="pluginId:widgetName")
    parent_id: Optional[str] = Field(None, title="Parent Slot ID")
    metadata: dict[str, Any] = Field(default_factory=dict, title="Metadata")


class SlotConfigurationResponse(BaseModel):
    id: int
    store_id: str
    page_type: str
    status: str
    configuration: dict[str, Any]
    version_number: int
    has_unpublished_changes: bool
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
