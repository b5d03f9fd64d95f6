from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NavigationItemCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=255, title="Key", description="Unique navigation key.")
    label: str = Field(..., min_length=1, max_length=255, title="Label")
    route: Optional[str] = Field(None, max_length=500, title="Route")
    icon: Optional[str] = Field(None, max_length=100, title="Icon")
    category: Optional[str] = Field(None, max_length=50, title="Category")
    description: Optional[str] = Field(None, title="Description")
    parent_key: Optional[str] = Field(None, max_length=255, title="Parent Key")
    order_position: Optional[int] = Field(
        None, title="Order Position", description="Omit to append after the last sibling."
    )
    is_core: bool = Field(False, title="Core Item")
    is_visible: bool = Field(True, title="Visible")
    plugin_id: Optional[str] = Field(None, max_length=255, title="Owning Plugin")


class NavigationNode(BaseModel):
    key: str
    label: str
    route: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    parent_key: Optional[str] = None
    order_position: int
    is_core: bool
    is_visible: bool
    plugin_id: Optional[str] = None
    orphaned: bool = False
    children: list[NavigationNode] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
