"""
Plugin model — identity and metadata of an installed plugin.

Plugins are soft-disabled (status change) rather than deleted while anything
still depends on them; a hard delete cascades to their code artifacts and
navigation entries.
"""

import enum

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.orm import relationship

from storefront.database import Base
from storefront.utils.timestamps import utcnow


class PluginStatus(str, enum.Enum):
    active = "active"
    disabled = "disabled"
    pending = "pending"


class Plugin(Base):
    __tablename__ = "plugins"

    # Opaque identifier: historically a mix of UUIDs and free-form strings
    id = Column(String(255), primary_key=True)
    slug = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    version = Column(String(50), nullable=False, default="1.0.0")
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default="utility")
    status = Column(String(20), nullable=False, default=PluginStatus.pending.value)
    creator_id = Column(String(255), nullable=True)
    manifest = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    artifacts = relationship(
        "CodeArtifact",
        back_populates="plugin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    navigation_items = relationship(
        "NavigationItem",
        back_populates="plugin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_plugin_status", "status"),
        Index("idx_plugin_category", "category"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == PluginStatus.active.value
