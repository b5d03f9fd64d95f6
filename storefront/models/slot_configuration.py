"""
SlotConfiguration model — a page layout per (store, page type), kept in two
rows: the editable draft and the published copy the storefront renders.

`configuration` holds `{"slots": {slot_id: node}, "metadata": {...}}`.
`updated_at` is the optimistic concurrency token for writes.
"""

import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from storefront.database import Base
from storefront.utils.timestamps import utcnow


class ConfigurationStatus(str, enum.Enum):
    draft = "draft"
    published = "published"


class SlotConfiguration(Base):
    __tablename__ = "slot_configurations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # References the store only; plugin removal never touches this table
    store_id = Column(String(255), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    page_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    configuration = Column(JSON, nullable=False)
    version_number = Column(Integer, nullable=False, default=1)
    has_unpublished_changes = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "page_type", "status", name="uq_slot_configuration_version"),
        Index("idx_slot_configuration_store", "store_id"),
    )
