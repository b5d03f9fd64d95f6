"""
Store model — the tenant boundary.

Every slot configuration belongs to exactly one store. Store ids are opaque
strings supplied by the platform's tenant-resolution layer.
"""

import enum

from sqlalchemy import Column, DateTime, Index, String

from storefront.database import Base
from storefront.utils.timestamps import utcnow


class StoreStatus(str, enum.Enum):
    active = "active"
    suspended = "suspended"


class Store(Base):
    __tablename__ = "stores"

    id = Column(String(255), primary_key=True)
    slug = Column(String(100), nullable=False, unique=True)  # URL-safe, e.g. "acme"
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default=StoreStatus.active.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_store_status", "status"),)
