from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from storefront.database import Base
from storefront.utils.timestamps import utcnow


class NavigationItem(Base):
    __tablename__ = "admin_navigation_registry"

    key = Column(String(255), primary_key=True)
    label = Column(String(255), nullable=False)
    route = Column(String(500), nullable=True)
    icon = Column(String(100), nullable=True)
    category = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    # Plain column rather than a FK so dangling parents stay representable
    parent_key = Column(String(255), nullable=True)
    order_position = Column(Integer, nullable=False, default=1)
    is_core = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=True)
    plugin_id = Column(String(255), ForeignKey("plugins.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    plugin = relationship("Plugin", back_populates="navigation_items")

    __table_args__ = (
        Index("idx_nav_parent_order", "parent_key", "order_position"),
        Index("idx_nav_plugin", "plugin_id"),
    )
