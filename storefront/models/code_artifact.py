"""
CodeArtifact model — plugin-supplied code, one table for every artifact kind.

Each row is a tagged variant selected by `kind`. `file_name` is what an
operator sees and may rename freely; the semantic key used for wiring
(`event_name`, `hook_name`, `controller_name`, `package_name`) lives in its own
column and is copied into `natural_key`, the upsert/uniqueness key.
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.database import Base
from storefront.utils.timestamps import utcnow


class ArtifactKind(str, enum.Enum):
    script = "script"
    hook = "hook"
    event = "event"
    controller = "controller"
    admin_page = "admin_page"
    admin_script = "admin_script"
    dependency = "dependency"


# Kinds whose rows may carry widget_meta and become WidgetDefinitions
WIDGET_KINDS = frozenset({ArtifactKind.script.value, ArtifactKind.admin_page.value})


def natural_key_for(
    kind: str,
    file_name: str | None,
    event_name: str | None = None,
    hook_name: str | None = None,
    controller_name: str | None = None,
    package_name: str | None = None,
) -> str | None:
    """Return the semantic key a row of the given kind is identified by."""
    if kind == ArtifactKind.event.value:
        return event_name
    if kind == ArtifactKind.controller.value:
        return controller_name
    if kind == ArtifactKind.dependency.value:
        return package_name
    if kind == ArtifactKind.hook.value and hook_name:
        return hook_name
    return file_name


class CodeArtifact(Base):
    __tablename__ = "plugin_code_artifacts"

    # Autoincrement id doubles as the stable insertion order
    id = Column(Integer, primary_key=True, autoincrement=True)
    plugin_id = Column(String(255), ForeignKey("plugins.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(20), nullable=False)
    file_name = Column(String(500), nullable=False)
    natural_key = Column(String(500), nullable=False)
    load_priority = Column(Integer, nullable=False, default=10)
    content = Column(Text, nullable=False, default="")
    is_enabled = Column(Boolean, nullable=False, default=True)

    # event / hook
    event_name = Column(String(255), nullable=True)
    hook_name = Column(String(255), nullable=True)

    # controller
    controller_name = Column(String(255), nullable=True)
    http_method = Column(String(10), nullable=True)
    route_path = Column(String(500), nullable=True)

    # dependency
    package_name = Column(String(255), nullable=True)
    version = Column(String(50), nullable=True)
    bundled_code = Column(Text, nullable=True)

    # script / admin_page widgets: {name, displayName, configSchema, defaultConfig, category, dependencies}
    widget_meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    plugin = relationship("Plugin", back_populates="artifacts")

    __table_args__ = (
        UniqueConstraint("plugin_id", "kind", "natural_key", name="uq_artifact_natural_key"),
        Index("idx_artifact_plugin_kind", "plugin_id", "kind"),
        Index("idx_artifact_event_name", "event_name"),
        Index("idx_artifact_hook_name", "hook_name"),
    )

    @property
    def is_widget(self) -> bool:
        return self.kind in WIDGET_KINDS and bool(self.widget_meta)
