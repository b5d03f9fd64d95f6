"""Create stores, plugins, code artifacts, admin navigation and slot configurations.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Stores table
    op.create_table(
        "stores",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_store_status", "stores", ["status"])

    # Plugins table
    op.create_table(
        "plugins",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("version", sa.String(50), nullable=False, server_default="1.0.0"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default="utility"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("creator_id", sa.String(255), nullable=True),
        sa.Column("manifest", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_plugins_slug", "plugins", ["slug"])
    op.create_index("idx_plugin_status", "plugins", ["status"])
    op.create_index("idx_plugin_category", "plugins", ["category"])

    # Plugin code artifacts table
    op.create_table(
        "plugin_code_artifacts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plugin_id", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("natural_key", sa.String(500), nullable=False),
        sa.Column("load_priority", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("event_name", sa.String(255), nullable=True),
        sa.Column("hook_name", sa.String(255), nullable=True),
        sa.Column("controller_name", sa.String(255), nullable=True),
        sa.Column("http_method", sa.String(10), nullable=True),
        sa.Column("route_path", sa.String(500), nullable=True),
        sa.Column("package_name", sa.String(255), nullable=True),
        sa.Column("version", sa.String(50), nullable=True),
        sa.Column("bundled_code", sa.Text(), nullable=True),
        sa.Column("widget_meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["plugin_id"], ["plugins.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plugin_id", "kind", "natural_key", name="uq_artifact_natural_key"),
    )
    op.create_index("idx_artifact_plugin_kind", "plugin_code_artifacts", ["plugin_id", "kind"])
    op.create_index("idx_artifact_event_name", "plugin_code_artifacts", ["event_name"])
    op.create_index("idx_artifact_hook_name", "plugin_code_artifacts", ["hook_name"])

    # Admin navigation registry table
    op.create_table(
        "admin_navigation_registry",
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("route", sa.String(500), nullable=True),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("parent_key", sa.String(255), nullable=True),
        sa.Column("order_position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_core", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("plugin_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["plugin_id"], ["plugins.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("idx_nav_parent_order", "admin_navigation_registry", ["parent_key", "order_position"])
    op.create_index("idx_nav_plugin", "admin_navigation_registry", ["plugin_id"])

    # Slot configurations table
    op.create_table(
        "slot_configurations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("store_id", sa.String(255), nullable=False),
        sa.Column("page_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("has_unpublished_changes", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "page_type", "status", name="uq_slot_configuration_version"),
    )
    op.create_index("idx_slot_configuration_store", "slot_configurations", ["store_id"])


def downgrade() -> None:
    op.drop_index("idx_slot_configuration_store", table_name="slot_configurations")
    op.drop_table("slot_configurations")

    op.drop_index("idx_nav_plugin", table_name="admin_navigation_registry")
    op.drop_index("idx_nav_parent_order", table_name="admin_navigation_registry")
    op.drop_table("admin_navigation_registry")

    op.drop_index("idx_artifact_hook_name", table_name="plugin_code_artifacts")
    op.drop_index("idx_artifact_event_name", table_name="plugin_code_artifacts")
    op.drop_index("idx_artifact_plugin_kind", table_name="plugin_code_artifacts")
    op.drop_table("plugin_code_artifacts")

    op.drop_index("idx_plugin_category", table_name="plugins")
    op.drop_index("idx_plugin_status", table_name="plugins")
    op.drop_index("ix_plugins_slug", table_name="plugins")
    op.drop_table("plugins")

    op.drop_index("idx_store_status", table_name="stores")
    op.drop_table("stores")
