"""
Code Artifact Service

Normalized storage for plugin code: scripts, hooks, events, controllers,
admin pages/scripts and bundled dependencies, one row per artifact.

Artifacts are upserted by (plugin_id, kind, natural_key). The natural key is
the semantic identifier of the kind (event name, hook name, controller name,
package name) or the file name for kinds that have none, so renaming the file
of an event handler never breaks its wiring.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.exceptions import ConstraintViolationError, NotFoundError, ValidationError
from storefront.models.code_artifact import WIDGET_KINDS, ArtifactKind, CodeArtifact, natural_key_for
from storefront.models.plugin import Plugin, PluginStatus
from storefront.schemas.plugin import ArtifactCreate
from storefront.utils.timestamps import next_timestamp

logger = logging.getLogger(__name__)

# Columns copied verbatim from ArtifactCreate onto the row
_WRITABLE_FIELDS = (
    "file_name",
    "load_priority",
    "content",
    "is_enabled",
    "event_name",
    "hook_name",
    "controller_name",
    "http_method",
    "route_path",
    "package_name",
    "version",
    "bundled_code",
    "widget_meta",
)


def _validate_artifact(data: ArtifactCreate) -> str:
    """Check kind-specific required fields and return the artifact's natural key."""
    kind = ArtifactKind(data.kind).value

    if kind == ArtifactKind.event.value and not data.event_name:
        raise ValidationError("Event artifacts require an event_name", field="event_name")
    if kind == ArtifactKind.controller.value and not data.controller_name:
        raise ValidationError("Controller artifacts require a controller_name", field="controller_name")
    if kind == ArtifactKind.dependency.value and not data.package_name:
        raise ValidationError("Dependency artifacts require a package_name", field="package_name")
    if data.widget_meta is not None and kind not in WIDGET_KINDS:
        raise ValidationError(
            f"widget_meta is only allowed on {sorted(WIDGET_KINDS)} artifacts, not {kind}",
            field="widget_meta",
        )
    if data.controller_name and ":" in data.controller_name:
        raise ValidationError("Controller names must not contain ':'", field="controller_name")

    return natural_key_for(
        kind,
        data.file_name,
        event_name=data.event_name,
        hook_name=data.hook_name,
        controller_name=data.controller_name,
        package_name=data.package_name,
    )


async def _find(db: AsyncSession, plugin_id: str, kind: str, natural_key: str) -> CodeArtifact | None:
    result = await db.execute(
        select(CodeArtifact).where(
            CodeArtifact.plugin_id == plugin_id,
            CodeArtifact.kind == kind,
            CodeArtifact.natural_key == natural_key,
        )
    )
    return result.scalars().first()


async def stage_artifact(
    db: AsyncSession,
    plugin_id: str,
    data: ArtifactCreate,
    replace: bool = False,
) -> CodeArtifact:
    """
    Insert or update an artifact without committing.

    Used directly by plugin installation so that a whole package lands in
    one transaction; put_artifact() wraps it with a commit.

    Raises:
        ValidationError: kind-specific required fields are missing.
        ConstraintViolationError: the plugin does not exist, or a dependency
            with a different version is already stored and replace is False.
    """
    natural_key = _validate_artifact(data)
    kind = ArtifactKind(data.kind).value

    if await db.get(Plugin, plugin_id) is None:
        raise ConstraintViolationError(
            f"Cannot store artifact for unknown plugin '{plugin_id}'",
            details={"plugin_id": plugin_id, "kind": kind, "natural_key": natural_key},
        )

    existing = await _find(db, plugin_id, kind, natural_key)
    if existing is None:
        artifact = CodeArtifact(plugin_id=plugin_id, kind=kind, natural_key=natural_key)
        for field in _WRITABLE_FIELDS:
            setattr(artifact, field, getattr(data, field))
        artifact.updated_at = next_timestamp(None)
        artifact.created_at = artifact.updated_at
        db.add(artifact)
        await db.flush()
        return artifact

    if (
        kind == ArtifactKind.dependency.value
        and not replace
        and (existing.version or None) != (data.version or None)
    ):
        raise ConstraintViolationError(
            f"Dependency '{natural_key}' is already bundled at version {existing.version}",
            details={
                "plugin_id": plugin_id,
                "package_name": natural_key,
                "existing_version": existing.version,
                "requested_version": data.version,
            },
        )

    for field in _WRITABLE_FIELDS:
        setattr(existing, field, getattr(data, field))
    existing.updated_at = next_timestamp(existing.updated_at)
    await db.flush()
    return existing


async def put_artifact(
    db: AsyncSession,
    plugin_id: str,
    data: ArtifactCreate,
    replace: bool = False,
) -> CodeArtifact:
    """Upsert one artifact by (plugin_id, kind, natural_key) and commit."""
    try:
        artifact = await stage_artifact(db, plugin_id, data, replace=replace)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConstraintViolationError(
            "Artifact write violated a database constraint",
            details={"plugin_id": plugin_id, "reason": str(e.orig)},
        ) from e
    except Exception:
        await db.rollback()
        raise
    await db.refresh(artifact)
    logger.info(
        "Artifact stored: plugin=%s kind=%s key=%s id=%d",
        plugin_id,
        artifact.kind,
        artifact.natural_key,
        artifact.id,
    )
    return artifact


async def list_by_plugin(db: AsyncSession, plugin_id: str, kind: str | None = None) -> list[CodeArtifact]:
    """Return a plugin's artifacts in load order (load_priority, then insertion order)."""
    query = select(CodeArtifact).where(CodeArtifact.plugin_id == plugin_id)
    if kind is not None:
        query = query.where(CodeArtifact.kind == ArtifactKind(kind).value)
    query = query.order_by(CodeArtifact.load_priority.asc(), CodeArtifact.id.asc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def delete_by_plugin(db: AsyncSession, plugin_id: str) -> int:
    """Delete every artifact of a plugin; returns the number of rows removed."""
    result = await db.execute(delete(CodeArtifact).where(CodeArtifact.plugin_id == plugin_id))
    await db.commit()
    logger.info("Deleted %d artifact(s) of plugin %s", result.rowcount, plugin_id)
    return result.rowcount


async def delete_artifact(db: AsyncSession, plugin_id: str, kind: str, natural_key: str) -> None:
    """Delete a single artifact by its natural key."""
    artifact = await _find(db, plugin_id, ArtifactKind(kind).value, natural_key)
    if artifact is None:
        raise NotFoundError("CodeArtifact", f"{plugin_id}/{kind}/{natural_key}")
    await db.delete(artifact)
    await db.commit()
    logger.info("Artifact deleted: plugin=%s kind=%s key=%s", plugin_id, kind, natural_key)


async def get_controller(db: AsyncSession, plugin_id: str, controller_name: str) -> CodeArtifact | None:
    """Return the enabled controller artifact with that name, or None."""
    result = await db.execute(
        select(CodeArtifact).where(
            CodeArtifact.plugin_id == plugin_id,
            CodeArtifact.kind == ArtifactKind.controller.value,
            CodeArtifact.natural_key == controller_name,
            CodeArtifact.is_enabled.is_(True),
        )
    )
    return result.scalars().first()


async def list_dependencies(db: AsyncSession, plugin_id: str) -> list[CodeArtifact]:
    """Return the enabled dependency bundles of a plugin in load order."""
    artifacts = await list_by_plugin(db, plugin_id, kind=ArtifactKind.dependency.value)
    return [a for a in artifacts if a.is_enabled]


async def list_widget_artifacts(db: AsyncSession, plugin_ids: list[str] | None = None) -> list[CodeArtifact]:
    """
    Return enabled widget-tagged artifacts of active plugins.

    When `plugin_ids` is given only those plugins are considered.
    """
    query = (
        select(CodeArtifact)
        .join(Plugin, Plugin.id == CodeArtifact.plugin_id)
        .where(
            Plugin.status == PluginStatus.active.value,
            CodeArtifact.kind.in_(WIDGET_KINDS),
            CodeArtifact.is_enabled.is_(True),
        )
        .order_by(CodeArtifact.plugin_id, CodeArtifact.load_priority.asc(), CodeArtifact.id.asc())
    )
    if plugin_ids is not None:
        query = query.where(CodeArtifact.plugin_id.in_(plugin_ids))
    result = await db.execute(query)
    # widget_meta may be JSON null rather than SQL NULL, so filter here
    return [a for a in result.scalars().all() if a.is_widget]


async def list_handlers(db: AsyncSession, kind: str, name: str) -> list[CodeArtifact]:
    """Return enabled event/hook artifacts of active plugins for one name, in execution order."""
    kind = ArtifactKind(kind).value
    name_column = CodeArtifact.event_name if kind == ArtifactKind.event.value else CodeArtifact.hook_name
    result = await db.execute(
        select(CodeArtifact)
        .join(Plugin, Plugin.id == CodeArtifact.plugin_id)
        .where(
            Plugin.status == PluginStatus.active.value,
            CodeArtifact.kind == kind,
            name_column == name,
            CodeArtifact.is_enabled.is_(True),
        )
        .order_by(CodeArtifact.load_priority.asc(), CodeArtifact.id.asc())
    )
    return list(result.scalars().all())
