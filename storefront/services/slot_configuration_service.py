"""
Slot Configuration Service

Versioned page layouts per (store, page type). Each pair has at most one
draft row, which the editor mutates, and one published row, which the live
storefront renders:

    no config -> draft -> published <-> draft (new edits)

Writes use optimistic concurrency: a draft write names the `updated_at` it
was based on and is applied with a conditional UPDATE, so of two editors
starting from the same version exactly one wins and the other gets a
StaleWriteError and must reload.
"""

import copy
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.constants.slot_templates import get_default_template
from storefront.exceptions import (
    NotFoundError,
    ProtectedSlotError,
    SlotNotFoundError,
    StaleWriteError,
    StoreNotFoundError,
    ValidationError,
)
from storefront.models.slot_configuration import ConfigurationStatus, SlotConfiguration
from storefront.models.store import Store
from storefront.plugins.base import is_qualified_id
from storefront.schemas.slot import CustomSlotCreate
from storefront.utils.timestamps import next_timestamp, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

DRAFT = ConfigurationStatus.draft.value
PUBLISHED = ConfigurationStatus.published.value


# ── Validation ────────────────────────────────────────────────────────────────


def _is_non_negative_int(value: Any) -> bool:
    # bool is an int subclass; True must not pass as column 1
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _validate_position(slot_id: str, position: Any, field: str) -> None:
    if not isinstance(position, dict):
        raise ValidationError(f"Slot '{slot_id}' has no valid {field}", slot_id=slot_id, field=field)
    for axis in ("col", "row"):
        if not _is_non_negative_int(position.get(axis)):
            raise ValidationError(
                f"Slot '{slot_id}' {field}.{axis} must be a non-negative integer",
                slot_id=slot_id,
                field=f"{field}.{axis}",
            )


def _validate_reference(slot_id: str, node: dict, key: str, field: str) -> None:
    value = node.get(key)
    if value is not None and not is_qualified_id(value):
        raise ValidationError(
            f"Slot '{slot_id}' {key} {value!r} is not of the form pluginId:name",
            slot_id=slot_id,
            field=field,
        )


def validate_node(slot_id: str, node: Any) -> None:
    if not isinstance(node, dict):
        raise ValidationError(f"Slot '{slot_id}' must be an object", slot_id=slot_id)
    if node.get("id") != slot_id:
        raise ValidationError(
            f"Slot id {node.get('id')!r} does not match its key '{slot_id}'", slot_id=slot_id, field="id"
        )
    if not isinstance(node.get("type"), str) or not node["type"]:
        raise ValidationError(f"Slot '{slot_id}' has no type", slot_id=slot_id, field="type")

    _validate_position(slot_id, node.get("position"), "position")
    _validate_reference(slot_id, node, "widgetId", "widgetId")
    _validate_reference(slot_id, node, "controllerId", "controllerId")

    if not isinstance(node.get("isCustom", False), bool):
        raise ValidationError(f"Slot '{slot_id}' isCustom must be a boolean", slot_id=slot_id, field="isCustom")
    if not isinstance(node.get("metadata", {}), dict):
        raise ValidationError(f"Slot '{slot_id}' metadata must be an object", slot_id=slot_id, field="metadata")

    viewports = node.get("viewports")
    if viewports is None:
        return
    if not isinstance(viewports, dict):
        raise ValidationError(f"Slot '{slot_id}' viewports must be an object", slot_id=slot_id, field="viewports")
    for viewport, override in viewports.items():
        field = f"viewports.{viewport}"
        if not isinstance(override, dict):
            raise ValidationError(f"Slot '{slot_id}' {field} must be an object", slot_id=slot_id, field=field)
        if "position" in override:
            _validate_position(slot_id, override["position"], f"{field}.position")
        _validate_reference(slot_id, override, "widgetId", f"{field}.widgetId")
        if not isinstance(override.get("hidden", False), bool):
            raise ValidationError(
                f"Slot '{slot_id}' {field}.hidden must be a boolean", slot_id=slot_id, field=f"{field}.hidden"
            )
        if not isinstance(override.get("metadata", {}), dict):
            raise ValidationError(
                f"Slot '{slot_id}' {field}.metadata must be an object", slot_id=slot_id, field=f"{field}.metadata"
            )


def validate_tree(configuration: Any) -> None:
    """
    Check a slot configuration before it is persisted.

    Enforces a `slots` mapping whose node ids match their keys (so no id
    repeats), non-negative integer positions (also inside viewport
    overrides), well-formed `pluginId:name` widget and controller
    references, and `parentId` links that point at an existing slot without
    forming a cycle. Widget references are checked for shape only; they may
    name widgets that are not deployed yet.

    Raises:
        ValidationError: carrying the offending slot id where there is one.
    """
    if not isinstance(configuration, dict):
        raise ValidationError("Configuration must be an object")
    slots = configuration.get("slots")
    if not isinstance(slots, dict):
        raise ValidationError("Configuration must contain a 'slots' object", field="slots")
    if not isinstance(configuration.get("metadata", {}), dict):
        raise ValidationError("Configuration metadata must be an object", field="metadata")

    for slot_id, node in slots.items():
        validate_node(slot_id, node)

    for slot_id, node in slots.items():
        parent_id = node.get("parentId")
        if parent_id is None:
            continue
        if parent_id not in slots:
            raise ValidationError(
                f"Slot '{slot_id}' references missing parent '{parent_id}'", slot_id=slot_id, field="parentId"
            )
        seen = {slot_id}
        while parent_id is not None and parent_id in slots:
            if parent_id in seen:
                raise ValidationError(
                    f"Slot '{slot_id}' is part of a parent cycle", slot_id=slot_id, field="parentId"
                )
            seen.add(parent_id)
            parent_id = slots[parent_id].get("parentId")


# ── Reads ─────────────────────────────────────────────────────────────────────


async def get_version(db: AsyncSession, store_id: str, page_type: str, status: str) -> SlotConfiguration | None:
    result = await db.execute(
        select(SlotConfiguration).where(
            SlotConfiguration.store_id == store_id,
            SlotConfiguration.page_type == page_type,
            SlotConfiguration.status == status,
        )
    )
    return result.scalars().first()


async def get_published(db: AsyncSession, store_id: str, page_type: str) -> SlotConfiguration | None:
    """Return the published configuration, or None if the page was never published."""
    return await get_version(db, store_id, page_type, PUBLISHED)


async def get_draft(db: AsyncSession, store_id: str, page_type: str) -> SlotConfiguration:
    """
    Return the draft, creating it on first access.

    A new draft starts from the published layout when there is one and from
    the page type's default template otherwise, and is persisted before this
    returns so every caller converges on the same row. If another request
    inserts the draft concurrently, its row is returned instead.
    """
    draft = await get_version(db, store_id, page_type, DRAFT)
    if draft is not None:
        return draft

    if await db.get(Store, store_id) is None:
        raise StoreNotFoundError(store_id)

    published = await get_published(db, store_id, page_type)
    if published is not None:
        configuration = copy.deepcopy(published.configuration)
        version_number = published.version_number
    else:
        configuration = get_default_template(page_type)
        version_number = 1

    now = utcnow()
    draft = SlotConfiguration(
        store_id=store_id,
        page_type=page_type,
        status=DRAFT,
        configuration=configuration,
        version_number=version_number,
        has_unpublished_changes=False,
        created_at=now,
        updated_at=now,
    )
    db.add(draft)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Draft for store=%s page=%s was created concurrently; re-reading", store_id, page_type)
        draft = await get_version(db, store_id, page_type, DRAFT)
        if draft is None:
            raise
        return draft

    await db.refresh(draft)
    logger.info(
        "Draft seeded: store=%s page=%s from=%s",
        store_id,
        page_type,
        "published" if published is not None else "template",
    )
    return draft


async def list_configurations(db: AsyncSession, store_id: str) -> list[SlotConfiguration]:
    result = await db.execute(
        select(SlotConfiguration)
        .where(SlotConfiguration.store_id == store_id)
        .order_by(SlotConfiguration.page_type, SlotConfiguration.status)
    )
    return list(result.scalars().all())


# ── Writes ────────────────────────────────────────────────────────────────────


async def _write_draft(
    db: AsyncSession,
    draft: SlotConfiguration,
    expected_updated_at: datetime,
    configuration: dict[str, Any],
    has_unpublished_changes: bool = True,
) -> SlotConfiguration:
    """Compare-and-set the draft's configuration against `expected_updated_at`."""
    new_updated_at = next_timestamp(max(expected_updated_at, draft.updated_at))
    result = await db.execute(
        update(SlotConfiguration)
        .where(
            SlotConfiguration.id == draft.id,
            SlotConfiguration.updated_at == expected_updated_at,
        )
        .values(
            configuration=configuration,
            updated_at=new_updated_at,
            version_number=SlotConfiguration.version_number + 1,
            has_unpublished_changes=has_unpublished_changes,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(draft)
        raise StaleWriteError("Slot configuration draft", expected_updated_at, draft.updated_at)

    await db.commit()
    await db.refresh(draft)
    return draft


async def save_draft(
    db: AsyncSession,
    store_id: str,
    page_type: str,
    configuration: dict[str, Any],
    expected_updated_at: datetime,
) -> SlotConfiguration:
    """
    Replace the draft's slot tree.

    The tree is validated before anything is written; the write only
    succeeds if the draft still carries `expected_updated_at`.

    Raises:
        ValidationError: the tree is malformed.
        StaleWriteError: the draft changed since `expected_updated_at`.
    """
    validate_tree(configuration)
    draft = await get_draft(db, store_id, page_type)
    expected = to_naive_utc(expected_updated_at)
    draft = await _write_draft(db, draft, expected, copy.deepcopy(configuration))
    logger.info(
        "Draft saved: store=%s page=%s version=%d slots=%d",
        store_id,
        page_type,
        draft.version_number,
        len(configuration["slots"]),
    )
    return draft


async def publish(
    db: AsyncSession,
    store_id: str,
    page_type: str,
    expected_updated_at: datetime | None = None,
) -> SlotConfiguration:
    """
    Copy the draft verbatim into the published row in one transaction.

    The draft is kept and further edits continue from it; only its
    `has_unpublished_changes` flag is cleared. When `expected_updated_at` is
    given, the draft must still carry it.

    Raises:
        NotFoundError: there is no draft to publish.
        StaleWriteError: the draft changed while publishing.
    """
    draft = await get_version(db, store_id, page_type, DRAFT)
    if draft is None:
        raise NotFoundError("SlotConfiguration draft", f"{store_id}/{page_type}")
    read_updated_at = draft.updated_at
    if expected_updated_at is not None and to_naive_utc(expected_updated_at) != read_updated_at:
        raise StaleWriteError("Slot configuration draft", expected_updated_at, read_updated_at)

    validate_tree(draft.configuration)
    configuration = copy.deepcopy(draft.configuration)

    published = await get_published(db, store_id, page_type)
    now = next_timestamp(published.updated_at if published is not None else None)
    if published is None:
        published = SlotConfiguration(
            store_id=store_id,
            page_type=page_type,
            status=PUBLISHED,
            created_at=now,
        )
        db.add(published)
    published.configuration = configuration
    published.version_number = draft.version_number
    published.has_unpublished_changes = False
    published.published_at = now
    published.updated_at = now

    try:
        await db.flush()
        # Only publish what was read: the draft must not have moved meanwhile
        result = await db.execute(
            update(SlotConfiguration)
            .where(SlotConfiguration.id == draft.id, SlotConfiguration.updated_at == read_updated_at)
            .values(has_unpublished_changes=False, published_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleWriteError("Slot configuration draft", read_updated_at)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise StaleWriteError("Slot configuration published", read_updated_at) from e
    except Exception:
        await db.rollback()
        raise

    await db.refresh(published)
    await db.refresh(draft)
    logger.info("Published: store=%s page=%s version=%d", store_id, page_type, published.version_number)
    return published


async def reset_draft_to_published(db: AsyncSession, store_id: str, page_type: str) -> SlotConfiguration:
    """Discard unpublished edits by copying the published layout back over the draft."""
    published = await get_published(db, store_id, page_type)
    if published is None:
        raise NotFoundError("SlotConfiguration published", f"{store_id}/{page_type}")
    draft = await get_draft(db, store_id, page_type)
    draft = await _write_draft(
        db,
        draft,
        draft.updated_at,
        copy.deepcopy(published.configuration),
        has_unpublished_changes=False,
    )
    logger.info("Draft reset to published: store=%s page=%s", store_id, page_type)
    return draft


async def _edit_slots(db: AsyncSession, store_id: str, page_type: str, edit) -> SlotConfiguration:
    """Apply `edit(configuration)` to a copy of the draft and write it back."""
    draft = await get_draft(db, store_id, page_type)
    configuration = copy.deepcopy(draft.configuration)
    if not isinstance(configuration, dict) or not isinstance(configuration.get("slots"), dict):
        raise ValidationError("Stored draft is not a valid slot configuration", field="slots")
    edit(configuration)
    validate_tree(configuration)
    return await _write_draft(db, draft, draft.updated_at, configuration)


async def mark_custom(db: AsyncSession, store_id: str, page_type: str, slot_id: str) -> SlotConfiguration:
    """Flag a slot as operator-created, which makes it deletable."""

    def edit(configuration):
        node = configuration["slots"].get(slot_id)
        if node is None:
            raise SlotNotFoundError(slot_id)
        node["isCustom"] = True

    draft = await _edit_slots(db, store_id, page_type, edit)
    logger.info("Slot marked custom: store=%s page=%s slot=%s", store_id, page_type, slot_id)
    return draft


async def delete_slot(db: AsyncSession, store_id: str, page_type: str, slot_id: str) -> SlotConfiguration:
    """
    Remove a slot from the draft.

    Only slots with `isCustom=true` may be removed. Children of the removed
    slot move up to its parent.

    Raises:
        SlotNotFoundError: the draft has no such slot.
        ProtectedSlotError: the slot is platform-owned.
    """

    def edit(configuration):
        slots = configuration["slots"]
        node = slots.get(slot_id)
        if node is None:
            raise SlotNotFoundError(slot_id)
        if node.get("isCustom") is not True:
            raise ProtectedSlotError(slot_id)
        del slots[slot_id]
        for child in slots.values():
            if isinstance(child, dict) and child.get("parentId") == slot_id:
                child["parentId"] = node.get("parentId")

    draft = await _edit_slots(db, store_id, page_type, edit)
    logger.info("Slot deleted: store=%s page=%s slot=%s", store_id, page_type, slot_id)
    return draft


async def add_custom_slot(
    db: AsyncSession, store_id: str, page_type: str, data: CustomSlotCreate
) -> SlotConfiguration:
    """Add an operator-created slot (isCustom=true) to the draft."""

    def edit(configuration):
        slots = configuration["slots"]
        if data.slot_id in slots:
            raise ValidationError(f"Slot '{data.slot_id}' already exists", slot_id=data.slot_id, field="id")
        node = {
            "id": data.slot_id,
            "type": data.type,
            "position": {"col": data.col, "row": data.row},
            "parentId": data.parent_id,
            "isCustom": True,
            "metadata": dict(data.metadata),
        }
        if data.widget_id is not None:
            node["widgetId"] = data.widget_id
        slots[data.slot_id] = node

    draft = await _edit_slots(db, store_id, page_type, edit)
    logger.info("Custom slot added: store=%s page=%s slot=%s", store_id, page_type, data.slot_id)
    return draft
