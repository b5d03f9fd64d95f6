"""
Navigation Service

Registry of admin navigation entries: the platform's core items plus entries
contributed by plugins. Items form a tree through `parent_key`; the parent is
not a foreign key, so entries whose parent disappeared are still listed (at
the top level, flagged as orphaned) instead of vanishing.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.exceptions import ConstraintViolationError, NotFoundError, ProtectedItemError
from storefront.models.navigation import NavigationItem
from storefront.models.plugin import Plugin, PluginStatus
from storefront.schemas.navigation import NavigationItemCreate
from storefront.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

CORE_NAVIGATION: list[dict] = [
    {"key": "dashboard", "label": "Dashboard", "route": "/admin", "icon": "home", "category": "main"},
    {"key": "products", "label": "Products", "route": "/admin/products", "icon": "package", "category": "catalog"},
    {"key": "orders", "label": "Orders", "route": "/admin/orders", "icon": "shopping-cart", "category": "sales"},
    {"key": "customers", "label": "Customers", "route": "/admin/customers", "icon": "users", "category": "sales"},
    {"key": "analytics", "label": "Analytics", "route": "/admin/analytics", "icon": "bar-chart", "category": "main"},
    {"key": "plugins", "label": "Plugins", "route": "/admin/plugins", "icon": "puzzle", "category": "system"},
    {"key": "settings", "label": "Settings", "route": "/admin/settings", "icon": "settings", "category": "system"},
]


async def _next_order_position(db: AsyncSession, parent_key: str | None) -> int:
    if parent_key is None:
        scope = NavigationItem.parent_key.is_(None)
    else:
        scope = NavigationItem.parent_key == parent_key
    result = await db.execute(select(func.max(NavigationItem.order_position)).where(scope))
    current = result.scalar()
    return 1 if current is None else current + 1


async def stage_item(db: AsyncSession, item: NavigationItemCreate) -> NavigationItem:
    """
    Insert or update one item by key without committing.

    Raises:
        ProtectedItemError: a core item would lose its core flag or gain a
            plugin owner.
        ConstraintViolationError: the key belongs to a different plugin.
    """
    existing = await db.get(NavigationItem, item.key)
    if existing is not None and existing.is_core and (not item.is_core or item.plugin_id is not None):
        raise ProtectedItemError(item.key, action="taken over")
    if existing is not None and existing.plugin_id is not None and existing.plugin_id != item.plugin_id:
        raise ConstraintViolationError(
            f"Navigation item '{item.key}' belongs to plugin '{existing.plugin_id}'",
            details={"key": item.key, "plugin_id": existing.plugin_id},
        )
    if existing is None:
        order_position = item.order_position
        if order_position is None:
            order_position = await _next_order_position(db, item.parent_key)
        now = utcnow()
        existing = NavigationItem(key=item.key, order_position=order_position, created_at=now, updated_at=now)
        db.add(existing)
    elif item.order_position is not None:
        existing.order_position = item.order_position
    elif existing.parent_key != item.parent_key:
        existing.order_position = await _next_order_position(db, item.parent_key)

    existing.label = item.label
    existing.route = item.route
    existing.icon = item.icon
    existing.category = item.category
    existing.description = item.description
    existing.parent_key = item.parent_key
    existing.is_core = item.is_core
    existing.is_visible = item.is_visible
    existing.plugin_id = item.plugin_id
    await db.flush()
    return existing


async def upsert_item(db: AsyncSession, item: NavigationItemCreate) -> NavigationItem:
    """
    Create or update a navigation item, keyed by `key`.

    When `order_position` is omitted a new item is appended after its last
    sibling. An existing item keeps the position it already has unless it
    moves to another parent, where it is appended after its new siblings.
    """
    navigation_item = await stage_item(db, item)
    await db.commit()
    await db.refresh(navigation_item)
    logger.info("Navigation item upserted: key=%s parent=%s", item.key, item.parent_key)
    return navigation_item


def _as_node(item: NavigationItem, orphaned: bool = False) -> dict:
    return {
        "key": item.key,
        "label": item.label,
        "route": item.route,
        "icon": item.icon,
        "category": item.category,
        "description": item.description,
        "parent_key": item.parent_key,
        "order_position": item.order_position,
        "is_core": item.is_core,
        "is_visible": item.is_visible,
        "plugin_id": item.plugin_id,
        "orphaned": orphaned,
        "children": [],
    }


def _sort_key(item: NavigationItem) -> tuple:
    return (item.order_position, item.key)


async def list_tree(db: AsyncSession, include_hidden: bool = False) -> list[dict]:
    """
    Return the navigation tree.

    Siblings are ordered by (order_position, key). Items owned by a plugin
    that is not active are left out, as are hidden items unless
    `include_hidden` is set; children of a left-out item are left out too.
    An item whose parent does not exist is returned at the top level with
    `orphaned=True`.
    """
    result = await db.execute(
        select(NavigationItem, Plugin.status).outerjoin(Plugin, Plugin.id == NavigationItem.plugin_id)
    )
    rows = result.all()
    all_keys = {item.key for item, _ in rows}

    included: dict[str, NavigationItem] = {}
    for item, plugin_status in rows:
        if item.plugin_id is not None and plugin_status != PluginStatus.active.value:
            continue
        if not item.is_visible and not include_hidden:
            continue
        included[item.key] = item

    children: dict[str | None, list[NavigationItem]] = {}
    roots: list[tuple[NavigationItem, bool]] = []
    for item in included.values():
        if item.parent_key is None:
            roots.append((item, False))
        elif item.parent_key not in all_keys:
            logger.warning("Navigation item %s references missing parent %s", item.key, item.parent_key)
            roots.append((item, True))
        else:
            children.setdefault(item.parent_key, []).append(item)

    placed: set[str] = set()

    def build(item: NavigationItem, orphaned: bool) -> dict:
        placed.add(item.key)
        node = _as_node(item, orphaned=orphaned)
        for child in sorted(children.get(item.key, []), key=_sort_key):
            if child.key not in placed:
                node["children"].append(build(child, False))
        return node

    tree = [build(item, orphaned) for item, orphaned in sorted(roots, key=lambda r: _sort_key(r[0]))]

    # Items in a parent cycle are unreachable from any root
    stranded = [
        item
        for item in included.values()
        if item.key not in placed and item.parent_key in included
    ]
    for item in sorted(stranded, key=_sort_key):
        if item.key in placed:
            continue
        logger.warning("Navigation item %s is part of a parent cycle", item.key)
        tree.append(build(item, True))

    return tree


async def remove_item(db: AsyncSession, key: str) -> None:
    """
    Delete a navigation item.

    Raises:
        NotFoundError: no item has this key.
        ProtectedItemError: the item is a core platform entry.
    """
    item = await db.get(NavigationItem, key)
    if item is None:
        raise NotFoundError("NavigationItem", key)
    if item.is_core:
        raise ProtectedItemError(key)
    await db.delete(item)
    await db.commit()
    logger.info("Navigation item removed: key=%s", key)


async def seed_core_navigation(db: AsyncSession) -> int:
    """Insert missing core navigation items; returns how many were created."""
    result = await db.execute(
        select(NavigationItem.key).where(NavigationItem.key.in_([entry["key"] for entry in CORE_NAVIGATION]))
    )
    present = set(result.scalars().all())
    created = 0
    for position, entry in enumerate(CORE_NAVIGATION, start=1):
        if entry["key"] in present:
            continue
        await stage_item(db, NavigationItemCreate(**entry, order_position=position, is_core=True))
        created += 1
    await db.commit()
    if created:
        logger.info("Seeded %d core navigation item(s)", created)
    return created


async def register_plugin_navigation(
    db: AsyncSession, plugin_id: str, items: list[NavigationItemCreate]
) -> list[NavigationItem]:
    """Upsert the admin entries a plugin contributes, owned by that plugin."""
    staged = []
    for item in items:
        staged.append(await stage_item(db, item.model_copy(update={"plugin_id": plugin_id, "is_core": False})))
    await db.commit()
    logger.info("Registered %d navigation item(s) for plugin %s", len(staged), plugin_id)
    return staged
