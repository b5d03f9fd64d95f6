"""
Store Service

Async lookups for Store rows, the tenant boundary of slot configurations.
All functions accept an injected AsyncSession.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.store import Store, StoreStatus
from storefront.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


async def create_store(db: AsyncSession, store_id: str, slug: str, name: str) -> Store:
    """Create a new active store."""
    store = Store(id=store_id, slug=slug, name=name, status=StoreStatus.active.value, created_at=utcnow())
    db.add(store)
    await db.commit()
    await db.refresh(store)
    logger.info("Store created: id=%s slug=%s", store.id, store.slug)
    return store


async def get_store(db: AsyncSession, store_id: str) -> Store | None:
    """Return a Store by id, or None if not found."""
    result = await db.execute(select(Store).where(Store.id == store_id))
    return result.scalars().first()


async def get_active_store(db: AsyncSession, store_id: str) -> Store | None:
    """Return the store only if it exists and is active."""
    store = await get_store(db, store_id)
    if store is None or store.status != StoreStatus.active.value:
        return None
    return store


async def set_store_status(db: AsyncSession, store_id: str, status: StoreStatus | str) -> Store | None:
    """
    Change a store's status.

    Returns None if the store does not exist.
    """
    store = await get_store(db, store_id)
    if store is None:
        return None
    store.status = StoreStatus(status).value
    await db.commit()
    await db.refresh(store)
    logger.info("Store status changed: id=%s status=%s", store.id, store.status)
    return store
