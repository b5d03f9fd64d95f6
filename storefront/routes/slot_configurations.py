"""
Slot Configuration Routes (layout editor)

Every route resolves the store from the X-Store-Id header, `store_id`
query parameter or JSON body, and requires an operator of that store.

GET    /api/v1/slot-configurations                                    → all rows of the store
GET    /api/v1/slot-configurations/draft/{page_type}                  → draft (created on first access)
PUT    /api/v1/slot-configurations/draft/{page_type}                  → save draft (optimistic)
POST   /api/v1/slot-configurations/draft/{page_type}/reset            → discard unpublished edits
POST   /api/v1/slot-configurations/draft/{page_type}/slots            → add a custom slot
POST   /api/v1/slot-configurations/draft/{page_type}/slots/{id}/custom → mark a slot custom
DELETE /api/v1/slot-configurations/draft/{page_type}/slots/{id}       → delete a custom slot
POST   /api/v1/slot-configurations/publish/{page_type}                → publish the draft
GET    /api/v1/slot-configurations/published/{page_type}              → published version
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import require_store_operator
from storefront.database import get_db
from storefront.dependencies import get_sandbox
from storefront.exceptions import NotFoundError
from storefront.models.store import Store
from storefront.plugins.hooks import EVENT_SLOT_CONFIGURATION_PUBLISHED, EVENT_SLOT_CONFIGURATION_SAVED
from storefront.plugins.sandbox import ControllerSandbox
from storefront.schemas.slot import CustomSlotCreate, DraftUpdate, PublishRequest, SlotConfigurationResponse
from storefront.services import slot_configuration_service

router = APIRouter(tags=["Slot Configurations"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[SlotConfigurationResponse])
async def list_configurations(
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.list_configurations(db, store.id)


@router.get("/draft/{page_type}", response_model=SlotConfigurationResponse)
async def get_draft(
    page_type: str,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.get_draft(db, store.id, page_type)


@router.put("/draft/{page_type}", response_model=SlotConfigurationResponse)
async def save_draft(
    page_type: str,
    update: DraftUpdate,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
    sandbox: ControllerSandbox = Depends(get_sandbox),
):
    draft = await slot_configuration_service.save_draft(
        db, store.id, page_type, update.configuration, update.expected_updated_at
    )
    await sandbox.fire_event(
        db,
        EVENT_SLOT_CONFIGURATION_SAVED,
        {"store_id": store.id, "page_type": page_type, "version_number": draft.version_number},
    )
    return draft


@router.post("/draft/{page_type}/reset", response_model=SlotConfigurationResponse)
async def reset_draft(
    page_type: str,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.reset_draft_to_published(db, store.id, page_type)


@router.post(
    "/draft/{page_type}/slots",
    response_model=SlotConfigurationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_custom_slot(
    page_type: str,
    data: CustomSlotCreate,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.add_custom_slot(db, store.id, page_type, data)


@router.post("/draft/{page_type}/slots/{slot_id}/custom", response_model=SlotConfigurationResponse)
async def mark_custom(
    page_type: str,
    slot_id: str,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.mark_custom(db, store.id, page_type, slot_id)


@router.delete("/draft/{page_type}/slots/{slot_id}", response_model=SlotConfigurationResponse)
async def delete_slot(
    page_type: str,
    slot_id: str,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    return await slot_configuration_service.delete_slot(db, store.id, page_type, slot_id)


@router.post("/publish/{page_type}", response_model=SlotConfigurationResponse)
async def publish(
    page_type: str,
    request: Optional[PublishRequest] = Body(None),
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
    sandbox: ControllerSandbox = Depends(get_sandbox),
):
    expected = request.expected_updated_at if request else None
    published = await slot_configuration_service.publish(db, store.id, page_type, expected_updated_at=expected)
    await sandbox.fire_event(
        db,
        EVENT_SLOT_CONFIGURATION_PUBLISHED,
        {"store_id": store.id, "page_type": page_type, "version_number": published.version_number},
    )
    return published


@router.get("/published/{page_type}", response_model=SlotConfigurationResponse)
async def get_published(
    page_type: str,
    store: Store = Depends(require_store_operator),
    db: AsyncSession = Depends(get_db),
):
    published = await slot_configuration_service.get_published(db, store.id, page_type)
    if published is None:
        raise NotFoundError("SlotConfiguration published", f"{store.id}/{page_type}")
    return published
