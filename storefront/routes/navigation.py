"""
Admin Navigation Routes

GET    /api/v1/navigation        → navigation tree (operators)
PUT    /api/v1/navigation        → create or update an item (admin)
DELETE /api/v1/navigation/{key}  → remove a non-core item (admin)
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import get_current_operator, require_admin
from storefront.database import get_db
from storefront.schemas.navigation import NavigationItemCreate, NavigationNode
from storefront.services import navigation_service

router = APIRouter(tags=["Navigation"])


@router.get("", response_model=list[NavigationNode])
async def get_navigation_tree(
    include_hidden: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _operator: dict[str, Any] = Depends(get_current_operator),
):
    return await navigation_service.list_tree(db, include_hidden=include_hidden)


@router.put("", response_model=NavigationNode)
async def upsert_navigation_item(
    item: NavigationItemCreate,
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    return await navigation_service.upsert_item(db, item)


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_navigation_item(
    key: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict[str, Any] = Depends(require_admin),
):
    await navigation_service.remove_item(db, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
