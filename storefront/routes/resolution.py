"""
Storefront Resolution Route

GET /api/v1/storefront/resolve/{page_type}?viewport=desktop&version=published

Public for the published layout. Previewing the draft (`version=draft`)
requires an operator token for the store.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth import bearer_scheme, can_edit_store, get_current_operator
from storefront.config import settings
from storefront.database import get_db
from storefront.dependencies import get_resolver
from storefront.exceptions import AuthorizationError, ValidationError
from storefront.middleware.store import require_active_store
from storefront.models.store import Store
from storefront.plugins.sandbox import ControllerRequest
from storefront.schemas.composition import CompositionResponse
from storefront.services.composition_service import CompositionResolver

router = APIRouter(tags=["Storefront"])
logger = logging.getLogger(__name__)

# Never forwarded to plugin code
_PRIVATE_HEADERS = frozenset({"authorization", "cookie"})


@router.get("/resolve/{page_type}", response_model=CompositionResponse)
async def resolve_page(
    page_type: str,
    request: Request,
    viewport: Optional[str] = Query(None),
    version: Literal["published", "draft"] = Query("published"),
    store: Store = Depends(require_active_store),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    resolver: CompositionResolver = Depends(get_resolver),
):
    viewport = viewport or settings.default_viewport
    if viewport not in settings.viewports:
        raise ValidationError(f"Unknown viewport '{viewport}'", field="viewport")

    if version == "draft":
        operator = await get_current_operator(request, credentials)
        if not can_edit_store(operator, store.id):
            raise AuthorizationError("You do not operate this store", store_id=store.id)

    controller_request = ControllerRequest(
        method=request.method,
        path=request.url.path,
        query=dict(request.query_params),
        headers={k: v for k, v in request.headers.items() if k.lower() not in _PRIVATE_HEADERS},
        store_id=store.id,
    )
    result = await resolver.resolve(
        db,
        store.id,
        page_type,
        viewport=viewport,
        published=version == "published",
        request=controller_request,
    )
    return CompositionResponse(**result.to_dict())
