"""
Store Resolution

FastAPI dependencies that supply the store id for a request, looked up in
priority order:

  1. X-Store-Id request header
  2. `store_id` query parameter
  3. `store_id` field of a JSON request body
  4. `store_id` path parameter

The resolved id is also placed on request.state.store_id for logging.
"""

from __future__ import annotations

import json
import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.exceptions import StoreNotFoundError, ValidationError
from storefront.models.store import Store
from storefront.services import store_service

logger = logging.getLogger(__name__)

STORE_ID_HEADER = "X-Store-Id"


async def _store_id_from_body(request: Request) -> str | None:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict) and body.get("store_id") is not None:
        return str(body["store_id"])
    return None


async def get_store_id(request: Request) -> str:
    """
    Resolve the store id for this request.

    Raises:
        ValidationError: none of the sources carries a store id.
    """
    store_id = (
        request.headers.get(STORE_ID_HEADER)
        or request.query_params.get("store_id")
        or await _store_id_from_body(request)
        or request.path_params.get("store_id")
    )
    if not store_id:
        raise ValidationError(
            f"store_id is required ({STORE_ID_HEADER} header, query, body or path)", field="store_id"
        )
    request.state.store_id = store_id
    return store_id


async def require_active_store(
    store_id: str = Depends(get_store_id),
    db: AsyncSession = Depends(get_db),
) -> Store:
    """Return the resolved store, rejecting unknown and suspended stores alike."""
    store = await store_service.get_active_store(db, store_id)
    if store is None:
        logger.debug("Rejected request for unknown or inactive store %s", store_id)
        raise StoreNotFoundError(store_id)
    return store
