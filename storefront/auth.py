"""
Operator Authentication

Thin bearer-token gate for the admin surface. Tokens are HS256 JWTs issued
by the platform's identity service with the claims:

    sub        operator identifier
    role       "operator" or "admin"
    store_ids  stores an operator may edit (admins may edit every store)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from storefront.config import settings
from storefront.exceptions import AuthenticationError, AuthorizationError
from storefront.middleware.store import require_active_store
from storefront.models.store import Store

logger = logging.getLogger(__name__)

ROLE_OPERATOR = "operator"
ROLE_ADMIN = "admin"
OPERATOR_ROLES = frozenset({ROLE_OPERATOR, ROLE_ADMIN})

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    subject: str,
    role: str = ROLE_OPERATOR,
    store_ids: Optional[list[str]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {"sub": subject, "role": role, "store_ids": list(store_ids or []), "exp": expire}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.access_token_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.access_token_algorithm])
    except ExpiredSignatureError:
        logger.info("Rejected expired operator token")
        raise AuthenticationError("Token has expired")
    except JWTError as e:
        logger.warning("Operator token decoding failed: %s", e)
        raise AuthenticationError("Invalid token")
    if not claims.get("sub"):
        raise AuthenticationError("Token does not contain a 'sub' claim")
    return claims


async def get_current_operator(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Bearer token required")
    claims = decode_access_token(credentials.credentials)
    if claims.get("role") not in OPERATOR_ROLES:
        raise AuthorizationError("Token does not grant operator access")
    request.state.operator = claims
    return claims


async def require_admin(operator: dict[str, Any] = Depends(get_current_operator)) -> dict[str, Any]:
    """Gate for plugin and navigation administration."""
    if operator.get("role") != ROLE_ADMIN:
        raise AuthorizationError("Administrator role required")
    return operator


def can_edit_store(operator: dict[str, Any], store_id: str) -> bool:
    if operator.get("role") == ROLE_ADMIN:
        return True
    return store_id in (operator.get("store_ids") or [])


async def require_store_operator(
    store: Store = Depends(require_active_store),
    operator: dict[str, Any] = Depends(get_current_operator),
) -> Store:
    """Gate for draft mutations: the caller must operate the resolved store."""
    if not can_edit_store(operator, store.id):
        raise AuthorizationError("You do not operate this store", store_id=store.id)
    return store
