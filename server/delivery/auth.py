"""
Delivery Core Authentication

Resolves the acting user of a request:
- Service API keys from settings (X-API-Key or Authorization: Bearer)
- The acting user from the X-User-Id header, with the role taken from the
  user directory

When no API keys are configured the service runs in open dev mode and only
X-User-Id is required. A configured service key without X-User-Id acts as
ADMIN.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials

from .models import Actor, Role
from .settings import settings
from .storage import get_storage


logger = logging.getLogger(__name__)


# Security headers
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


def _extract_api_key(
    api_key: Optional[str],
    bearer: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if bearer and bearer.scheme and bearer.scheme.lower() == "bearer":
        return bearer.credentials
    return api_key


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id must be an integer.",
        )


async def get_current_actor(
    api_key: Optional[str] = Depends(api_key_header),
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    raw_user_id: Optional[str] = Depends(user_id_header),
) -> Actor:
    """
    Validate the service key (if keys are configured) and resolve the actor.

    Order:
    1. Reject missing/invalid service keys when keys are configured
    2. No X-User-Id: service callers act as ADMIN, everyone else gets 401
    3. Look up the user's role; unknown users get 401
    """
    raw_key = _extract_api_key(api_key, bearer)
    keys_required = bool(settings.api_keys)

    if keys_required:
        if not raw_key:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing API key. Provide X-API-Key header or Authorization: Bearer <token>.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if raw_key not in settings.api_keys:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key.",
                headers={"WWW-Authenticate": "Bearer"},
            )

    user_id = _parse_user_id(raw_user_id)
    if user_id is None:
        if keys_required:
            return Actor(user_id=None, role=Role.ADMIN)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )

    role = await get_storage().get_role(user_id)
    if role is None:
        logger.info("[auth] Unknown user_id=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user.",
        )
    return Actor(user_id=user_id, role=role)


async def require_user(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require a concrete user (search history is per user)."""
    if actor.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id header is required for this endpoint.",
        )
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency that requires admin authentication."""
    if actor.role is not Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required.",
        )
    return actor
