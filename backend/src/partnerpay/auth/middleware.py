"""Authentication dependencies for FastAPI."""

import secrets

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from partnerpay.auth.models import SYSTEM_ACTOR, Actor, Role
from partnerpay.auth.tokens import actor_from_token
from partnerpay.logging_config import get_logger
from partnerpay.settings import settings

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor | None:
    """Resolve the bearer token into an Actor, or None if absent/invalid."""
    if not credentials:
        return None

    actor = actor_from_token(credentials.credentials)
    if actor:
        request.state.actor = actor
    return actor


def require_auth(actor: Actor | None = Depends(get_current_actor)) -> Actor:
    """Require authentication - raises 401 if not authenticated."""
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_admin(actor: Actor = Depends(require_auth)) -> Actor:
    """Require ADMIN or SUPER_ADMIN."""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return actor


def require_super_admin(actor: Actor = Depends(require_auth)) -> Actor:
    if not actor.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return actor


def require_partner(actor: Actor = Depends(require_auth)) -> Actor:
    """Require a partner account (the caller sees only its own data)."""
    if actor.role != Role.PARTNER or actor.partner_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Partner account required",
        )
    return actor


def require_service_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> Actor:
    """Authenticate machine callers posting conversion events.

    Raises:
        HTTPException: 503 if no key is configured, 401 if the key is wrong
    """
    if not settings.conversion_api_key:
        logger.warning("conversion_api_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversion endpoint not configured",
        )
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.conversion_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return SYSTEM_ACTOR
