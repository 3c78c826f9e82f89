"""Bearer token issuing and verification (HS256 JWT)."""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from partnerpay.auth.models import Actor, Role
from partnerpay.logging_config import get_logger
from partnerpay.settings import settings

logger = get_logger(__name__)


def create_access_token(actor: Actor, expires_delta: timedelta | None = None) -> str:
    """Create a JWT for an actor.

    Args:
        actor: Identity to encode
        expires_delta: Optional expiration time

    Returns:
        JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.jwt_expire_hours)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": actor.user_id,
        "role": actor.role.value,
        "partner_id": actor.partner_id,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug("token_verification_failed", error=str(e))
        return None


def actor_from_token(token: str) -> Actor | None:
    """Decode a bearer token into an Actor; None when invalid."""
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None

    try:
        role = Role(payload.get("role"))
    except ValueError:
        logger.debug("token_unknown_role", role=payload.get("role"))
        return None
    if role == Role.SERVICE:
        # Machine callers authenticate with the API key, not a bearer token
        return None

    partner_id = payload.get("partner_id")
    if role == Role.PARTNER and partner_id is None:
        return None

    return Actor(
        user_id=str(payload["sub"]),
        role=role,
        partner_id=int(partner_id) if partner_id is not None else None,
    )
