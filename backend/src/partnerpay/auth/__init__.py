"""Acting-user resolution: bearer JWTs for people, an API key for services."""

from partnerpay.auth.models import SYSTEM_ACTOR, Actor, Role
from partnerpay.auth.tokens import actor_from_token, create_access_token
from partnerpay.auth.middleware import (
    get_current_actor,
    require_admin,
    require_auth,
    require_partner,
    require_service_key,
    require_super_admin,
)

__all__ = [
    "Actor",
    "Role",
    "SYSTEM_ACTOR",
    "actor_from_token",
    "create_access_token",
    "get_current_actor",
    "require_admin",
    "require_auth",
    "require_partner",
    "require_service_key",
    "require_super_admin",
]
