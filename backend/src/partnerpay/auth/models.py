"""Acting-user context passed into every ledger operation."""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Roles recognised by the partner program."""
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    PARTNER = "PARTNER"
    SERVICE = "SERVICE"      # Machine caller (checkout, MotoRev backend)


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    Resolved once at the API edge and handed to the services explicitly,
    so the services never look at request or session state.
    """
    user_id: str
    role: Role
    partner_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


SYSTEM_ACTOR = Actor(user_id="system", role=Role.SERVICE)
