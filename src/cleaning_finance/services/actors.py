"""Who is acting on the engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from cleaning_finance.errors import UnauthorizedActorError


class ActorRole(str, Enum):
    """Roles recognised by the engine."""

    WORKER = "worker"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Identity and role of the caller."""

    actor_id: UUID | None
    role: ActorRole

    @classmethod
    def system(cls) -> Actor:
        return cls(actor_id=None, role=ActorRole.SYSTEM)

    @property
    def is_privileged(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)

    def require_admin(self, action: str) -> None:
        """Raise unless the actor is an administrator with an identity."""
        if self.role != ActorRole.ADMIN or self.actor_id is None:
            raise UnauthorizedActorError(self.actor_id, action)
