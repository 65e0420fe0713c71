"""Who is performing a ledger operation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActorType(str, Enum):
    """Actor type enum."""

    SYSTEM = "system"  # Background jobs and event triggers
    USER = "user"  # Staff member acting through the API


@dataclass(frozen=True)
class Actor:
    """Explicit actor passed to every mutating ledger call."""

    actor_type: ActorType
    user_id: Optional[int] = None
    name: str = "System"

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_type=ActorType.SYSTEM, user_id=None, name="System")

    @classmethod
    def user(cls, user_id: int, name: str) -> "Actor":
        return cls(actor_type=ActorType.USER, user_id=user_id, name=name)

    @property
    def is_system(self) -> bool:
        return self.actor_type == ActorType.SYSTEM


SYSTEM_ACTOR = Actor.system()
