"""Cached user representation for the read cache."""
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from models.user import UserRole

if TYPE_CHECKING:
    from models.user import User


@dataclass(frozen=True)
class CachedUser:
    """
    Immutable snapshot of a live user row.

    The read cache outlives the session that loaded a row, so it never holds ORM
    instances. Attribute names match the User model for the fields present here.
    """

    id: UUID
    external_id: str
    name: str
    email: str
    image_url: str | None
    role: UserRole
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: "User") -> "CachedUser":
        """Build a snapshot from a User ORM object."""
        return cls(
            id=user.id,
            external_id=user.external_id,
            name=user.name,
            email=user.email,
            image_url=user.image_url,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
