"""Resolve the caller's session into a linked user or a request to sync."""
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.identity import ExternalSession
from core.tag_cache import TagCache
from models.user import UserRole
from schemas.cached_user import CachedUser
from services import user_service


@dataclass(frozen=True)
class LinkedSession:
    """The identity carries an internal id; `user` is set only when requested."""

    external_id: str
    internal_id: UUID
    role: UserRole
    user: CachedUser | None = None


@dataclass(frozen=True)
class NeedsSync:
    """The identity is not linked to a user row yet; run the interactive sync."""

    external_id: str


async def resolve_current_session(
    db: AsyncSession,
    cache: TagCache,
    session: ExternalSession,
    *,
    load_user: bool = False,
) -> LinkedSession | NeedsSync:
    """
    Resolve the caller's session. Read-only.

    The linkage comes from the identity's metadata. With `load_user`, the user row is
    read through the cache; it is None if the row no longer exists or was deleted.
    """
    internal_id = session.metadata.internal_id
    if internal_id is None:
        return NeedsSync(external_id=session.external_id)

    role = session.metadata.role or UserRole.USER
    user = None
    if load_user:
        user = await user_service.get_user_by_internal_id(db, cache, internal_id)
        if user is not None:
            role = user.role

    return LinkedSession(
        external_id=session.external_id,
        internal_id=internal_id,
        role=role,
        user=user,
    )
