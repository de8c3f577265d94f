"""FastAPI dependencies for injection."""
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_session, get_identity_provider, get_tag_cache
from core.config import get_settings
from core.identity import ExternalSession
from core.permissions import can_access_admin_pages
from core.tag_cache import TagCache
from db.session import get_async_session
from services.session_service import LinkedSession, NeedsSync, resolve_current_session

SYNC_PATH = "/auth/sync"


def sync_required_exception() -> HTTPException:
    """409 telling the client to run the interactive sync before retrying."""
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "sync_required",
            "message": "Your account is not linked yet.",
            "sync_url": SYNC_PATH,
        },
    )


async def get_linked_session(
    session: ExternalSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
) -> LinkedSession:
    """Dependency resolving the caller to a linked session with the user row loaded."""
    resolved = await resolve_current_session(db, cache, session, load_user=True)
    if isinstance(resolved, NeedsSync):
        raise sync_required_exception()
    if resolved.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return resolved


async def require_admin(
    linked: LinkedSession = Depends(get_linked_session),
) -> LinkedSession:
    """Dependency allowing only admins through."""
    if not can_access_admin_pages(linked.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return linked


__all__ = [
    "SYNC_PATH",
    "get_async_session",
    "get_current_session",
    "get_identity_provider",
    "get_linked_session",
    "get_settings",
    "get_tag_cache",
    "require_admin",
]
