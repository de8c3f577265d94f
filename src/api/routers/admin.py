"""Admin endpoints for inspecting and managing users."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_async_session,
    get_identity_provider,
    get_tag_cache,
    require_admin,
)
from core.identity import IdentityProvider
from core.tag_cache import TagCache
from models.user import User
from schemas.cached_user import CachedUser
from schemas.user import RoleUpdate, UserResponse
from services import user_service, user_sync_service


router = APIRouter(
    prefix="/admin/users",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("/{internal_id}", response_model=UserResponse)
async def get_user(
    internal_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
) -> CachedUser:
    """Get a user by internal id."""
    user = await user_service.get_user_by_internal_id(db, cache, internal_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/{external_id}/role", response_model=UserResponse)
async def update_user_role(
    external_id: str,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> User:
    """Change a user's role and mirror it to their identity."""
    return await user_sync_service.set_user_role(db, cache, provider, external_id, data.role)


@router.post("/{external_id}/sync", response_model=UserResponse)
async def resync_user(
    external_id: str,
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> User:
    """Re-run the sync for an identity, rebuilding its row and metadata mirror."""
    return await user_sync_service.sync_user_from_profile(db, cache, provider, external_id)
