"""Interactive sync: link the caller's identity to a user row."""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    SYNC_PATH,
    get_async_session,
    get_current_session,
    get_identity_provider,
    get_settings,
    get_tag_cache,
)
from core.config import Settings
from core.identity import ExternalSession, IdentityProvider
from core.tag_cache import TagCache
from schemas.user import SyncResponse, UserResponse
from services import user_sync_service


router = APIRouter(tags=["auth"])


@router.post(SYNC_PATH, response_model=SyncResponse)
async def sync_current_user(
    request: Request,
    session: ExternalSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
) -> SyncResponse:
    """
    Create or refresh the caller's user row and link it to their identity.

    Safe to call repeatedly. After it succeeds the client should refresh its access
    token so the new linkage claims are present, then continue to `redirect_to`.
    """
    user = await user_sync_service.sync_user_from_profile(
        db, cache, provider, session.external_id,
    )
    redirect_to = user_sync_service.resolve_redirect_target(
        request.headers.get("referer"),
        sync_path=SYNC_PATH,
        default=settings.frontend_url,
    )
    return SyncResponse(user=UserResponse.model_validate(user), redirect_to=redirect_to)
