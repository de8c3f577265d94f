"""User session endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_linked_session
from schemas.user import SessionResponse, UserResponse
from services.session_service import LinkedSession


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=SessionResponse)
async def get_me(linked: LinkedSession = Depends(get_linked_session)) -> SessionResponse:
    """
    Get the current user's session and profile.

    Returns 409 with error "sync_required" when the identity is not linked yet; the
    client should POST /auth/sync and retry with a refreshed token.
    """
    return SessionResponse(
        external_id=linked.external_id,
        internal_id=linked.internal_id,
        role=linked.role,
        user=UserResponse.model_validate(linked.user),
    )
