"""Identity provider lifecycle webhooks."""
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_identity_provider, get_settings, get_tag_cache
from core.config import Settings
from core.identity import IdentityProvider
from core.tag_cache import TagCache
from core.webhook_security import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature
from schemas.identity_event import IdentityEvent
from services import user_sync_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Acknowledgement of a processed notification."""

    status: str
    user_id: str


@router.post("/identity", response_model=WebhookResponse)
async def identity_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    cache: TagCache = Depends(get_tag_cache),
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
) -> WebhookResponse:
    """
    Apply an identity.created / identity.updated / identity.deleted notification.

    The signature is checked against the raw body before the payload is parsed, so
    an unverified notification never reaches the database.
    """
    body = await request.body()
    verify_signature(
        settings.webhook_secret,
        body,
        signature=request.headers.get(SIGNATURE_HEADER),
        timestamp=request.headers.get(TIMESTAMP_HEADER),
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
    event = IdentityEvent.model_validate_json(body)
    user = await user_sync_service.handle_identity_event(db, cache, provider, event)
    return WebhookResponse(status="processed", user_id=str(user.id))
