"""Readiness check for load balancers and uptime monitors."""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_identity_provider
from core.identity import IdentityProvider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Readiness of the service and the dependencies it cannot work without."""

    status: Literal["ok", "unavailable"]
    database: Literal["ok", "unavailable"]
    identity_provider: str


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": HealthResponse}},
)
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> HealthResponse:
    """
    Check the database. Unauthenticated.

    Responds 503 when the database is unreachable. The identity provider is
    reported by name only; it is not called.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_check_database_unavailable error=%s", e)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="unavailable",
            database="unavailable",
            identity_provider=provider.name,
        )

    return HealthResponse(status="ok", database="ok", identity_provider=provider.name)
