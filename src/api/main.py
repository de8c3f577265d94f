"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import pydantic
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import admin, health, sync, users, webhooks
from core.config import get_settings
from core.identity import create_identity_provider
from core.tag_cache import InMemoryTagCache
from services.exceptions import (
    IdentityProviderError,
    NotFoundError,
    RepositoryError,
    SignatureVerificationError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: read cache and identity provider live for the whole process
    app.state.tag_cache = InMemoryTagCache(max_entries=app_settings.user_cache_max_entries)
    app.state.identity_provider = create_identity_provider(app_settings)

    yield

    # Shutdown
    await app.state.identity_provider.aclose()
    app.state.tag_cache.clear()


app_settings = get_settings()

app = FastAPI(
    title="Courses API",
    description="Course platform backend: user sync and session resolution.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ValidationError)
async def validation_error_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    """A required field could not be derived from the identity; nothing was written."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.exception_handler(pydantic.ValidationError)
async def payload_error_handler(
    _request: Request, exc: pydantic.ValidationError,
) -> JSONResponse:
    """Malformed payload parsed outside FastAPI's own body validation."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(include_url=False, include_context=False)},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    """No live user for the external id (missing or deleted)."""
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


@app.exception_handler(RepositoryError)
async def repository_error_handler(_request: Request, exc: RepositoryError) -> JSONResponse:
    """Database write failed."""
    logger.error("repository_error: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Failed to save user"},
    )


@app.exception_handler(SignatureVerificationError)
async def signature_error_handler(
    _request: Request, exc: SignatureVerificationError,
) -> JSONResponse:
    """Webhook authenticity check failed."""
    logger.warning("webhook_rejected reason=%s", exc)
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Invalid webhook signature"},
    )


@app.exception_handler(IdentityProviderError)
async def identity_provider_error_handler(
    _request: Request, exc: IdentityProviderError,
) -> JSONResponse:
    """Upstream identity provider failure."""
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc)},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(admin.router)
