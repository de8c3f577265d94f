"""Pydantic schemas for identity lifecycle notifications."""
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class IdentityEventType(StrEnum):
    """Lifecycle notifications sent by the identity provider."""

    CREATED = "identity.created"
    UPDATED = "identity.updated"
    DELETED = "identity.deleted"


class IdentityEventData(BaseModel):
    """Identity fields carried by a lifecycle notification."""

    id: str = Field(..., min_length=1, description="External identity id ('sub')")
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    email: str | None = None
    image_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class IdentityEvent(BaseModel):
    """A verified lifecycle notification."""

    type: IdentityEventType
    data: IdentityEventData
