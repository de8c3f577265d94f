"""Pydantic schemas for users and sessions."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.user import UserRole


class UserUpsert(BaseModel):
    """Fields written when inserting or overwriting a user by external id."""

    external_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=1, max_length=255)
    image_url: str | None = None
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    """Partial update of a user's mutable fields. Only fields that are set are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=1, max_length=255)
    image_url: str | None = None
    role: UserRole | None = None


class UserResponse(BaseModel):
    """Response model for user info."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_id: str
    name: str
    email: str
    image_url: str | None
    role: UserRole
    created_at: datetime
    updated_at: datetime


class SessionResponse(BaseModel):
    """The caller's linked session."""

    external_id: str
    internal_id: UUID
    role: UserRole
    user: UserResponse | None = None


class SyncResponse(BaseModel):
    """Result of an interactive sync: the linked user and where to continue."""

    user: UserResponse
    redirect_to: str


class RoleUpdate(BaseModel):
    """Schema for changing a user's role."""

    role: UserRole
