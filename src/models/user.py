"""User model mirroring identities from the external identity provider."""
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin

# Values written over personal fields when a user is soft-deleted.
DELETED_USER_NAME = "Deleted User"
DELETED_USER_EMAIL = "deleted@deleted.com"
DELETED_EXTERNAL_ID = "deleted"


class UserRole(StrEnum):
    """Application roles. Authoritative here, mirrored into identity metadata."""

    ADMIN = "admin"
    USER = "user"


class User(Base, TimestampMixin):
    """
    User model - one row per external identity.

    `id` is the internal id used as the join key by purchases, course access and
    lesson completion. Rows are never hard-deleted; soft-deleted rows are redacted
    and excluded from every business query.
    """

    __tablename__ = "users"
    __table_args__ = (
        # Redacted rows all share DELETED_EXTERNAL_ID, so uniqueness only covers live rows.
        Index(
            "uq_users_external_id_active",
            "external_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    external_id: Mapped[str] = mapped_column(
        String(255),
        comment="Identity provider 'sub' claim",
    )
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255))
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=lambda roles: [role.value for role in roles],
        ),
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    @property
    def is_deleted(self) -> bool:
        """Whether the user has been soft-deleted (redacted)."""
        return self.deleted_at is not None
