"""Tombstones for identities whose user rows were redacted."""
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utc_now


class IdentityTombstone(Base):
    """
    Marks an external identity as permanently deleted.

    Soft-delete overwrites users.external_id with a shared sentinel, so the original
    id is kept here as a SHA-256 digest only. A tombstoned identity is never
    re-created by a later sync.
    """

    __tablename__ = "identity_tombstones"

    external_id_digest: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
