"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.identity_tombstone import IdentityTombstone
from models.user import User, UserRole

__all__ = ["Base", "IdentityTombstone", "TimestampMixin", "User", "UserRole"]
