"""
User synchronization between the identity provider and the users table.

An identity is Unlinked until its metadata carries an internal id, Linked once it
does, and Redacted (terminal) after a delete notification. The database is the
authority; the identity provider's metadata is an eventually-consistent mirror
written only after the database commit succeeds. Re-running a sync for an
identity is the recovery path whenever the mirror is missing or stale.
"""
import logging
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from core.identity import ExternalProfile, IdentityMetadata, IdentityProvider
from core.tag_cache import TagCache
from models.user import User, UserRole
from schemas.identity_event import IdentityEvent, IdentityEventData, IdentityEventType
from schemas.user import UserUpdate, UserUpsert
from services import user_service
from services.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "User"


def derive_display_name(
    full_name: str | None,
    first_name: str | None,
    last_name: str | None,
    username: str | None,
) -> str:
    """Pick the first non-empty of full name, first name, last name, username."""
    for candidate in (full_name, first_name, last_name, username):
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_USER_NAME


def _require_email(external_id: str, email: str | None) -> str:
    if not email or not email.strip():
        logger.warning("user_sync_missing_email external_id=%s", external_id)
        raise ValidationError("User email missing")
    return email.strip()


def _record_from_profile(profile: ExternalProfile) -> UserUpsert:
    return UserUpsert(
        external_id=profile.external_id,
        name=derive_display_name(
            profile.full_name, profile.first_name, profile.last_name, profile.username,
        ),
        email=_require_email(profile.external_id, profile.primary_email),
        image_url=profile.image_url,
        role=profile.metadata.role or UserRole.USER,
    )


def _record_from_event(data: IdentityEventData) -> UserUpsert:
    metadata = IdentityMetadata.from_mapping(data.metadata)
    return UserUpsert(
        external_id=data.id,
        name=derive_display_name(data.full_name, data.first_name, data.last_name, data.username),
        email=_require_email(data.id, data.email),
        image_url=data.image_url,
        role=metadata.role or UserRole.USER,
    )


async def _mirror_metadata(provider: IdentityProvider, user: User) -> None:
    await provider.update_metadata(
        user.external_id,
        IdentityMetadata(internal_id=user.id, role=user.role),
    )


async def _upsert_and_mirror(
    db: AsyncSession,
    cache: TagCache,
    provider: IdentityProvider,
    record: UserUpsert,
) -> User:
    user = await user_service.upsert_by_external_id(db, cache, record)
    # The metadata must never point at a row that was not committed.
    await db.commit()
    await _mirror_metadata(provider, user)
    return user


async def sync_user_from_profile(
    db: AsyncSession,
    cache: TagCache,
    provider: IdentityProvider,
    external_id: str,
) -> User:
    """
    Link an identity to a user row (interactive sync).

    Fetches the identity's profile, upserts the user, commits, then writes the
    internal id and role back into the identity's metadata. Idempotent: repeated or
    concurrent runs for the same identity converge on one row.

    Raises:
        ValidationError: The profile has no usable email. Nothing is written.
        NotFoundError: The identity was deleted.
        RepositoryError: The database write failed.
        IdentityProviderError: Fetching the profile or writing metadata failed.
    """
    profile = await provider.get_profile(external_id)
    record = _record_from_profile(profile)
    logger.info("user_sync_start external_id=%s", external_id)
    user = await _upsert_and_mirror(db, cache, provider, record)
    logger.info("user_sync_complete external_id=%s user_id=%s", external_id, user.id)
    return user


async def handle_identity_event(
    db: AsyncSession,
    cache: TagCache,
    provider: IdentityProvider,
    event: IdentityEvent,
) -> User:
    """
    Apply a verified lifecycle notification.

    Created and updated notifications upsert the user and mirror the linkage back;
    deleted notifications soft-delete it. The caller must have verified the
    notification's signature.
    """
    logger.info("identity_event type=%s external_id=%s", event.type, event.data.id)
    if event.type == IdentityEventType.DELETED:
        user = await user_service.soft_delete_by_external_id(db, cache, event.data.id)
        await db.commit()
        return user

    return await _upsert_and_mirror(db, cache, provider, _record_from_event(event.data))


async def set_user_role(
    db: AsyncSession,
    cache: TagCache,
    provider: IdentityProvider,
    external_id: str,
    role: UserRole,
) -> User:
    """Change a user's role in the database, then mirror it to the identity's metadata."""
    user = await user_service.update_by_external_id(
        db, cache, external_id, UserUpdate(role=role),
    )
    await db.commit()
    await _mirror_metadata(provider, user)
    logger.info("user_role_changed user_id=%s role=%s", user.id, role)
    return user


def resolve_redirect_target(
    referer: str | None,
    sync_path: str,
    default: str,
) -> str:
    """
    Choose where to continue after an interactive sync.

    Returns the referer unless it is missing, points back at the sync endpoint, or
    belongs to a different origin than `default`; otherwise returns `default`.
    """
    if not referer or sync_path in referer:
        return default

    try:
        target = urlparse(referer)
        home = urlparse(default)
    except ValueError:
        return default

    if not target.netloc:
        return referer if referer.startswith("/") and not referer.startswith("//") else default
    if (target.scheme, target.netloc) != (home.scheme, home.netloc):
        logger.warning("user_sync_foreign_referer referer=%s", referer)
        return default
    return referer
