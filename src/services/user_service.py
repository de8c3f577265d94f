"""
User repository and cached user reads.

Mutations are keyed by external id (the identity provider's subject) and only
flush; callers own the commit. Every mutation registers the user's cache tags
with invalidate_after_commit(), so the read cache is invalidated only once the
transaction has ended.
"""
import hashlib
import logging
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from core.cache_tags import user_tags
from core.tag_cache import TagCache, has_pending_invalidation, invalidate_after_commit
from models.base import utc_now
from models.identity_tombstone import IdentityTombstone
from models.user import (
    DELETED_EXTERNAL_ID,
    DELETED_USER_EMAIL,
    DELETED_USER_NAME,
    User,
)
from schemas.cached_user import CachedUser
from schemas.user import UserUpdate, UserUpsert
from services.exceptions import NotFoundError, RepositoryError

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def external_id_digest(external_id: str) -> str:
    """Digest under which a deleted identity is remembered."""
    return hashlib.sha256(external_id.encode("utf-8")).hexdigest()


async def is_tombstoned(db: AsyncSession, external_id: str) -> bool:
    """Whether the identity was deleted and its user row redacted."""
    result = await db.execute(
        select(IdentityTombstone.external_id_digest).where(
            IdentityTombstone.external_id_digest == external_id_digest(external_id),
        ),
    )
    return result.scalar_one_or_none() is not None


async def get_user_by_external_id(db: AsyncSession, external_id: str) -> User | None:
    """Get the live user row for an external id (uncached)."""
    result = await db.execute(
        select(User).where(
            User.external_id == external_id,
            User.deleted_at.is_(None),
        ),
    )
    return result.scalar_one_or_none()


async def upsert_by_external_id(
    db: AsyncSession,
    cache: TagCache,
    record: UserUpsert,
) -> User:
    """
    Insert a user, or overwrite the mutable fields of the live row with the same external id.

    A single INSERT ... ON CONFLICT statement, so concurrent upserts for the same
    identity converge on one row (the last committed write wins on mutable fields)
    instead of racing between a SELECT and an INSERT.

    Raises:
        NotFoundError: The identity was deleted (tombstoned).
        RepositoryError: The database rejected the write or returned no row.
    """
    if await is_tombstoned(db, record.external_id):
        raise NotFoundError(
            record.external_id,
            f"User for external id {record.external_id} was deleted",
        )

    dialect = db.get_bind().dialect.name
    try:
        insert = _UPSERT_INSERTS[dialect]
    except KeyError:
        raise RepositoryError(f"Upsert is not supported for dialect '{dialect}'") from None

    now = utc_now()
    values = record.model_dump()
    stmt = insert(User).values(id=uuid4(), created_at=now, updated_at=now, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.external_id],
        index_where=User.deleted_at.is_(None),
        set_={
            "name": stmt.excluded["name"],
            "email": stmt.excluded["email"],
            "image_url": stmt.excluded["image_url"],
            "role": stmt.excluded["role"],
            "updated_at": stmt.excluded["updated_at"],
        },
    )

    try:
        result = await db.scalars(
            stmt.returning(User),
            execution_options={"populate_existing": True},
        )
        user = result.one_or_none()
    except DBAPIError as e:
        logger.error("user_upsert_failed external_id=%s error=%s", record.external_id, e)
        raise RepositoryError(f"Failed to upsert user {record.external_id}") from e

    if user is None:
        raise RepositoryError(f"Upsert returned no row for user {record.external_id}")

    invalidate_after_commit(db, cache, *user_tags(user.id))
    logger.info("user_upserted user_id=%s external_id=%s", user.id, user.external_id)
    return user


async def update_by_external_id(
    db: AsyncSession,
    cache: TagCache,
    external_id: str,
    patch: UserUpdate,
) -> User:
    """
    Apply a partial update to the live user with `external_id`.

    Raises:
        NotFoundError: No live row matches (including deleted identities).
        RepositoryError: The database rejected the write.
    """
    values = patch.model_dump(exclude_unset=True)
    values["updated_at"] = utc_now()
    stmt = (
        update(User)
        .where(User.external_id == external_id, User.deleted_at.is_(None))
        .values(**values)
        .returning(User)
    )
    user = await _execute_returning(db, stmt, external_id)
    if user is None:
        raise NotFoundError(external_id)

    invalidate_after_commit(db, cache, *user_tags(user.id))
    logger.info(
        "user_updated user_id=%s fields=%s",
        user.id,
        ",".join(sorted(values)),
    )
    return user


async def soft_delete_by_external_id(
    db: AsyncSession,
    cache: TagCache,
    external_id: str,
) -> User:
    """
    Soft-delete the live user with `external_id` and redact its personal fields.

    The row is kept so purchases, access grants and completions stay valid. The
    external id is tombstoned; the identity can never be synced again.

    Raises:
        NotFoundError: No live row matches.
        RepositoryError: The database rejected the write.
    """
    now = utc_now()
    stmt = (
        update(User)
        .where(User.external_id == external_id, User.deleted_at.is_(None))
        .values(
            deleted_at=now,
            updated_at=now,
            name=DELETED_USER_NAME,
            email=DELETED_USER_EMAIL,
            external_id=DELETED_EXTERNAL_ID,
            image_url=None,
        )
        .returning(User)
    )
    user = await _execute_returning(db, stmt, external_id)
    if user is None:
        raise NotFoundError(external_id)

    db.add(IdentityTombstone(external_id_digest=external_id_digest(external_id)))
    try:
        await db.flush()
    except DBAPIError as e:
        raise RepositoryError(f"Failed to tombstone user {user.id}") from e

    invalidate_after_commit(db, cache, *user_tags(user.id))
    logger.info("user_soft_deleted user_id=%s", user.id)
    return user


async def _execute_returning(db: AsyncSession, stmt, external_id: str) -> User | None:  # noqa: ANN001
    try:
        result = await db.scalars(stmt)
        return result.one_or_none()
    except DBAPIError as e:
        logger.error("user_write_failed external_id=%s error=%s", external_id, e)
        raise RepositoryError(f"Failed to write user {external_id}") from e


def _user_cache_key(internal_id: UUID) -> str:
    return f"user:{internal_id}"


async def get_user_by_internal_id(
    db: AsyncSession,
    cache: TagCache,
    internal_id: UUID,
) -> CachedUser | None:
    """
    Get a live user by internal id through the read cache.

    The result (including "no such user") is memoized and tagged with the user's
    id tag and the global users tag. Soft-deleted users read as None. A session
    with uncommitted writes to the user reads the database directly and stores
    nothing, since those writes may still roll back.
    """

    async def load() -> CachedUser | None:
        result = await db.execute(
            select(User)
            .where(User.id == internal_id, User.deleted_at.is_(None))
            .execution_options(populate_existing=True),
        )
        user = result.scalar_one_or_none()
        return CachedUser.from_user(user) if user is not None else None

    tags = user_tags(internal_id)
    if has_pending_invalidation(db, tags):
        logger.debug("user_read_uncached user_id=%s reason=pending_write", internal_id)
        return await load()
    return await cache.get_or_load(_user_cache_key(internal_id), tags, load)
