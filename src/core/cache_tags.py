"""
Cache tag namespace.

Tags label memoized reads so a later mutation can evict exactly the results that
depended on it. Taggers and invalidators must agree on the serialized form
byte-for-byte, so tags are built only through the variants below and turned into
strings only by serialize_tag:

    global:<kind>           every cached read of a kind
    id:<id>-<kind>          reads of one entity
    user:<user_id>-<kind>   reads of a kind scoped to one user
"""
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID


class EntityKind(StrEnum):
    """Kinds of cached entities."""

    USERS = "users"
    COURSES = "courses"
    COURSE_SECTIONS = "courseSections"
    LESSONS = "lessons"
    PRODUCTS = "products"
    PURCHASES = "purchases"
    USER_COURSE_ACCESS = "userCourseAccess"
    USER_LESSON_COMPLETE = "userLessonComplete"


@dataclass(frozen=True)
class GlobalTag:
    """Tag covering every cached read of a kind."""

    kind: EntityKind

    def __str__(self) -> str:
        return serialize_tag(self)


@dataclass(frozen=True)
class IdTag:
    """Tag covering cached reads of a single entity."""

    kind: EntityKind
    entity_id: str

    def __str__(self) -> str:
        return serialize_tag(self)


@dataclass(frozen=True)
class UserTag:
    """Tag covering cached reads of a kind that are scoped to one user."""

    kind: EntityKind
    user_id: str

    def __str__(self) -> str:
        return serialize_tag(self)


CacheTag = GlobalTag | IdTag | UserTag


def serialize_tag(tag: CacheTag) -> str:
    """Render a tag to its cache key form."""
    match tag:
        case GlobalTag(kind=kind):
            return f"global:{kind}"
        case IdTag(kind=kind, entity_id=entity_id):
            return f"id:{entity_id}-{kind}"
        case UserTag(kind=kind, user_id=user_id):
            return f"user:{user_id}-{kind}"
    raise TypeError(f"Not a cache tag: {tag!r}")


def global_tag(kind: EntityKind | str) -> GlobalTag:
    """Tag for all cached reads of `kind`."""
    return GlobalTag(EntityKind(kind))


def id_tag(kind: EntityKind | str, entity_id: UUID | str) -> IdTag:
    """Tag for cached reads of the entity `entity_id`."""
    return IdTag(EntityKind(kind), str(entity_id))


def user_tag(kind: EntityKind | str, user_id: UUID | str) -> UserTag:
    """Tag for cached reads of `kind` belonging to `user_id`."""
    return UserTag(EntityKind(kind), str(user_id))


def user_tags(user_id: UUID | str) -> tuple[GlobalTag, IdTag]:
    """Tags every mutation of a user row must invalidate."""
    return global_tag(EntityKind.USERS), id_tag(EntityKind.USERS, user_id)


def user_course_access_tags(
    user_id: UUID | str,
    course_id: UUID | str,
) -> tuple[GlobalTag, IdTag, UserTag]:
    """Tags covering a user's access grant to a course."""
    kind = EntityKind.USER_COURSE_ACCESS
    return (
        global_tag(kind),
        id_tag(kind, f"course:{course_id}-user:{user_id}"),
        user_tag(kind, user_id),
    )
