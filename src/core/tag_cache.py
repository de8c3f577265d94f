"""
Process-local, tag-based read-through cache.

Memoized results are associated with cache tags (see core.cache_tags). Invalidating
a tag evicts every entry carrying it. The cache is a disposable mirror of database
reads: it is safe to evict at any time and is not shared between processes.

Mutations must not invalidate before their transaction commits, otherwise a
concurrent read could repopulate the cache with pre-mutation data that is never
evicted. Services call invalidate_after_commit() and the session events at the
bottom of this module perform the invalidation when the transaction ends,
whether it commits or rolls back.
"""
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from core.cache_tags import CacheTag, serialize_tag

logger = logging.getLogger(__name__)

# Returned by get() on a miss, so None can be memoized as a real value.
MISSING: Any = object()

_PENDING_INVALIDATIONS_KEY = "pending_cache_invalidations"


class TagCache(ABC):
    """Interface for tag-based caches."""

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the cached value for `key`, or MISSING."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, tags: Iterable[CacheTag]) -> None:
        """Store `value` under `key`, associated with `tags`."""
        ...

    @abstractmethod
    def invalidate(self, *tags: CacheTag) -> None:
        """Evict every entry associated with any of `tags`."""
        ...

    @abstractmethod
    def generation(self, tags: Iterable[CacheTag]) -> tuple[int, ...]:
        """Return a marker that changes whenever any of `tags` is invalidated."""
        ...

    async def get_or_load(
        self,
        key: str,
        tags: Iterable[CacheTag],
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for `key`, loading and storing it on a miss.

        If one of `tags` is invalidated while the loader is awaiting, the loaded
        value may predate the mutation and is returned without being stored.
        """
        value = self.get(key)
        if value is not MISSING:
            logger.debug("tag_cache_hit key=%s", key)
            return value

        logger.debug("tag_cache_miss key=%s", key)
        tags = tuple(tags)
        before = self.generation(tags)
        value = await loader()
        if self.generation(tags) == before:
            self.set(key, value, tags)
        else:
            logger.debug("tag_cache_skip_stale_load key=%s", key)
        return value


class InMemoryTagCache(TagCache):
    """
    Bounded in-memory tag cache with least-recently-used eviction.

    Each tag carries a generation counter that is bumped on invalidation, which
    lets get_or_load() detect loads that raced with a mutation.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[str, tuple[Any, frozenset[str]]] = OrderedDict()
        self._keys_by_tag: dict[str, set[str]] = {}
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return MISSING
        self._entries.move_to_end(key)
        return entry[0]

    def set(self, key: str, value: Any, tags: Iterable[CacheTag]) -> None:
        tag_keys = frozenset(serialize_tag(tag) for tag in tags)
        self._discard(key)
        self._entries[key] = (value, tag_keys)
        for tag_key in tag_keys:
            self._keys_by_tag.setdefault(tag_key, set()).add(key)

        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            self._discard(oldest)

    def invalidate(self, *tags: CacheTag) -> None:
        for tag in tags:
            tag_key = serialize_tag(tag)
            self._generations[tag_key] = self._generations.get(tag_key, 0) + 1
            for key in self._keys_by_tag.pop(tag_key, set()):
                self._discard(key)
            logger.debug("tag_cache_invalidate tag=%s", tag_key)

    def generation(self, tags: Iterable[CacheTag]) -> tuple[int, ...]:
        return tuple(self._generations.get(serialize_tag(tag), 0) for tag in tags)

    def clear(self) -> None:
        """Drop every entry (generations are kept)."""
        self._entries.clear()
        self._keys_by_tag.clear()

    def _discard(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag_key in entry[1]:
            keys = self._keys_by_tag.get(tag_key)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag_key]


class NullTagCache(TagCache):
    """Cache that never stores anything. Every read goes to the database."""

    def get(self, key: str) -> Any:  # noqa: ARG002
        return MISSING

    def set(self, key: str, value: Any, tags: Iterable[CacheTag]) -> None:
        pass

    def invalidate(self, *tags: CacheTag) -> None:
        pass

    def generation(self, tags: Iterable[CacheTag]) -> tuple[int, ...]:  # noqa: ARG002
        return ()


def invalidate_after_commit(db: AsyncSession, cache: TagCache, *tags: CacheTag) -> None:
    """
    Schedule invalidation of `tags` for when the session's transaction ends.

    A rollback invalidates too: reads made inside the transaction may have seen
    writes that never committed.
    """
    pending = db.sync_session.info.setdefault(_PENDING_INVALIDATIONS_KEY, [])
    pending.append((cache, tags))


def pending_invalidations(db: AsyncSession) -> list[CacheTag]:
    """Return the tags waiting for the end of the session's transaction."""
    pending = db.sync_session.info.get(_PENDING_INVALIDATIONS_KEY, [])
    return [tag for _, tags in pending for tag in tags]


def has_pending_invalidation(db: AsyncSession, tags: Iterable[CacheTag]) -> bool:
    """Whether the session holds uncommitted writes covered by any of `tags`."""
    pending = {serialize_tag(tag) for tag in pending_invalidations(db)}
    return any(serialize_tag(tag) in pending for tag in tags)


@event.listens_for(Session, "after_commit")
def _invalidate_on_commit(session: Session) -> None:
    for cache, tags in session.info.pop(_PENDING_INVALIDATIONS_KEY, []):
        cache.invalidate(*tags)


@event.listens_for(Session, "after_rollback")
def _invalidate_on_rollback(session: Session) -> None:
    pending = session.info.pop(_PENDING_INVALIDATIONS_KEY, [])
    if pending:
        logger.debug("tag_cache_invalidate_on_rollback count=%s", len(pending))
    for cache, tags in pending:
        cache.invalidate(*tags)
