"""Tests for the tag-based read cache."""
import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.cache_tags import global_tag, id_tag
from core.tag_cache import (
    MISSING,
    InMemoryTagCache,
    NullTagCache,
    TagCache,
    has_pending_invalidation,
    invalidate_after_commit,
    pending_invalidations,
)


class TestInMemoryTagCache:
    """Tests for InMemoryTagCache."""

    def test__get__returns_missing_on_miss(self) -> None:
        cache = InMemoryTagCache()
        assert cache.get("nope") is MISSING

    def test__set__then_get(self) -> None:
        cache = InMemoryTagCache()
        cache.set("k", {"a": 1}, [id_tag("users", "1")])
        assert cache.get("k") == {"a": 1}

    def test__none_is_a_cacheable_value(self) -> None:
        cache = InMemoryTagCache()
        cache.set("k", None, [id_tag("users", "1")])
        assert cache.get("k") is None

    def test__invalidate__evicts_only_tagged_entries(self) -> None:
        cache = InMemoryTagCache()
        cache.set("u1", "one", [id_tag("users", "1"), global_tag("users")])
        cache.set("u2", "two", [id_tag("users", "2"), global_tag("users")])
        cache.set("c1", "course", [id_tag("courses", "1")])

        cache.invalidate(id_tag("users", "1"))

        assert cache.get("u1") is MISSING
        assert cache.get("u2") == "two"
        assert cache.get("c1") == "course"

    def test__invalidate__global_tag_evicts_kind(self) -> None:
        cache = InMemoryTagCache()
        cache.set("u1", "one", [id_tag("users", "1"), global_tag("users")])
        cache.set("u2", "two", [id_tag("users", "2"), global_tag("users")])
        cache.set("c1", "course", [global_tag("courses")])

        cache.invalidate(global_tag("users"))

        assert cache.get("u1") is MISSING
        assert cache.get("u2") is MISSING
        assert cache.get("c1") == "course"
        assert len(cache) == 1

    def test__invalidate__unknown_tag_is_noop(self) -> None:
        cache = InMemoryTagCache()
        cache.set("k", 1, [global_tag("users")])
        cache.invalidate(global_tag("lessons"))
        assert cache.get("k") == 1

    def test__set__replaces_previous_tags(self) -> None:
        cache = InMemoryTagCache()
        cache.set("k", 1, [id_tag("users", "1")])
        cache.set("k", 2, [id_tag("users", "2")])

        cache.invalidate(id_tag("users", "1"))

        assert cache.get("k") == 2

    def test__evicts_least_recently_used(self) -> None:
        cache = InMemoryTagCache(max_entries=2)
        cache.set("a", 1, [])
        cache.set("b", 2, [])
        cache.get("a")
        cache.set("c", 3, [])

        assert cache.get("a") == 1
        assert cache.get("b") is MISSING
        assert cache.get("c") == 3

    def test__clear(self) -> None:
        cache = InMemoryTagCache()
        cache.set("a", 1, [global_tag("users")])
        cache.clear()
        assert len(cache) == 0


class TestGetOrLoad:
    """Tests for the read-through helper."""

    async def test__loads_once(self) -> None:
        cache = InMemoryTagCache()
        calls = 0

        async def loader() -> str:
            nonlocal calls
            calls += 1
            return "value"

        first = await cache.get_or_load("k", [global_tag("users")], loader)
        second = await cache.get_or_load("k", [global_tag("users")], loader)

        assert first == second == "value"
        assert calls == 1

    async def test__memoizes_none(self) -> None:
        cache = InMemoryTagCache()
        calls = 0

        async def loader() -> None:
            nonlocal calls
            calls += 1

        await cache.get_or_load("k", [global_tag("users")], loader)
        await cache.get_or_load("k", [global_tag("users")], loader)

        assert calls == 1

    async def test__does_not_store_load_that_raced_with_invalidation(self) -> None:
        """A load that straddles an invalidation may hold pre-mutation data."""
        cache = InMemoryTagCache()
        tag = id_tag("users", "1")
        loading = asyncio.Event()
        release = asyncio.Event()

        async def slow_loader() -> str:
            loading.set()
            await release.wait()
            return "stale"

        task = asyncio.create_task(cache.get_or_load("k", [tag], slow_loader))
        await loading.wait()
        cache.invalidate(tag)
        release.set()

        assert await task == "stale"
        assert cache.get("k") is MISSING


class TestNullTagCache:
    """Tests for NullTagCache."""

    async def test__never_stores(self) -> None:
        cache = NullTagCache()
        calls = 0

        async def loader() -> int:
            nonlocal calls
            calls += 1
            return calls

        cache.set("k", 1, [global_tag("users")])
        assert cache.get("k") is MISSING
        assert await cache.get_or_load("k", [], loader) == 1
        assert await cache.get_or_load("k", [], loader) == 2
        cache.invalidate(global_tag("users"))


class TestInvalidateAfterCommit:
    """Tests for deferring invalidation to the session's commit."""

    async def test__invalidates_only_after_commit(self, db_session: AsyncSession) -> None:
        cache = InMemoryTagCache()
        tag = id_tag("users", "1")
        cache.set("k", "old", [tag])

        await db_session.execute(text("SELECT 1"))
        invalidate_after_commit(db_session, cache, tag)

        assert cache.get("k") == "old"
        assert pending_invalidations(db_session) == [tag]

        await db_session.commit()

        assert cache.get("k") is MISSING
        assert pending_invalidations(db_session) == []

    async def test__rollback_invalidates_pending(self, db_session: AsyncSession) -> None:
        """Reads inside a rolled-back transaction may have seen its writes."""
        cache = InMemoryTagCache()
        tag = id_tag("users", "1")
        cache.set("k", "uncommitted", [tag])

        await db_session.execute(text("SELECT 1"))
        invalidate_after_commit(db_session, cache, tag)
        await db_session.rollback()

        assert cache.get("k") is MISSING
        assert pending_invalidations(db_session) == []

    async def test__has_pending_invalidation(self, db_session: AsyncSession) -> None:
        cache = InMemoryTagCache()
        assert not has_pending_invalidation(db_session, [id_tag("users", "1")])

        await db_session.execute(text("SELECT 1"))
        invalidate_after_commit(db_session, cache, id_tag("users", "1"))

        assert has_pending_invalidation(db_session, [id_tag("users", "1")])
        assert has_pending_invalidation(
            db_session, [global_tag("courses"), id_tag("users", "1")],
        )
        assert not has_pending_invalidation(db_session, [id_tag("users", "2")])

        await db_session.commit()
        assert not has_pending_invalidation(db_session, [id_tag("users", "1")])


class TestTagCacheInterface:
    """Tests for the TagCache base class."""

    def test__incomplete_subclass_cannot_be_instantiated(self) -> None:
        class GetOnlyCache(TagCache):
            def get(self, key: str) -> object:
                return MISSING

        with pytest.raises(TypeError):
            GetOnlyCache()
