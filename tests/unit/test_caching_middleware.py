"""
Unit tests for CachingMiddleware.

Tests cover:
- Read-through caching and Nil markers
- Cache refresh on index() under the revision rule
- Invalidation on set/delete
- Id-only find_by served from the cache
- Includes resolved from cached documents
"""

import pytest

from docsync.cache import DocumentCache
from docsync.middleware.caching import CachingMiddleware
from docsync.store.memory import MemoryStore
from tests.helpers import deleted_entry, entry, link


class CountingStore(MemoryStore):
    """MemoryStore that counts find() calls."""

    def __init__(self):
        super().__init__()
        self.finds = []

    async def find(self, doc_id, **options):
        self.finds.append(doc_id)
        return await super().find(doc_id, **options)


class TestFind:
    """Tests for read-through find()."""

    @pytest.mark.asyncio
    async def test_second_read_served_from_cache(self):
        inner = CountingStore()
        await inner.index(entry("a", title="x"))
        store = CachingMiddleware(inner)

        await store.find("a")
        found = await store.find("a")

        assert found["fields"]["title"]["en-US"] == "x"
        assert inner.finds == ["a"]

    @pytest.mark.asyncio
    async def test_missing_cached(self):
        inner = CountingStore()
        store = CachingMiddleware(inner)

        assert await store.find("gone") is None
        assert await store.find("gone") is None
        assert inner.finds == ["gone"]

    @pytest.mark.asyncio
    async def test_include_resolves_through_cache(self):
        inner = CountingStore()
        await inner.index(entry("p1", "page", title="Home"))
        await inner.index(entry("n1", "nav", page=link("p1")))
        store = CachingMiddleware(inner)

        first = await store.find("n1", include=1)
        plain = await store.find("n1")
        again = await store.find("n1", include=1)

        assert first["fields"]["page"]["en-US"]["fields"]["title"]["en-US"] == "Home"
        assert plain["fields"]["page"]["en-US"] == link("p1")
        assert again == first
        assert inner.finds == ["n1", "p1"]


class TestIndex:
    """Tests for index() write-through and cache refresh."""

    @pytest.mark.asyncio
    async def test_refreshes_cached_entry(self):
        inner = CountingStore()
        store = CachingMiddleware(inner)
        await store.index(entry("a", revision=1, title="x"))
        await store.find("a")

        await store.index(entry("a", revision=2, title="y"))

        assert (await store.find("a"))["fields"]["title"]["en-US"] == "y"
        assert inner.finds == ["a"]

    @pytest.mark.asyncio
    async def test_index_replaces_nil_marker(self):
        store = CachingMiddleware(MemoryStore())
        assert await store.find("a") is None

        await store.index(entry("a", revision=1, title="x"))

        assert (await store.find("a"))["fields"]["title"]["en-US"] == "x"

    @pytest.mark.asyncio
    async def test_tombstone_reads_as_absent(self):
        store = CachingMiddleware(MemoryStore())
        await store.index(entry("a", revision=1))
        await store.find("a")

        result = await store.index(deleted_entry("a", revision=2))

        assert result is None
        assert await store.find("a") is None

    @pytest.mark.asyncio
    async def test_stale_index_returns_stored(self):
        store = CachingMiddleware(MemoryStore())
        await store.index(entry("a", revision=3, title="new"))
        await store.find("a")

        result = await store.index(entry("a", revision=2, title="old"))

        assert result["sys"]["revision"] == 3
        assert (await store.find("a"))["sys"]["revision"] == 3


class TestInvalidation:
    """Tests for set/delete invalidation."""

    @pytest.mark.asyncio
    async def test_set_invalidates(self):
        store = CachingMiddleware(MemoryStore())
        await store.set("a", entry("a", title="x"))
        await store.find("a")

        await store.set("a", entry("a", title="y"))

        assert (await store.find("a"))["fields"]["title"]["en-US"] == "y"

    @pytest.mark.asyncio
    async def test_delete_invalidates(self):
        store = CachingMiddleware(MemoryStore())
        await store.set("a", entry("a", title="x"))
        await store.find("a")

        await store.delete("a")

        assert await store.find("a") is None


class TestFindBy:
    """Tests for id-only find_by shortcuts."""

    @pytest.mark.asyncio
    async def test_cached_id_lookup(self):
        inner = CountingStore()
        await inner.index(entry("a", "page", title="x"))
        cache = DocumentCache()
        store = CachingMiddleware(inner, cache=cache)
        await store.find("a")

        found = await store.find_by("page", {"sys.id": "a"})

        assert found["sys"]["id"] == "a"

    @pytest.mark.asyncio
    async def test_cached_id_wrong_content_type(self):
        store = CachingMiddleware(MemoryStore())
        await store.index(entry("a", "page"))
        await store.find("a")

        assert await store.find_by("menu", {"sys.id": "a"}) is None

    @pytest.mark.asyncio
    async def test_other_filters_delegate(self):
        store = CachingMiddleware(MemoryStore())
        await store.index(entry("a", "page", slug="/"))

        found = await store.find_by("page", {"slug": "/"})

        assert found["sys"]["id"] == "a"
