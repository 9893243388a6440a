"""
Unit tests for link resolution.

Tests cover:
- Depth handling
- All-locales and single-locale documents
- Arrays of links
- Unresolvable links and cycles
"""

import pytest

from docsync.links import is_embedded_document, resolve_links, store_resolver
from docsync.store.memory import MemoryStore
from tests.helpers import entry, link


async def seeded(*docs):
    store = MemoryStore()
    for doc in docs:
        await store.index(doc)
    return store


class TestResolveLinks:
    """Tests for resolve_links."""

    @pytest.mark.asyncio
    async def test_depth_zero_keeps_links(self):
        store = await seeded(entry("p1", title="Home"))
        doc = entry("n1", "nav", page=link("p1"))

        assert await resolve_links(doc, 0, store_resolver(store.find)) is doc
        assert await resolve_links(doc, None, store_resolver(store.find)) is doc

    @pytest.mark.asyncio
    async def test_all_locales(self):
        store = await seeded(entry("p1", title="Home"))
        doc = entry("n1", "nav", page=link("p1"))

        resolved = await resolve_links(doc, 1, store_resolver(store.find))

        assert resolved["fields"]["page"]["en-US"]["fields"]["title"]["en-US"] == "Home"
        assert doc["fields"]["page"]["en-US"] == link("p1")

    @pytest.mark.asyncio
    async def test_single_locale(self):
        store = await seeded(entry("p1", title="Home"))
        doc = {"sys": {"id": "n1", "type": "Entry", "locale": "en-US"}, "fields": {"page": link("p1")}}

        resolved = await resolve_links(doc, 1, store_resolver(store.find))

        assert resolved["fields"]["page"]["sys"]["id"] == "p1"

    @pytest.mark.asyncio
    async def test_array_of_links(self):
        store = await seeded(entry("a", title="A"), entry("b", title="B"))
        doc = entry("n1", "nav", items=[link("a"), link("missing"), link("b")])

        resolved = await resolve_links(doc, 1, store_resolver(store.find))

        items = resolved["fields"]["items"]["en-US"]
        assert items[0]["sys"]["id"] == "a"
        assert items[1] == link("missing")
        assert items[2]["fields"]["title"]["en-US"] == "B"

    @pytest.mark.asyncio
    async def test_depth_limits_hops(self):
        store = await seeded(entry("p1", parent=link("p2")), entry("p2", title="Root"))
        doc = entry("n1", "nav", page=link("p1"))

        one = await resolve_links(doc, 1, store_resolver(store.find))
        two = await resolve_links(doc, 2, store_resolver(store.find))

        assert one["fields"]["page"]["en-US"]["fields"]["parent"]["en-US"] == link("p2")
        assert two["fields"]["page"]["en-US"]["fields"]["parent"]["en-US"]["sys"]["id"] == "p2"

    @pytest.mark.asyncio
    async def test_cycle_bounded_by_depth(self):
        store = await seeded(entry("a", other=link("b")), entry("b", other=link("a")))

        resolved = await resolve_links(await store.find("a"), 3, store_resolver(store.find))

        hop = resolved["fields"]["other"]["en-US"]
        hop = hop["fields"]["other"]["en-US"]
        hop = hop["fields"]["other"]["en-US"]
        assert hop["sys"]["id"] == "b"
        assert hop["fields"]["other"]["en-US"] == link("a")

    @pytest.mark.asyncio
    async def test_non_link_values_untouched(self):
        doc = entry("a", title="x", location={"lat": 1.0, "lon": 2.0})

        async def never(value):
            raise AssertionError("resolver called")

        resolved = await resolve_links(doc, 2, never)

        assert resolved == doc


class TestIsEmbeddedDocument:
    """Tests for is_embedded_document."""

    def test_kinds(self):
        assert is_embedded_document(entry("a"))
        assert is_embedded_document({"sys": {"id": "x", "type": "Asset"}})
        assert not is_embedded_document(link("a"))
        assert not is_embedded_document({"sys": {"id": "x", "type": "DeletedEntry"}})
        assert not is_embedded_document("a")
