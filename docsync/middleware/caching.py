"""
Caching middleware.

Puts a DocumentCache in front of any store. find() and id-only find_by()
calls are answered from the cache; misses fall through to the wrapped
store and the result (or a Nil marker for missing ids) is cached until it
expires. index() writes through to the wrapped store and then refreshes
the cache under the same revision rule the backends apply.

Invariants:
    - A cached tombstone or Nil marker reads as absent
    - index() refreshes only ids that were already read through the cache
    - set() and delete() invalidate the cached id
"""

from __future__ import annotations

import logging
from typing import Any

from ..cache import DocumentCache
from ..document import Document, content_type_of, reads_as_absent, validate_document
from ..links import resolve_links, store_resolver
from ..store.base import Store
from .base import StoreMiddleware

logger = logging.getLogger(__name__)


class CachingMiddleware(StoreMiddleware):
    """Read-through document cache for a wrapped store.

    Example:
        >>> store = CachingMiddleware(SQLiteStore(path), ttl_seconds=60)
        >>> await store.find("7kqN4Hj1s")   # hits SQLite
        >>> await store.find("7kqN4Hj1s")   # served from the cache
    """

    def __init__(
        self,
        store: Store,
        ttl_seconds: float | None = 300.0,
        max_entries: int | None = None,
        cache: DocumentCache | None = None,
    ) -> None:
        super().__init__(store)
        self.cache = cache or DocumentCache(ttl_seconds=ttl_seconds, max_entries=max_entries)

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        found = await self.cache.find(doc_id, lambda: self.store.find(doc_id))
        if found is not None and options.get("include"):
            found = await resolve_links(found, options["include"], store_resolver(self.find))
        return found

    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        options = dict(options or {})
        if filter and list(filter.keys()) == ["sys.id"] and isinstance(filter["sys.id"], str):
            found = self.cache.peek(filter["sys.id"])
            if found is not None:
                if content_type_of(found) != content_type and found["sys"].get("type") != content_type:
                    return None
                if options.get("include"):
                    found = await resolve_links(found, options["include"], store_resolver(self.find))
                return found

        return await self.store.find_by(content_type, filter, options)

    async def index(self, doc: Document) -> Document | None:
        info = validate_document(doc)

        delegated = None
        if self.store.indexes:
            delegated = await self.store.index(doc)

        applied, previous = self.cache.index(doc)
        if applied:
            logger.debug("Cache refreshed", extra={"doc_id": info.id, "revision": info.revision})

        if self.store.indexes:
            return delegated
        if not applied and previous is not None:
            return None if reads_as_absent(previous) else previous
        return None if info.kind.is_tombstone else doc

    async def set(self, doc_id: str, value: Document) -> Document | None:
        self.cache.delete(doc_id)
        return await self.store.set(doc_id, value)

    async def delete(self, doc_id: str) -> Document | None:
        self.cache.delete(doc_id)
        return await self.store.delete(doc_id)
