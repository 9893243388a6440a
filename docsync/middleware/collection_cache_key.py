"""
Collection cache keys for filtered queries.

HTTP layers that render a filtered collection want an ETag-like key that
changes whenever the collection's content changes. This middleware makes
find_all() return a CacheableQuery whose cache_key() is derived from the
most recently updated matching document and the serialized query:

    sha1("{id}:{updatedAt}:{query.to_param()}")

The key is for callers to use; nothing is stored in the Store itself.

Invariants:
    - Identical queries over an unchanged collection produce identical keys
    - A query over a chain containing a filtering middleware raises
      NotCacheableError, because select() can hide the document the key
      would be derived from
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from ..cache import TTLCache
from ..document import Document
from ..store.base import Store
from .base import MiddlewareQuery, StoreMiddleware

logger = logging.getLogger(__name__)


class NotCacheableError(Exception):
    """Cache key requested for a query whose results are not deterministic."""

    def __init__(self, query: Any, message: str | None = None) -> None:
        super().__init__(message or f"query {query!r} is not cacheable")
        self.query = query


class CollectionCacheKeyMiddleware(StoreMiddleware):
    """Expose cache keys on find_all() queries.

    Attributes:
        cache: Optional result cache; when set, find_by() results are
            memoized under their query's cache key
    """

    def __init__(self, store: Store, cache: TTLCache | None = None) -> None:
        super().__init__(store)
        self.cache = cache

    @property
    def cacheable(self) -> bool:
        """Whether no middleware below this one filters documents."""
        store = self.store
        while isinstance(store, StoreMiddleware):
            if store.custom_select:
                return False
            store = store.store
        return True

    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> CacheableQuery:
        return CacheableQuery(self.store.find_all(content_type, options), self)

    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        query = self.find_all(content_type, options)
        if filter:
            query = query.apply(filter)
        if self.cache is None or not query.cacheable:
            return await query.first()

        key = await query.cache_key()
        return await self.cache.fetch(key, query.first)


class CacheableQuery(MiddlewareQuery):
    """Query that can derive a cache key for its result set."""

    middleware: CollectionCacheKeyMiddleware

    @property
    def cacheable(self) -> bool:
        return self.options.get("cacheable", True) and self.middleware.cacheable

    async def cache_key(self) -> str:
        """SHA-1 key over the newest matching document and the query.

        Raises:
            NotCacheableError: If the query cannot produce a stable key
        """
        if not self.cacheable:
            raise NotCacheableError(self)

        newest = await self._last_modified_entry()
        sys = (newest or {}).get("sys") or {}
        params = [sys.get("id") or "", sys.get("updatedAt") or "", self.to_param()]
        return hashlib.sha1(":".join(params).encode("utf-8")).hexdigest()

    async def last_modified(self) -> str | None:
        """updatedAt of the newest matching document.

        Raises:
            NotCacheableError: If the query cannot produce a stable key
        """
        if not self.cacheable:
            raise NotCacheableError(self)

        newest = await self._last_modified_entry()
        return ((newest or {}).get("sys") or {}).get("updatedAt")

    async def _last_modified_entry(self) -> Document | None:
        query = self.wrapped.with_options(order="-sys.updatedAt", limit=1, skip=0, include=0)
        return await query.first()
