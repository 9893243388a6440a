"""
Lazy on-demand cache over the remote API.

A RemoteStore whose find() results are kept in a DocumentCache. Nothing
is synced up front: a document is fetched the first time it is read and
served from the cache until it expires. Ids the remote API reports as
missing are cached as Nil markers so they are not requested again.

index() refreshes only ids that are already cached. Documents nobody
has read never enter the cache, which bounds its size to the working
set of previously accessed ids.

Invariants:
    - index() obeys the revision rule against the cached value
    - set() and delete() act on the cache only; the remote stays read-only
"""

from __future__ import annotations

import functools
import logging
from typing import Any

from ..cache import DocumentCache
from ..client.remote import RemoteClient
from ..document import (
    Document,
    content_type_of,
    document_type,
    reads_as_absent,
    validate_document,
)
from ..links import resolve_links, store_resolver
from .remote import RemoteStore

logger = logging.getLogger(__name__)


class LazyCacheStore(RemoteStore):
    """Remote passthrough store with a TTL cache in front of find().

    Example:
        >>> store = LazyCacheStore(client, ttl_seconds=300)
        >>> await store.find("7kqN4Hj1s")   # remote request
        >>> await store.find("7kqN4Hj1s")   # cached
    """

    indexes = True

    def __init__(
        self,
        client: RemoteClient,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
        ttl_seconds: float | None = 300.0,
        max_entries: int | None = None,
        cache: DocumentCache | None = None,
    ) -> None:
        super().__init__(client, default_locale, locale_fallbacks)
        self.cache = cache or DocumentCache(ttl_seconds=ttl_seconds, max_entries=max_entries)

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        loader = functools.partial(super().find, doc_id)
        found = await self.cache.find(doc_id, loader)
        depth = options.get("include")
        if found is not None and depth:
            found = await resolve_links(found, depth, store_resolver(self.find))
        return found

    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        if filter and list(filter.keys()) == ["sys.id"] and isinstance(filter["sys.id"], str):
            found = await self.find(filter["sys.id"], **(options or {}))
            if found is None:
                return None
            if content_type_of(found) == content_type or document_type(found) == content_type:
                return found
            return None
        return await super().find_by(content_type, filter, options)

    async def index(self, doc: Document) -> Document | None:
        info = validate_document(doc)
        applied, previous = self.cache.index(doc)
        if applied:
            logger.debug("Cached document refreshed", extra={"doc_id": info.id, "revision": info.revision})
            return None if info.kind.is_tombstone else doc
        if previous is None:
            return None
        return None if reads_as_absent(previous) else previous

    async def set(self, doc_id: str, value: Document) -> Document | None:
        previous = self.cache.get(doc_id)
        self.cache.set(doc_id, value, expires=False)
        return previous

    async def delete(self, doc_id: str) -> Document | None:
        previous = self.cache.get(doc_id)
        self.cache.delete(doc_id)
        return previous
