"""
TTL cache for documents.

Entries expire passively: an expired entry is dropped the next time it is
read, so no eviction thread is needed. Used by the caching middleware and
by the lazy on-demand store.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .document import (
    Document,
    deep_copy,
    is_nil,
    nil_document,
    reads_as_absent,
    revision_of,
    validate_document,
)

_CACHEABLE_ID = re.compile(r"^[\w.-]+$")


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and its absolute expiry (monotonic seconds)."""

    value: Any
    expires_at: float | None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True)
class CacheStats:
    entries: int
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry.

    Attributes:
        ttl_seconds: Default lifetime of new entries, None for no expiry
        max_entries: Size bound; the entry closest to expiry is evicted first
    """

    def __init__(
        self,
        ttl_seconds: float | None = 300.0,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any:
        """Cached value for key, None when missing or expired."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def contains(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        expires: bool = True,
    ) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl is not None and expires else None
        with self._lock:
            if (
                self.max_entries is not None
                and key not in self._entries
                and len(self._entries) >= self.max_entries
            ):
                self._evict_one()
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value, or load, cache and return it.

        The loader runs outside the lock; concurrent misses for the same key
        may both call it and the last result wins.
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                self._hits += 1
                return entry.value
            self._misses += 1

        value = await loader()
        self.set(key, value)
        return value

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def _evict_one(self) -> None:
        if not self._entries:
            return
        victim = min(self._entries, key=lambda k: self._entries[k].expires_at or float("inf"))
        del self._entries[victim]
        self._evictions += 1


class DocumentCache(TTLCache):
    """TTL cache holding documents, Nil markers and tombstones.

    A miss on find() caches either the loaded document or a Nil marker,
    so ids that are genuinely missing upstream are not fetched again
    until the entry expires. Tombstones and Nil markers read as absent.

    Invariants:
        - index() never replaces a cached document with a lower revision
        - index() only primes keys that are already cached unless prime=True
        - Ids with characters outside [A-Za-z0-9_.-] are never cached
        - Documents are copied on the way in and out; callers never hold cached state
    """

    async def find(
        self,
        doc_id: str,
        loader: Callable[[], Awaitable[Document | None]],
    ) -> Document | None:
        if not cacheable_id(doc_id):
            value = self.get(doc_id)
            if value is not None:
                return None if reads_as_absent(value) else deep_copy(value)
            return await loader()

        async def _load() -> Document:
            found = await loader()
            return found if found is not None else nil_document(doc_id)

        value = await self.fetch(doc_id, _load)
        return None if reads_as_absent(value) else deep_copy(value)

    def peek(self, doc_id: str) -> Document | None:
        """Cached document without loading; absent markers read as None."""
        value = self.get(doc_id)
        return None if reads_as_absent(value) else deep_copy(value)

    def index(self, doc: Document, prime: bool = False) -> tuple[bool, Document | None]:
        """Apply a delivered document to the cache under the revision rule.

        Returns:
            (applied, previous) with previous being the cached value before the call
        """
        info = validate_document(doc)
        ttl = self.ttl_seconds
        with self._lock:
            entry = self._live_entry(info.id)
            previous = entry.value if entry is not None else None
            if previous is None and not prime:
                return False, None
            if previous is not None and not is_nil(previous) and revision_of(previous) > info.revision:
                return False, deep_copy(previous)
            expires_at = self._clock() + ttl if ttl is not None else None
            self._entries[info.id] = CacheEntry(value=deep_copy(doc), expires_at=expires_at)
        return True, previous


def cacheable_id(doc_id: str) -> bool:
    return bool(_CACHEABLE_ID.match(doc_id or ""))
