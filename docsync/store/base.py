"""
Base protocol and shared behavior for document stores.

This module defines the Store protocol that every backend and middleware
implements, the store error hierarchy, and BaseStore, which carries the
revision rule for index() so that backends only supply an atomic
compare-and-set primitive.

Invariants:
    - index() never lets a lower revision replace a higher one
    - Equal revisions overwrite (the latest delivery wins)
    - Tombstones are stored, not removed, and read as absent
    - set() and delete() are unconditional

How to change safely:
    - Protocol changes require updating every backend and StoreMiddleware
    - Keep _compare_and_set atomic in new backends; the revision check
      must not be split into separate read and write steps
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ..document import (
    Document,
    reads_as_absent,
    revision_of,
    validate_document,
)

if TYPE_CHECKING:
    from .query import Query

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class ReadOnlyStoreError(StoreError):
    """Write attempted against a store that only reads."""
    pass


class UnsupportedOperatorError(StoreError):
    """Query operator is not known or not supported by the backend."""
    pass


class QueryTooComplexError(StoreError):
    """Filter nests deeper than the supported limit."""
    pass


@runtime_checkable
class Store(Protocol):
    """Protocol for document stores.

    Read contract:
        - find() returns None for missing ids and for tombstones
        - find_all() returns a lazy, chainable Query
        - find_by() returns the first document matching the filter

    Write contract:
        - set()/delete() replace or clear the slot and return the previous value
        - index() applies a delivered document under the revision rule

    Example:
        >>> store = MemoryStore()
        >>> await store.index(doc)
        >>> page = await store.find_by("page", {"slug": "/home"})
    """

    indexes: bool

    @abstractmethod
    async def find(self, doc_id: str, **options: Any) -> Document | None:
        """Find a document by id, None when absent or deleted."""
        ...

    @abstractmethod
    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> Query:
        """Start a query over all documents of a content type."""
        ...

    @abstractmethod
    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        """Find the first document of a content type matching a filter."""
        ...

    @abstractmethod
    async def set(self, doc_id: str, value: Document) -> Document | None:
        """Unconditionally store a value, returning the previous one."""
        ...

    @abstractmethod
    async def delete(self, doc_id: str) -> Document | None:
        """Unconditionally remove a value, returning the previous one."""
        ...

    @abstractmethod
    async def index(self, doc: Document) -> Document | None:
        """Apply a delivered document under the revision rule.

        Returns:
            The value now visible for the id: the document itself when it
            was applied, the prior value when the write was stale, and
            None for tombstones.

        Raises:
            MalformedDocumentError: If the document has no id or kind
        """
        ...


class BaseStore(ABC):
    """Shared implementation for writable backends.

    Subclasses provide find(), find_all(), set(), delete() and an atomic
    _compare_and_set(). BaseStore derives index() and find_by() from them.

    Attributes:
        default_locale: Locale used to build field paths in queries
        locale_fallbacks: Fallback chain used by query conditions
    """

    indexes = True

    def __init__(
        self,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
    ) -> None:
        self.default_locale = default_locale
        self.locale_fallbacks = dict(locale_fallbacks or {})

    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        query = self.find_all(content_type, options)
        if filter:
            query = query.apply(filter)
        return await query.first()

    async def index(self, doc: Document) -> Document | None:
        info = validate_document(doc)

        applied, previous = await self._compare_and_set(info.id, doc)
        if not applied:
            logger.debug(
                "Stale revision ignored",
                extra={
                    "doc_id": info.id,
                    "revision": info.revision,
                    "stored_revision": revision_of(previous),
                },
            )
            return None if reads_as_absent(previous) else previous

        logger.debug(
            "Document indexed",
            extra={"doc_id": info.id, "kind": info.kind.value, "revision": info.revision},
        )
        if info.kind.is_tombstone:
            return None
        return doc

    @abstractmethod
    async def _compare_and_set(self, doc_id: str, doc: Document) -> tuple[bool, Document | None]:
        """Store doc unless the stored revision is higher.

        Must run as one atomic step with respect to other writers.

        Returns:
            (applied, previous) where previous is the value held before the call
        """
        ...

    @abstractmethod
    async def find(self, doc_id: str, **options: Any) -> Document | None:
        ...

    @abstractmethod
    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> Query:
        ...

    @abstractmethod
    async def set(self, doc_id: str, value: Document) -> Document | None:
        ...

    @abstractmethod
    async def delete(self, doc_id: str) -> Document | None:
        ...


def is_stale(doc: Document, previous: Document | None) -> bool:
    """Whether doc must be ignored because previous has a higher revision."""
    if previous is None:
        return False
    return revision_of(doc) < revision_of(previous)
