"""
In-memory document store.

Holds every document in a dict guarded by a readers-writer lock. Useful
for:
- Unit and integration tests
- Small collections that fit comfortably in process memory
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Stored values are copies; callers cannot mutate store state
    - find_all() snapshots under the read lock, then filters outside it

How to change safely:
    - Keep condition evaluation in line with the SQLite predicates
    - Never await while holding the lock
"""

from __future__ import annotations

import copy
import logging
import operator
from collections.abc import Callable, Iterable
from typing import Any

from ..document import (
    Document,
    DocumentKind,
    content_type_of,
    deep_copy,
    document_type,
    is_link,
    reads_as_absent,
)
from .base import BaseStore, UnsupportedOperatorError, is_stale
from .locks import ReadWriteLock
from .query import LINK_KEYS, Condition, Query, as_list, order_terms

logger = logging.getLogger(__name__)

Lookup = Callable[[str], "Document | None"]

_COMPARATORS = {
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}


class MemoryStore(BaseStore):
    """Document store backed by a plain dict.

    Thread safety:
        Reads share a ReadWriteLock, writes hold it exclusively. Safe to
        call from many coroutines and threads.

    Example:
        >>> store = MemoryStore()
        >>> await store.index(doc)
        >>> await store.find(doc["sys"]["id"])
    """

    def __init__(
        self,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
    ) -> None:
        super().__init__(default_locale, locale_fallbacks)
        self._values: dict[str, Document] = {}
        self._lock = ReadWriteLock()

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        with self._lock.read():
            value = self._values.get(doc_id)
        if reads_as_absent(value):
            return None
        return deep_copy(value)

    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> MemoryQuery:
        return MemoryQuery(
            self,
            content_type,
            options,
            default_locale=self.default_locale,
            locale_fallbacks=self.locale_fallbacks,
        )

    async def set(self, doc_id: str, value: Document) -> Document | None:
        value = copy.deepcopy(value)
        with self._lock.write():
            previous = self._values.get(doc_id)
            self._values[doc_id] = value
        return previous

    async def delete(self, doc_id: str) -> Document | None:
        with self._lock.write():
            return self._values.pop(doc_id, None)

    async def _compare_and_set(self, doc_id: str, doc: Document) -> tuple[bool, Document | None]:
        value = copy.deepcopy(doc)
        with self._lock.write():
            previous = self._values.get(doc_id)
            if is_stale(value, previous):
                return False, deep_copy(previous)
            self._values[doc_id] = value
        return True, previous

    def keys(self) -> list[str]:
        """Ids of every stored value, tombstones included (testing helper)."""
        with self._lock.read():
            return list(self._values)

    def raw(self, doc_id: str) -> Document | None:
        """Stored value without tombstone masking (testing helper)."""
        with self._lock.read():
            return self._values.get(doc_id)

    def snapshot(self) -> dict[str, Document]:
        with self._lock.read():
            return dict(self._values)


class MemoryQuery(Query):
    """Query evaluated against a snapshot of a MemoryStore."""

    store: MemoryStore

    async def _execute(self) -> list[Document]:
        values = self.store.snapshot()

        relation: Iterable[Document] = (
            doc for doc in values.values() if self._matches_content_type(doc)
        )
        for condition in self.conditions:
            relation = _filtered(relation, condition, values.get)

        results = page(sort_documents(list(relation), order_terms(self)), self.options)
        return [deep_copy(doc) for doc in results]

    def _matches_content_type(self, doc: Document) -> bool:
        kind = document_type(doc)
        if self.content_type == DocumentKind.ASSET.value:
            return kind == DocumentKind.ASSET.value
        return kind == DocumentKind.ENTRY.value and content_type_of(doc) == self.content_type


def _filtered(relation: Iterable[Document], condition: Condition, lookup: Lookup) -> Iterable[Document]:
    return (doc for doc in relation if matches(doc, condition, lookup))


def matches(doc: Document, condition: Condition, lookup: Lookup) -> bool:
    """Evaluate a condition against a document, following links via lookup."""
    positive = condition.positive()
    found = any(
        evaluate(variant.op, values_at(doc, variant.path, lookup), variant.expected)
        for variant in positive.each_locale_fallback()
    )
    return not found if condition.negated else found


def evaluate(op: str, candidates: list[Any], expected: Any) -> bool:
    """Apply a positive operator to the values found at a path.

    Array fields contribute each element as a candidate, so eq on an array
    means "contains".
    """
    if op == "eq":
        return any(c == expected for c in candidates)
    if op == "in":
        return any(c in as_list(expected) for c in candidates)
    if op == "all":
        return all(e in candidates for e in as_list(expected))
    if op == "exists":
        return bool(candidates) == bool(expected)
    if op == "match":
        needle = str(expected).lower()
        return any(isinstance(c, str) and needle in c.lower() for c in candidates)
    if op in _COMPARATORS:
        compare = _COMPARATORS[op]
        for c in candidates:
            try:
                if compare(c, expected):
                    return True
            except TypeError:
                continue
        return False
    raise UnsupportedOperatorError(f"Operator not implemented: {op}")


def values_at(doc: Document, path: Iterable[str], lookup: Lookup) -> list[Any]:
    """Collect every value reachable at path.

    Lists are flattened at each step. When the path continues into a link
    descriptor beyond its own sys keys, the linked document is fetched with
    lookup and the walk continues inside it.
    """
    keys = list(path)
    current: list[Any] = [doc]
    for i, key in enumerate(keys):
        following = keys[i + 1] if i + 1 < len(keys) else None
        step: list[Any] = []
        for value in _flatten(current):
            if is_link(value) and _crosses_link(key, following):
                value = lookup(value["sys"]["id"])
                if reads_as_absent(value):
                    continue
            if isinstance(value, dict) and key in value:
                step.append(value[key])
        current = step
    return [v for v in _flatten(current) if v is not None]


def _crosses_link(key: str, following: str | None) -> bool:
    if key == "fields":
        return True
    return key == "sys" and following not in LINK_KEYS


def _flatten(values: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if isinstance(value, list):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def sort_documents(docs: list[Document], terms: list[tuple[list[str], bool]]) -> list[Document]:
    """Stable multi-key sort; documents without a value sort last."""
    for path, descending in reversed(terms):
        present = []
        missing = []
        for doc in docs:
            values = values_at(doc, path, lambda _id: None)
            if values:
                present.append((values[0], doc))
            else:
                missing.append(doc)
        present.sort(key=lambda pair: pair[0], reverse=descending)
        docs = [doc for _, doc in present] + missing
    return docs


def page(docs: list[Document], options: dict[str, Any]) -> list[Document]:
    skip = int(options.get("skip") or 0)
    limit = options.get("limit")
    if limit is None:
        return docs[skip:]
    return docs[skip:skip + int(limit)]
