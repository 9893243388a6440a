"""
Backend-agnostic query objects.

find_all() returns a Query: an immutable description of a content type,
a list of Conditions and read options. Every chaining call returns a new
Query; nothing touches the backend until the results are consumed with
``async for``, to_list(), first() or count().

Field paths:
    "slug"                      -> fields.slug.<locale>
    "id"                        -> sys.id
    "sys.contentType.sys.id"    -> sys.contentType.sys.id
    "page.title"                -> fields.page.<locale>.fields.title.<locale>
    "page.id"                   -> fields.page.<locale>.sys.id

A path that continues after a localized field crosses a link into the
linked document. Conditions on such paths are expanded with the locale
fallback chain at every hop (see locales.expand_locale_paths); a
condition holds when any expanded variant holds. Negative operators
(ne, nin, exists=false) hold when no variant of their positive
counterpart holds.

Invariants:
    - Query objects are never mutated after construction
    - Filters nest at most MAX_FILTER_DEPTH levels

How to change safely:
    - New operators must be added to OPERATORS and to every backend
    - Keep to_param() deterministic; cache keys are derived from it
"""

from __future__ import annotations

import copy
import json
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterator

from ..document import Document
from ..links import resolve_links, store_resolver
from ..locales import STAR, expand_locale_paths
from .base import QueryTooComplexError, UnsupportedOperatorError

if TYPE_CHECKING:
    from .base import Store

OPERATORS = ("eq", "ne", "all", "in", "nin", "exists", "lt", "lte", "gt", "gte", "match")

NEGATIONS = {"ne": "eq", "nin": "in"}

LINK_KEYS = ("id", "type", "linkType")

MAX_FILTER_DEPTH = 7


def is_operator(key: Any) -> bool:
    return isinstance(key, str) and key.lstrip("$") in OPERATORS


@dataclass(frozen=True)
class Condition:
    """A single predicate on a document path.

    Attributes:
        path: Full path into the document, locales included
        op: Operator name (one of OPERATORS)
        expected: Value to compare against
        locale_fallbacks: Fallback chain applied to every localized hop
    """

    path: tuple[str, ...]
    op: str
    expected: Any
    locale_fallbacks: Mapping[str, str] = field(default_factory=dict, compare=False)

    @property
    def path_tuples(self) -> list[list[str | None]]:
        """Split the path into one tuple per document hop.

        Example:
            fields.page.en-US.fields.title.en-US ->
            [['fields', 'page', 'en-US'], ['fields', 'title', 'en-US']]
        """
        hops: list[list[str | None]] = []
        remaining = list(self.path)
        while remaining:
            head = remaining.pop(0)
            if head == "sys":
                hops.append(["sys", *remaining])
                break

            name = remaining.pop(0) if remaining else None
            locale = remaining.pop(0) if remaining else None
            hop: list[str | None] = [head, name, locale]
            if len(remaining) >= 2 and remaining[0] == "sys" and remaining[1] in LINK_KEYS:
                hop.extend(remaining[:2])
                remaining = remaining[2:]
            hops.append(hop)
        return hops

    def each_locale_fallback(self) -> Iterator[Condition]:
        """Yield this condition once per locale-fallback path variant."""
        for path in expand_locale_paths(self.path_tuples, self.locale_fallbacks):
            yield replace(self, path=tuple(path))

    @property
    def negated(self) -> bool:
        return self.op in NEGATIONS or (self.op == "exists" and not self.expected)

    def positive(self) -> Condition:
        """The non-negated form of this condition."""
        if self.op in NEGATIONS:
            return replace(self, op=NEGATIONS[self.op])
        if self.op == "exists":
            return replace(self, expected=True)
        return self

    def to_param(self) -> list[Any]:
        return [".".join(self.path), self.op, self.expected]


class Query:
    """Immutable, chainable query over one content type.

    Subclasses implement _execute() to fetch matching documents from their
    backend. Consumers iterate the query asynchronously:

        >>> query = store.find_all("page").eq("slug", "/home")
        >>> async for page in query:
        ...     print(page["sys"]["id"])

    Options:
        locale: Locale used for field paths ("*" uses the default locale)
        include: Depth of link resolution applied to each result
        order: Comma-separated sort paths, "-" prefix for descending
        limit / skip: Paging applied after ordering
    """

    OPERATORS = OPERATORS

    def __init__(
        self,
        store: Store,
        content_type: str,
        options: dict[str, Any] | None = None,
        conditions: tuple[Condition, ...] = (),
        default_locale: str = "en-US",
        locale_fallbacks: Mapping[str, str] | None = None,
    ) -> None:
        self.store = store
        self.content_type = content_type
        self.options = dict(options or {})
        self.conditions = tuple(conditions)
        self.default_locale = default_locale
        self.locale_fallbacks = dict(locale_fallbacks or {})

    @property
    def locale(self) -> str:
        locale = self.options.get("locale") or self.default_locale
        if locale == STAR:
            return self.default_locale
        return locale

    def _copy(self, **changes: Any) -> Query:
        clone = copy.copy(self)
        for name, value in changes.items():
            setattr(clone, name, value)
        return clone

    def with_options(self, **options: Any) -> Query:
        """Return a copy with read options merged in."""
        return self._copy(options={**self.options, **options})

    def apply_operator(self, op: str, field_name: str, expected: Any) -> Query:
        """Return a copy with one more condition.

        Raises:
            UnsupportedOperatorError: If op is not a known operator
        """
        op = op.lstrip("$")
        if op not in self.OPERATORS:
            raise UnsupportedOperatorError(f"Operator not implemented: {op}")
        if op == "exists" and isinstance(expected, str):
            expected = expected.lower() not in ("false", "0", "")
        condition = Condition(
            path=tuple(self.build_path(field_name)),
            op=op,
            expected=expected,
            locale_fallbacks=self.locale_fallbacks,
        )
        return self._copy(conditions=self.conditions + (condition,))

    def build_path(self, field_name: str) -> list[str]:
        """Translate a dotted field name into a document path."""
        parts = [p for p in str(field_name).split(".") if p]
        path: list[str] = []
        while parts:
            head = parts.pop(0)
            if head == "sys":
                path.extend(["sys", *parts])
                break
            if head == "id":
                path.extend(["sys", "id"])
                break
            if head == "fields":
                if not parts:
                    break
                head = parts.pop(0)
            path.extend(["fields", head, self.locale])
        return path

    def eq(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("eq", field_name, expected)

    def ne(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("ne", field_name, expected)

    def all(self, field_name: str, expected: list[Any]) -> Query:
        return self.apply_operator("all", field_name, expected)

    def in_(self, field_name: str, expected: list[Any]) -> Query:
        return self.apply_operator("in", field_name, expected)

    def nin(self, field_name: str, expected: list[Any]) -> Query:
        return self.apply_operator("nin", field_name, expected)

    def exists(self, field_name: str, expected: bool = True) -> Query:
        return self.apply_operator("exists", field_name, expected)

    def lt(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("lt", field_name, expected)

    def lte(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("lte", field_name, expected)

    def gt(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("gt", field_name, expected)

    def gte(self, field_name: str, expected: Any) -> Query:
        return self.apply_operator("gte", field_name, expected)

    def match(self, field_name: str, expected: str) -> Query:
        return self.apply_operator("match", field_name, expected)

    def apply(self, filter: Mapping[str, Any]) -> Query:
        """Apply a filter object.

        Example:
            >>> query.apply({"slug": "/home", "page.title": {"ne": "Draft"}})

        Raises:
            QueryTooComplexError: If the filter nests too deeply
            UnsupportedOperatorError: If an operator is unknown
        """
        query: Query = self
        for key, value in normalize_filter(filter).items():
            query = query._apply(key, value)
        return query

    def _apply(self, field_name: str, value: Any) -> Query:
        if isinstance(value, dict) and value:
            if is_operator(next(iter(value))):
                query: Query = self
                for op, expected in value.items():
                    query = query.apply_operator(op, field_name, expected)
                return query
            return self._nested_conditions(field_name, value)
        return self.apply_operator("eq", field_name, value)

    def _nested_conditions(self, field_name: str, value: dict[str, Any]) -> Query:
        query: Query = self
        for key, nested in value.items():
            query = query._apply(f"{field_name}.{key}", nested)
        return query

    def to_param(self) -> str:
        """Deterministic serialization of content type, conditions and options."""
        return json.dumps(
            {
                "content_type": self.content_type,
                "conditions": [c.to_param() for c in self.conditions],
                "options": {k: v for k, v in self.options.items() if k != "include"},
            },
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

    # Execution

    async def _execute(self) -> list[Document]:
        """Fetch matching documents, ordered and paged."""
        raise NotImplementedError

    async def resolve_includes(self, doc: Document, depth: int) -> Document:
        return await resolve_links(doc, depth, store_resolver(self.store.find))

    async def _finish(self, doc: Document) -> Document:
        depth = self.options.get("include")
        if depth:
            doc = await self.resolve_includes(doc, depth)
        return doc

    def __aiter__(self) -> AsyncIterator[Document]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Document]:
        for doc in await self._execute():
            yield await self._finish(doc)

    async def to_list(self) -> list[Document]:
        return [doc async for doc in self]

    async def first(self) -> Document | None:
        async for doc in self:
            return doc
        return None

    async def count(self) -> int:
        return len(await self._execute())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_param()})"


def normalize_filter(filter: Mapping[str, Any], depth: int = 0) -> dict[str, Any]:
    """Expand dot-notation keys into nested dicts.

    Example:
        >>> normalize_filter({"page.title": "x"})
        {'page': {'title': 'x'}}
    """
    if depth > MAX_FILTER_DEPTH:
        raise QueryTooComplexError(f"Query is too complex (depth > {MAX_FILTER_DEPTH})")

    result: dict[str, Any] = {}
    for key, value in filter.items():
        key = str(key)
        if "." in key and not is_operator(key):
            key, rest = key.split(".", 1)
            value = {rest: value}
        if isinstance(value, dict):
            value = normalize_filter(value, depth + 1)
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def order_terms(query: Query) -> list[tuple[list[str], bool]]:
    """Parse the order option into (path, descending) pairs."""
    order = query.options.get("order")
    if not order:
        return []
    terms = order.split(",") if isinstance(order, str) else list(order)
    parsed = []
    for term in terms:
        term = term.strip()
        if not term:
            continue
        descending = term.startswith("-")
        parsed.append((query.build_path(term.lstrip("-")), descending))
    return parsed


def as_list(value: Any) -> list[Any]:
    """Expected value of in/nin/all as a list; strings are comma separated."""
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [v.strip() for v in value.split(",")]
    return [value]
