"""
Store middleware base class.

A middleware implements the Store protocol by wrapping the next store in
the chain. Writes pass straight through. Reads pass through two hooks:

    select(doc, options) -> bool   drop documents the caller must not see
    transform(doc, options) -> doc reshape documents on the way out

Hooks run on every read path: find(), find_by(), and each item yielded by
a find_all() query. When the caller asks for linked documents
(options["include"]), every resolved link passes through the hooks too;
a linked document rejected by select() is left as a raw link descriptor.

Invariants:
    - Hooks never run on write paths
    - The wrapped store is fixed at construction

How to change safely:
    - Override select/transform rather than the read methods
    - A middleware that filters with select() makes queries non-cacheable;
      set custom_select = True in that case
"""

from __future__ import annotations

from typing import Any

from ..document import Document, is_link, make_link, link_type_of
from ..links import is_embedded_document, resolve_links
from ..store.base import Store
from ..store.query import Query


class StoreMiddleware:
    """Base class for store decorators.

    Attributes:
        store: The next store in the chain
        custom_select: Whether select() filters documents
    """

    custom_select = False

    def __init__(self, store: Store) -> None:
        self.store = store

    @property
    def indexes(self) -> bool:
        return getattr(self.store, "indexes", True)

    # Hooks

    def select(self, doc: Document, options: dict[str, Any]) -> bool:
        return True

    def transform(self, doc: Document, options: dict[str, Any]) -> Document:
        return doc

    # Reads

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        found = await self.store.find(doc_id, **options)
        if found is None or not self.select(found, options):
            return None
        if options.get("include"):
            found = await self.resolve_includes(found, options["include"], options)
        return self.transform(found, options)

    async def find_by(
        self,
        content_type: str,
        filter: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Document | None:
        options = dict(options or {})
        result = await self.store.find_by(content_type, filter, options)
        if result is None or not self.select(result, options):
            return None
        if options.get("include"):
            result = await self.resolve_includes(result, options["include"], options)
        return self.transform(result, options)

    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> MiddlewareQuery:
        return MiddlewareQuery(self.store.find_all(content_type, options), self)

    async def resolve_includes(self, doc: Document, depth: int, options: dict[str, Any]) -> Document:
        async def _resolve(value: Document) -> Document | None:
            return await self.resolve_link(value, options)

        return await resolve_links(doc, depth, _resolve)

    async def resolve_link(self, value: Document, options: dict[str, Any]) -> Document | None:
        """Pass a linked document through the hooks.

        Raw links are fetched through this middleware's find(); embedded
        documents already resolved by the wrapped store are checked with
        select() and transformed.
        """
        if is_link(value):
            link_options = {k: v for k, v in options.items() if k != "include"}
            return await self.find(value["sys"]["id"], **link_options)
        if not is_embedded_document(value):
            return value
        if self.select(value, options):
            return self.transform(value, options)
        return make_link(value["sys"]["id"], link_type_of(value))

    # Writes

    async def set(self, doc_id: str, value: Document) -> Document | None:
        return await self.store.set(doc_id, value)

    async def delete(self, doc_id: str) -> Document | None:
        return await self.store.delete(doc_id)

    async def index(self, doc: Document) -> Document | None:
        return await self.store.index(doc)


class MiddlewareQuery(Query):
    """Query wrapper that applies a middleware's hooks to each result.

    Chaining methods are forwarded to the wrapped query, so the backend
    still compiles every condition natively.
    """

    def __init__(self, wrapped: Query, middleware: StoreMiddleware) -> None:
        self.wrapped = wrapped
        self.middleware = middleware

    @property
    def store(self) -> Any:
        return self.middleware

    @property
    def content_type(self) -> str:
        return self.wrapped.content_type

    @property
    def options(self) -> dict[str, Any]:
        return self.wrapped.options

    @property
    def conditions(self) -> tuple:
        return self.wrapped.conditions

    @property
    def default_locale(self) -> str:
        return self.wrapped.default_locale

    @property
    def locale_fallbacks(self) -> dict[str, str]:
        return self.wrapped.locale_fallbacks

    def _rewrap(self, wrapped: Query) -> MiddlewareQuery:
        return type(self)(wrapped, self.middleware)

    def with_options(self, **options: Any) -> MiddlewareQuery:
        return self._rewrap(self.wrapped.with_options(**options))

    def apply_operator(self, op: str, field_name: str, expected: Any) -> MiddlewareQuery:
        return self._rewrap(self.wrapped.apply_operator(op, field_name, expected))

    def build_path(self, field_name: str) -> list[str]:
        return self.wrapped.build_path(field_name)

    async def _execute(self) -> list[Document]:
        docs = await self.wrapped.to_list()
        return [doc for doc in docs if self.middleware.select(doc, self.options)]

    async def _finish(self, doc: Document) -> Document:
        depth = self.options.get("include")
        if depth:
            doc = await self.middleware.resolve_includes(doc, depth, self.options)
        return self.middleware.transform(doc, self.options)
