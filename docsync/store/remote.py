"""
Read-only passthrough store over the remote content API.

Every read goes to the remote API. Each find_all() query compiles its
conditions into request parameters:

    find_all("page").eq("slug", "/home").ne("title", "Draft")
    -> GET entries?content_type=page&fields.slug=/home&fields.title[ne]=Draft

The request is only sent once the query is consumed. Linked documents
delivered in the response's includes are used to resolve links before
falling back to further find() calls.

Invariants:
    - set(), delete() and index() raise ReadOnlyStoreError
    - A 404 from the remote API reads as None
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from ..client.errors import NotFoundError
from ..client.remote import RemoteClient
from ..document import Document, DocumentKind
from ..links import resolve_links
from ..locales import STAR
from .base import ReadOnlyStoreError
from .query import Condition, Query, as_list

logger = logging.getLogger(__name__)


class RemoteStore:
    """Store that answers every read from the remote API.

    Example:
        >>> store = RemoteStore(RemoteClient("space", "token"))
        >>> await store.find_all("page").eq("slug", "/home").first()
    """

    indexes = False

    def __init__(
        self,
        client: RemoteClient,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
    ) -> None:
        self.client = client
        self.default_locale = default_locale
        self.locale_fallbacks = dict(locale_fallbacks or {})

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        """Find an entry or asset by id in the all-locales shape."""
        params: dict[str, Any] = {"locale": options.get("locale") or STAR}
        depth = options.get("include")
        if depth:
            query = RemoteQuery(self, "", {**params, "include": depth}).eq("sys.id", doc_id)
            found = await query.first()
            if found is not None:
                return found

        try:
            return await self.client.entry(doc_id, params)
        except NotFoundError:
            pass
        try:
            return await self.client.asset(doc_id, params)
        except NotFoundError:
            return None

    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> RemoteQuery:
        return RemoteQuery(
            self,
            content_type,
            options,
            default_locale=self.default_locale,
            locale_fallbacks=self.locale_fallbacks,
        )

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

    async def set(self, doc_id: str, value: Document) -> Document | None:
        raise ReadOnlyStoreError("The remote API store is read-only")

    async def delete(self, doc_id: str) -> Document | None:
        raise ReadOnlyStoreError("The remote API store is read-only")

    async def index(self, doc: Document) -> Document | None:
        raise ReadOnlyStoreError("The remote API store is read-only")


class RemoteQuery(Query):
    """Query compiled into remote API request parameters."""

    store: RemoteStore

    @property
    def endpoint(self) -> str:
        if self.content_type == DocumentKind.ASSET.value:
            return "assets"
        return "entries"

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.content_type and self.content_type != DocumentKind.ASSET.value:
            params["content_type"] = self.content_type
        for condition in self.conditions:
            key, value = condition_param(condition)
            params[key] = value
        if self.options.get("locale"):
            params["locale"] = self.options["locale"]
        if self.options.get("include") is not None:
            params["include"] = self.options["include"]
        for option in ("order", "limit", "skip"):
            if self.options.get(option) is not None:
                params[option] = self.options[option]
        return params

    async def _fetch(self) -> tuple[list[Document], dict[str, Document]]:
        params = self.to_params()
        limit = self.options.get("limit")
        docs: list[Document] = []
        includes: dict[str, Document] = {}

        logger.debug("Querying remote API", extra={"endpoint": self.endpoint, "params": params})
        async for page in self.store.client.pages(self.endpoint, params):
            docs.extend(page.items)
            includes.update(page.includes)
            if limit is not None and len(docs) >= int(limit):
                return docs[: int(limit)], includes
        return docs, includes

    async def _execute(self) -> list[Document]:
        docs, _ = await self._fetch()
        return docs

    async def _iterate(self) -> AsyncIterator[Document]:
        docs, includes = await self._fetch()
        depth = self.options.get("include")

        async def _resolve(value: Document) -> Document | None:
            doc_id = value["sys"]["id"]
            if doc_id in includes:
                return includes[doc_id]
            return await self.store.find(doc_id)

        for doc in docs:
            if depth:
                doc = await resolve_links(doc, depth, _resolve)
            yield doc


def condition_param(condition: Condition) -> tuple[str, Any]:
    """Remote API parameter for a condition, locales stripped.

    Example:
        fields.page.en-US.sys.id eq "x" -> ("fields.page.sys.id", "x")
    """
    segments: list[str] = []
    for hop in condition.path_tuples:
        if hop[0] == "fields":
            segments.extend(p for i, p in enumerate(hop) if i != 2 and p is not None)
        else:
            segments.extend(p for p in hop if p is not None)

    key = ".".join(segments)
    if condition.op != "eq":
        key = f"{key}[{condition.op}]"

    value = condition.expected
    if condition.op in ("in", "nin", "all"):
        value = ",".join(str(v) for v in as_list(value))
    elif isinstance(value, bool):
        value = "true" if value else "false"
    return key, value
