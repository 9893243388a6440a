"""
HTTP client for the remote content API.

RemoteClient wraps an httpx.AsyncClient and exposes the two read shapes
the rest of the package needs:

- Collection pages: GET /entries, /assets with skip/limit/total paging
- Sync pages: GET /sync?initial=true, then ?sync_token=... following
  nextPageUrl until the API returns nextSyncUrl

Invariants:
    - NotFoundError and UnauthorizedError are raised immediately
    - RateLimitError, 5xx responses and transport errors are retried with
      bounded exponential backoff, then raised
    - The access token is never logged

How to change safely:
    - Keep error classification in ApiError.from_response
    - Test new endpoints with httpx.MockTransport
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from .._version import __version__
from ..document import Document
from .errors import ApiError, RateLimitError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://cdn.contentful.com"


@dataclass
class Page:
    """One page of a collection response.

    Attributes:
        items: Documents on this page
        includes: Linked documents delivered alongside, keyed by id
        total: Total number of matching documents
        skip: Offset of this page
        limit: Page size requested
    """

    items: list[Document]
    includes: dict[str, Document] = field(default_factory=dict)
    total: int = 0
    skip: int = 0
    limit: int = 100

    @property
    def has_next(self) -> bool:
        return self.skip + len(self.items) < self.total and bool(self.items)

    @property
    def next_skip(self) -> int:
        return self.skip + len(self.items)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Page:
        includes: dict[str, Document] = {}
        for docs in (data.get("includes") or {}).values():
            for doc in docs:
                includes[doc["sys"]["id"]] = doc
        items = data.get("items")
        if items is None and "sys" in data:
            items = [data]
        return cls(
            items=items or [],
            includes=includes,
            total=int(data.get("total", len(items or []))),
            skip=int(data.get("skip", 0)),
            limit=int(data.get("limit", 100)),
        )


@dataclass
class SyncPage:
    """One page of the sync change stream.

    Attributes:
        items: Changed documents in delivery order
        next_token: Token for the next page, or for the next cycle when
            has_next is False
        has_next: Whether more pages belong to the current cycle
    """

    items: list[Document]
    next_token: str | None
    has_next: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncPage:
        next_page = data.get("nextPageUrl")
        next_url = next_page or data.get("nextSyncUrl")
        return cls(
            items=data.get("items") or [],
            next_token=parse_sync_token(next_url),
            has_next=bool(next_page),
        )


def parse_sync_token(url: str | None) -> str | None:
    """Extract the sync_token query parameter from a sync URL."""
    if not url:
        return None
    values = parse_qs(urlparse(url).query).get("sync_token")
    return values[0] if values else None


class RemoteClient:
    """Async client for one space/environment of the remote content API.

    Example:
        >>> async with RemoteClient("space", "token") as client:
        ...     page = await client.entries({"content_type": "page"})
        ...     async for sync_page in client.sync_pages():
        ...         print(len(sync_page.items))
    """

    def __init__(
        self,
        space: str,
        access_token: str,
        environment: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        retry_limit: int = 3,
        retry_wait: float = 1.0,
        max_retry_wait: float = 30.0,
        default_locale: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            space: Space identifier
            access_token: Delivery API token (sent as a bearer token)
            environment: Environment name, None for the default environment
            base_url: API host
            timeout: Per-request timeout in seconds
            retry_limit: Retries for rate limits and transient failures
            retry_wait: Initial backoff in seconds, doubled per retry
            max_retry_wait: Upper bound for a single backoff
            default_locale: Locale sent with collection queries that name none
            transport: Optional httpx transport (tests use MockTransport)
            sleep: Coroutine used to wait between retries
        """
        self.space = space
        self.environment = environment
        self.base_url = base_url.rstrip("/")
        self.retry_limit = retry_limit
        self.retry_wait = retry_wait
        self.max_retry_wait = max_retry_wait
        self.default_locale = default_locale
        self._sleep = sleep

        self._http = httpx.AsyncClient(
            base_url=self._api_url(),
            headers={
                "Authorization": f"Bearer {access_token}",
                "User-Agent": f"docsync/{__version__}",
            },
            timeout=timeout,
            transport=transport,
        )

    def _api_url(self) -> str:
        url = f"{self.base_url}/spaces/{self.space}"
        if self.environment:
            url += f"/environments/{self.environment}"
        return url + "/"

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> RemoteClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a path relative to the space, retrying transient failures.

        Raises:
            NotFoundError: 404
            UnauthorizedError: 401
            RateLimitError: 429 after retries are exhausted
            ApiError: Any other failure
        """
        attempt = 0
        while True:
            try:
                response = await self._http.get(path.lstrip("/"), params=_clean_params(params))
                if response.is_success:
                    return response.json()
                error = ApiError.from_response(response)
            except httpx.TransportError as e:
                error = ApiError(f"Transport failure: {e}")
                error.retryable = True

            if not error.retryable or attempt >= self.retry_limit:
                raise error

            wait = self._backoff(attempt, error)
            logger.warning(
                "Remote request failed, retrying",
                extra={
                    "path": path,
                    "status": error.status,
                    "attempt": attempt + 1,
                    "wait_seconds": wait,
                },
            )
            await self._sleep(wait)
            attempt += 1

    def _backoff(self, attempt: int, error: ApiError) -> float:
        wait = self.retry_wait * (2 ** attempt)
        if isinstance(error, RateLimitError) and error.reset_seconds:
            wait = max(wait, error.reset_seconds)
        return min(wait, self.max_retry_wait)

    async def get_page(self, path: str, query: dict[str, Any] | None = None) -> Page:
        params = dict(query or {})
        if self.default_locale and "locale" not in params:
            params["locale"] = self.default_locale
        return Page.from_dict(await self.get(path, params))

    async def pages(self, path: str, query: dict[str, Any] | None = None) -> AsyncIterator[Page]:
        """Iterate every page of a collection, advancing skip."""
        params = dict(query or {})
        while True:
            page = await self.get_page(path, params)
            yield page
            if not page.has_next:
                return
            params["skip"] = page.next_skip

    async def entries(self, query: dict[str, Any] | None = None) -> Page:
        return await self.get_page("entries", query)

    async def assets(self, query: dict[str, Any] | None = None) -> Page:
        return await self.get_page("assets", query)

    async def entry(self, doc_id: str, query: dict[str, Any] | None = None) -> Document:
        return await self.get(f"entries/{doc_id}", query)

    async def asset(self, doc_id: str, query: dict[str, Any] | None = None) -> Document:
        return await self.get(f"assets/{doc_id}", query)

    async def content_types(self, query: dict[str, Any] | None = None) -> Page:
        return Page.from_dict(await self.get("content_types", query))

    async def get_sync_page(self, token: str | None = None) -> SyncPage:
        """Fetch one sync page; no token starts an initial sync."""
        params: dict[str, Any] = {"sync_token": token} if token else {"initial": "true"}
        return SyncPage.from_dict(await self.get("sync", params))

    async def sync_pages(self, token: str | None = None) -> AsyncIterator[SyncPage]:
        """Iterate sync pages until the stream is caught up."""
        while True:
            page = await self.get_sync_page(token)
            yield page
            if not page.has_next:
                return
            token = page.next_token


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if not params:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            value = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned
