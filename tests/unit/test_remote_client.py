"""
Unit tests for RemoteClient.

Tests cover:
- Request construction (URL, auth header, params)
- Error classification
- Retry with backoff for rate limits, 5xx and transport failures
- Collection and sync paging

All HTTP traffic goes through httpx.MockTransport; backoff sleeps are
recorded instead of awaited.
"""

import httpx
import pytest

from docsync.client.errors import ApiError, NotFoundError, RateLimitError, UnauthorizedError
from docsync.client.remote import Page, RemoteClient, SyncPage, parse_sync_token


class Recorder:
    """MockTransport handler replaying queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler, **kwargs):
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    client = RemoteClient(
        "space1",
        "secret-token",
        transport=httpx.MockTransport(handler),
        sleep=sleep,
        **kwargs,
    )
    return client, sleeps


class TestRequests:
    """Tests for request construction."""

    @pytest.mark.asyncio
    async def test_url_and_headers(self):
        handler = Recorder(httpx.Response(200, json={"items": []}))
        client, _ = make_client(handler, environment="staging")

        await client.entries({"content_type": "page", "fields.tags[in]": ["a", "b"]})

        request = handler.requests[0]
        assert request.url.path == "/spaces/space1/environments/staging/entries"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.url.params["content_type"] == "page"
        assert request.url.params["fields.tags[in]"] == "a,b"
        await client.close()

    @pytest.mark.asyncio
    async def test_default_locale_added(self):
        handler = Recorder(
            httpx.Response(200, json={"items": []}),
            httpx.Response(200, json={"items": []}),
        )
        client, _ = make_client(handler, default_locale="en-US")

        await client.entries()
        await client.entries({"locale": "*"})

        assert handler.requests[0].url.params["locale"] == "en-US"
        assert handler.requests[1].url.params["locale"] == "*"
        await client.close()

    @pytest.mark.asyncio
    async def test_none_params_dropped(self):
        handler = Recorder(httpx.Response(200, json={"items": []}))
        client, _ = make_client(handler)

        await client.entries({"content_type": "page", "skip": None, "x": True})

        params = handler.requests[0].url.params
        assert "skip" not in params
        assert params["x"] == "true"
        await client.close()

    @pytest.mark.asyncio
    async def test_context_manager(self):
        handler = Recorder(httpx.Response(200, json={"sys": {"id": "a", "type": "Entry"}}))
        client, _ = make_client(handler)

        async with client:
            doc = await client.entry("a")

        assert doc["sys"]["id"] == "a"
        assert handler.requests[0].url.path == "/spaces/space1/entries/a"


class TestErrors:
    """Tests for error classification and retries."""

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        handler = Recorder(httpx.Response(404, json={"message": "The resource could not be found."}))
        client, sleeps = make_client(handler)

        with pytest.raises(NotFoundError) as exc_info:
            await client.entry("missing")

        assert exc_info.value.status == 404
        assert "could not be found" in str(exc_info.value)
        assert sleeps == []
        await client.close()

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self):
        handler = Recorder(httpx.Response(401, json={"message": "bad token"}))
        client, sleeps = make_client(handler)

        with pytest.raises(UnauthorizedError):
            await client.entries()

        assert len(handler.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self):
        handler = Recorder(
            httpx.Response(429, headers={"X-Contentful-RateLimit-Reset": "3"}, json={}),
            httpx.Response(200, json={"items": [], "total": 0}),
        )
        client, sleeps = make_client(handler, retry_wait=1.0)

        page = await client.entries()

        assert page.items == []
        assert sleeps == [3.0]
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self):
        handler = Recorder(*[httpx.Response(429, json={}) for _ in range(3)])
        client, sleeps = make_client(handler, retry_limit=2, retry_wait=1.0)

        with pytest.raises(RateLimitError):
            await client.entries()

        assert sleeps == [1.0, 2.0]
        assert len(handler.requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        handler = Recorder(
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"items": []}),
        )
        client, sleeps = make_client(handler, retry_wait=0.5)

        await client.entries()

        assert sleeps == [0.5]
        await client.close()

    @pytest.mark.asyncio
    async def test_backoff_capped(self):
        handler = Recorder(*[httpx.Response(500, json={}) for _ in range(5)])
        client, sleeps = make_client(handler, retry_limit=4, retry_wait=10.0, max_retry_wait=25.0)

        with pytest.raises(ApiError) as exc_info:
            await client.entries()

        assert exc_info.value.retryable
        assert sleeps == [10.0, 20.0, 25.0, 25.0]
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        handler = Recorder(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"items": []}),
        )
        client, sleeps = make_client(handler)

        await client.entries()

        assert len(sleeps) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        handler = Recorder(httpx.Response(400, json={"message": "bad query"}))
        client, sleeps = make_client(handler)

        with pytest.raises(ApiError) as exc_info:
            await client.entries()

        assert not exc_info.value.retryable
        assert exc_info.value.details == {"message": "bad query"}
        assert sleeps == []
        await client.close()


class TestPaging:
    """Tests for collection and sync paging."""

    @pytest.mark.asyncio
    async def test_collection_pages(self):
        handler = Recorder(
            httpx.Response(200, json={"items": [{"sys": {"id": "a"}}], "total": 2, "skip": 0, "limit": 1}),
            httpx.Response(200, json={"items": [{"sys": {"id": "b"}}], "total": 2, "skip": 1, "limit": 1}),
        )
        client, _ = make_client(handler)

        ids = [item["sys"]["id"] async for page in client.pages("entries", {"limit": 1}) for item in page.items]

        assert ids == ["a", "b"]
        assert handler.requests[1].url.params["skip"] == "1"
        await client.close()

    @pytest.mark.asyncio
    async def test_sync_pages(self):
        handler = Recorder(
            httpx.Response(
                200,
                json={
                    "items": [{"sys": {"id": "a", "type": "Entry"}}],
                    "nextPageUrl": "https://cdn.example.com/spaces/s/sync?sync_token=page2",
                },
            ),
            httpx.Response(
                200,
                json={
                    "items": [{"sys": {"id": "b", "type": "Entry"}}],
                    "nextSyncUrl": "https://cdn.example.com/spaces/s/sync?sync_token=next-cycle",
                },
            ),
        )
        client, _ = make_client(handler)

        pages = [page async for page in client.sync_pages()]

        assert [p.has_next for p in pages] == [True, False]
        assert pages[-1].next_token == "next-cycle"
        assert handler.requests[0].url.params["initial"] == "true"
        assert handler.requests[1].url.params["sync_token"] == "page2"
        await client.close()

    @pytest.mark.asyncio
    async def test_sync_resumes_from_token(self):
        handler = Recorder(httpx.Response(200, json={"items": [], "nextSyncUrl": "/sync?sync_token=t2"}))
        client, _ = make_client(handler)

        page = await client.get_sync_page("t1")

        assert handler.requests[0].url.params["sync_token"] == "t1"
        assert "initial" not in handler.requests[0].url.params
        assert page.next_token == "t2"
        await client.close()


class TestParsing:
    """Tests for response parsing helpers."""

    def test_parse_sync_token(self):
        assert parse_sync_token("https://x/sync?sync_token=abc&foo=1") == "abc"
        assert parse_sync_token("https://x/sync") is None
        assert parse_sync_token(None) is None

    def test_page_includes(self):
        page = Page.from_dict(
            {
                "items": [{"sys": {"id": "a"}}],
                "includes": {"Entry": [{"sys": {"id": "b"}}], "Asset": [{"sys": {"id": "c"}}]},
                "total": 1,
            }
        )

        assert set(page.includes) == {"b", "c"}
        assert not page.has_next

    def test_single_document_page(self):
        page = Page.from_dict({"sys": {"id": "a", "type": "Entry"}})

        assert page.items[0]["sys"]["id"] == "a"
        assert page.total == 1

    def test_sync_page_without_urls(self):
        page = SyncPage.from_dict({"items": []})

        assert page.next_token is None
        assert not page.has_next
