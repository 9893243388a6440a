"""
Integration tests for the webhook receiver.

The aiohttp application is served with aiohttp.test_utils against a
MemoryStore, optionally with a SyncScheduler behind it.

Tests cover:
- Indexing of delivered documents
- Non-document notifications emitted only
- Basic auth, content type and body validation
- Background sync triggered per notification
- Health endpoint and error middleware
"""

import json

import httpx
import pytest
from aiohttp import BasicAuth, test_utils

from docsync.api.webhook import WebhookReceiver, create_webhook_app
from docsync.client.remote import RemoteClient
from docsync.config import WebhookConfig
from docsync.events import EventEmitter
from docsync.store.memory import MemoryStore
from docsync.sync.engine import SyncEngine
from docsync.sync.scheduler import SyncScheduler
from tests.helpers import deleted_entry, entry

MANAGEMENT_TYPE = "application/vnd.contentful.management.v1+json"


def serve(receiver):
    return test_utils.TestClient(test_utils.TestServer(create_webhook_app(receiver)))


async def post(client, doc, headers=None):
    return await client.post(
        "/webhook/receive",
        data=json.dumps(doc),
        headers={"Content-Type": MANAGEMENT_TYPE, **(headers or {})},
    )


class ExplodingStore(MemoryStore):
    async def index(self, doc):
        raise RuntimeError("disk full")


class TestReceive:
    """Tests for POST /webhook/receive."""

    @pytest.mark.asyncio
    async def test_indexes_document(self):
        store = MemoryStore()

        async with serve(WebhookReceiver(store)) as client:
            response = await post(client, entry("a", title="x"))

            assert response.status == 200
            assert await response.json() == {"id": "a", "type": "Entry"}
        assert (await store.find("a"))["fields"]["title"]["en-US"] == "x"

    @pytest.mark.asyncio
    async def test_plain_json_accepted(self):
        store = MemoryStore()

        async with serve(WebhookReceiver(store)) as client:
            response = await client.post("/webhook/receive", json=entry("a"))

            assert response.status == 200
        assert await store.find("a") is not None

    @pytest.mark.asyncio
    async def test_tombstone_removes_document(self):
        store = MemoryStore()
        await store.index(entry("a", revision=1))

        async with serve(WebhookReceiver(store)) as client:
            response = await post(client, deleted_entry("a", revision=2))

            assert response.status == 200
        assert await store.find("a") is None

    @pytest.mark.asyncio
    async def test_non_document_emitted_only(self):
        store = MemoryStore()
        emitter = EventEmitter()
        seen = []
        emitter.on("ContentType", lambda doc: seen.append(doc["sys"]["id"]))
        content_type = {"sys": {"id": "page", "type": "ContentType"}, "fields": []}

        async with serve(WebhookReceiver(store, emitter=emitter)) as client:
            response = await post(client, content_type)

            assert response.status == 200
        assert seen == ["page"]
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_wrong_content_type(self):
        async with serve(WebhookReceiver(MemoryStore())) as client:
            response = await client.post(
                "/webhook/receive",
                data=json.dumps(entry("a")),
                headers={"Content-Type": "text/plain"},
            )

            assert response.status == 406

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        ["not json", json.dumps([1, 2]), json.dumps({"fields": {}}), json.dumps({"sys": {"id": "a"}})],
    )
    async def test_bad_body(self, body):
        store = MemoryStore()

        async with serve(WebhookReceiver(store)) as client:
            response = await client.post(
                "/webhook/receive",
                data=body,
                headers={"Content-Type": MANAGEMENT_TYPE},
            )

            assert response.status == 400
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_handler_error(self):
        async with serve(WebhookReceiver(ExplodingStore())) as client:
            response = await post(client, entry("a"))

            assert response.status == 500
            assert (await response.json())["error_code"] == "INTERNAL"


class TestAuth:
    """Tests for basic auth."""

    def receiver(self):
        return WebhookReceiver(MemoryStore(), config=WebhookConfig(username="hook", password="pw"))

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        async with serve(self.receiver()) as client:
            response = await post(client, entry("a"))

            assert response.status == 401

    @pytest.mark.asyncio
    async def test_wrong_credentials(self):
        async with serve(self.receiver()) as client:
            header = BasicAuth("hook", "nope").encode()
            response = await post(client, entry("a"), {"Authorization": header})

            assert response.status == 401

    @pytest.mark.asyncio
    async def test_valid_credentials(self):
        receiver = self.receiver()

        async with serve(receiver) as client:
            header = BasicAuth("hook", "pw").encode()
            response = await post(client, entry("a"), {"Authorization": header})

            assert response.status == 200
        assert await receiver.store.find("a") is not None


class TestSyncTrigger:
    """Tests for the background sync started per notification."""

    @pytest.mark.asyncio
    async def test_triggers_sync_for_id(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "items": [entry("a", revision=2, title="synced")],
                    "nextSyncUrl": "https://cdn.example.com/spaces/space1/sync?sync_token=t1",
                },
            )

        store = MemoryStore()
        client = RemoteClient("space1", "token", transport=httpx.MockTransport(handler))
        scheduler = SyncScheduler(SyncEngine(store, client))

        async with serve(WebhookReceiver(store, scheduler=scheduler)) as http:
            response = await post(http, entry("a", revision=1, title="webhook"))
            assert response.status == 200
            await scheduler.join()

        assert len(requests) == 1
        assert scheduler.retries_scheduled == 0
        assert (await store.find("a"))["fields"]["title"]["en-US"] == "synced"


class TestHealth:
    """Tests for GET /health."""

    @pytest.mark.asyncio
    async def test_health(self):
        async with serve(WebhookReceiver(MemoryStore())) as client:
            await post(client, entry("a"))
            response = await client.get("/health")

            assert response.status == 200
            assert await response.json() == {"healthy": True, "received_count": 1, "pending_syncs": 0}
