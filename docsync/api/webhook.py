"""
Webhook receiver for docsync.

The remote API posts a change notification for every publish and
unpublish. The receiver applies the delivered document immediately, then
triggers a background sync cycle that must eventually include the same
id (see SyncScheduler for the retry policy).

Endpoints:
    POST /webhook/receive   Change notification
    GET  /health            Liveness and pending sync count

Responses:
    401  Basic auth is configured and the credentials do not match
    406  Content-Type is neither the management API type nor JSON
    400  Body is not a JSON object with sys.id and sys.type

Invariants:
    - Sync cycles triggered here never block the response
    - Webhook credentials are compared in constant time and never logged

How to change safely:
    - Keep request validation ahead of any store write
    - Test every rejection status with aiohttp.test_utils
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable

from aiohttp import BasicAuth, web

from ..config import WebhookConfig
from ..document import DocumentKind, MalformedDocumentError
from ..events import EventEmitter
from ..store.base import Store
from ..sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

WEBHOOK_CONTENT_TYPES = (
    "application/vnd.contentful.management.v1+json",
    "application/json",
)


class WebhookReceiver:
    """Handles webhook notifications against a store.

    Attributes:
        store: Store that receives index() calls
        scheduler: Scheduler triggered with each notified id (optional)
        emitter: Receives every notification, keyed by sys.type
        config: Bind address and basic auth settings
    """

    def __init__(
        self,
        store: Store,
        scheduler: SyncScheduler | None = None,
        emitter: EventEmitter | None = None,
        config: WebhookConfig | None = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.emitter = emitter or EventEmitter()
        self.config = config or WebhookConfig()
        self._received_count = 0

    def authorized(self, request: web.Request) -> bool:
        if not self.config.auth_enabled:
            return True
        header = request.headers.get("Authorization")
        if not header:
            return False
        try:
            auth = BasicAuth.decode(header)
        except ValueError:
            return False
        return hmac.compare_digest(auth.login, self.config.username or "") and hmac.compare_digest(
            auth.password, self.config.password or ""
        )

    async def handle_receive(self, request: web.Request) -> web.Response:
        """Handle POST /webhook/receive."""
        if not self.authorized(request):
            raise web.HTTPUnauthorized(headers={"WWW-Authenticate": 'Basic realm="docsync"'})

        if request.content_type not in WEBHOOK_CONTENT_TYPES:
            return web.json_response(
                {"msg": "This endpoint only responds to webhooks from the content API"},
                status=406,
            )

        try:
            event = await request.json()
        except ValueError:
            event = None
        sys = event.get("sys") if isinstance(event, dict) else None
        if not isinstance(sys, dict) or not sys.get("id") or not sys.get("type"):
            return web.json_response(
                {"msg": "The request must conform to the webhook structure"},
                status=400,
            )

        doc_id = str(sys["id"])
        kind = sys["type"]
        if _is_document_kind(kind) and self.store.indexes:
            try:
                await self.store.index(event)
            except MalformedDocumentError as e:
                return web.json_response({"msg": str(e)}, status=400)

        self._received_count += 1
        logger.info("Webhook received", extra={"doc_id": doc_id, "kind": kind})
        await self.emitter.emit(kind, event)

        if self.scheduler is not None:
            self.scheduler.trigger(doc_id)

        return web.json_response({"id": doc_id, "type": kind})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        return web.json_response(
            {
                "healthy": True,
                "received_count": self._received_count,
                "pending_syncs": self.scheduler.pending if self.scheduler else 0,
            }
        )


def _is_document_kind(kind: str) -> bool:
    try:
        DocumentKind.from_str(kind)
    except MalformedDocumentError:
        return False
    return True


def create_webhook_app(receiver: WebhookReceiver) -> web.Application:
    """Create the aiohttp application serving a WebhookReceiver."""
    app = web.Application()
    app.router.add_post("/webhook/receive", receiver.handle_receive)
    app.router.add_get("/health", receiver.handle_health)

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.Response:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"Webhook handler error: {e}", exc_info=True)
            return web.json_response(
                {"error": str(e), "error_code": "INTERNAL"},
                status=500,
            )

    app.middlewares.append(error_middleware)
    return app


class WebhookServer:
    """Runs the webhook application on a TCP site.

    Example:
        >>> server = WebhookServer(receiver)
        >>> await server.start()
        >>> await server.stop()
    """

    def __init__(self, receiver: WebhookReceiver) -> None:
        self.receiver = receiver
        self._runner: web.AppRunner | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        if self._runner is not None:
            logger.warning("Webhook server already running")
            return
        config = self.receiver.config
        self._runner = web.AppRunner(create_webhook_app(self.receiver))
        await self._runner.setup()
        site = web.TCPSite(self._runner, config.host, config.port)
        await site.start()
        logger.info(
            "Webhook server listening",
            extra={"host": config.host, "port": config.port, "auth": config.auth_enabled},
        )

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Webhook server stopped")

