"""
docsync service - Main entry point.

This module starts the replication service with all components:
- Remote API client
- Store backend wrapped in the middleware chain
- Sync engine and scheduler (initial sync on start)
- Webhook receiver (aiohttp)
- Content type indexer fed from sync and webhook events

Usage:
    python -m docsync.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is initialized before the first sync cycle
    - Graceful shutdown cancels pending sync retries before closing the client
    - All components share one EventEmitter

How to change safely:
    - Add new components with enable/disable flags in config.py
    - Test the shutdown sequence after adding background tasks
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .api import WebhookReceiver, WebhookServer
from .client import RemoteClient
from .config import ServiceConfig
from .document import DocumentKind
from .events import EventEmitter
from .schema import ContentTypeIndexer
from .store import SQLiteStore, Store, create_store
from .sync import SyncEngine, SyncError, SyncScheduler

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class Service:
    """docsync service orchestrator.

    Attributes:
        config: Service configuration
        client: Remote API client
        store: Outermost store of the middleware chain
        backend: Storage engine at the bottom of the chain
        emitter: Event hub shared by sync and webhook paths
        indexer: Content type indexer
        engine: Sync engine (None when the backend does not index)
        scheduler: Sync scheduler (None when the backend does not index)
        webhook: Webhook server (None when disabled)

    Example:
        >>> service = Service()
        >>> await service.start()
        >>> # Service is running
        >>> await service.stop()
    """

    def __init__(self, config: ServiceConfig | None = None) -> None:
        self.config = config or ServiceConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.client: RemoteClient | None = None
        self.store: Store | None = None
        self.backend: Store | None = None
        self.emitter = EventEmitter()
        self.indexer = ContentTypeIndexer()
        self.engine: SyncEngine | None = None
        self.scheduler: SyncScheduler | None = None
        self.webhook: WebhookServer | None = None

    async def start(self) -> None:
        """Start the service and wait for a shutdown request."""
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting docsync service")
        self.config.log_config()

        try:
            remote = self.config.remote
            self.client = RemoteClient(
                remote.space,
                remote.access_token,
                environment=remote.environment,
                base_url=remote.base_url,
                timeout=remote.timeout_seconds,
                retry_limit=remote.retry_limit,
                retry_wait=remote.retry_wait_seconds,
                max_retry_wait=remote.max_retry_wait_seconds,
            )

            self.store, self.backend = create_store(self.config, self.client)
            if isinstance(self.backend, SQLiteStore):
                await self.backend.initialize()

            for kind in (DocumentKind.ENTRY.value, DocumentKind.ASSET.value, "ContentType"):
                self.emitter.on(kind, self.indexer.index)

            if self.store.indexes:
                self.engine = SyncEngine(
                    self.store,
                    self.client,
                    state_key=self.config.sync.state_key,
                    emitter=self.emitter,
                )
                self.scheduler = SyncScheduler(
                    self.engine,
                    retry_limit=self.config.sync.retry_limit,
                    retry_wait=self.config.sync.retry_wait_seconds,
                )
            else:
                logger.info("Store does not index, sync disabled")

            if self.config.webhook.enabled:
                receiver = WebhookReceiver(
                    self.store,
                    scheduler=self.scheduler,
                    emitter=self.emitter,
                    config=self.config.webhook,
                )
                self.webhook = WebhookServer(receiver)
                await self.webhook.start()

            self._running = True

            if self.scheduler is not None and self.config.sync.initial_sync:
                await self.initial_sync()

            logger.info("docsync service started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Service startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

    async def initial_sync(self) -> None:
        """Run the first sync cycle, then resolve content type links."""
        assert self.scheduler is not None and self.store is not None
        try:
            result = await self.scheduler.sync()
        except SyncError as e:
            logger.error(f"Initial sync failed: {e}", extra={"retryable": e.retryable})
            return
        await self.indexer.finalize(self.store)
        logger.info(
            "Initial sync complete",
            extra={"count": result.count, "schema_fingerprint": self.indexer.fingerprint},
        )

    async def stop(self) -> None:
        """Stop the service gracefully."""
        if not self._running:
            return

        logger.info("Stopping docsync service")

        if self.webhook:
            await self.webhook.stop()

        if self.scheduler:
            await self.scheduler.stop()

        if self.client:
            await self.client.close()

        self._running = False
        logger.info("docsync service stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    service = Service(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        service.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
