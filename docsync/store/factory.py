"""
Store factory.

Builds the configured backend and wraps it in the middleware chain:

    CollectionCacheKeyMiddleware
        -> LocaleMiddleware
            -> CachingMiddleware (local backends, when enabled)
                -> backend

Callers get the outermost store. The backend is returned as well because
the sync engine writes to the chain but the service needs the backend for
initialize().
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from ..client.remote import RemoteClient
from ..config import ServiceConfig, StoreBackend
from .base import Store
from .lazy_cache import LazyCacheStore
from .memory import MemoryStore
from .remote import RemoteStore
from .sqlite import SQLiteStore

logger = logging.getLogger(__name__)

MiddlewareFactory = Callable[[Store], Store]


def create_backend(config: ServiceConfig, client: RemoteClient | None = None) -> Store:
    """Create the storage engine named by config.store_backend.

    Raises:
        ValueError: If a remote backend is requested without a client
    """
    locale = config.locale
    backend = config.store_backend

    if backend == StoreBackend.MEMORY:
        return MemoryStore(locale.default_locale, locale.fallbacks)

    if backend == StoreBackend.SQLITE:
        return SQLiteStore(
            config.storage.sqlite_path,
            default_locale=locale.default_locale,
            locale_fallbacks=locale.fallbacks,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
            cache_size_pages=config.storage.cache_size_pages,
        )

    if client is None:
        raise ValueError(f"Store backend '{backend.value}' requires a remote client")

    if backend == StoreBackend.REMOTE:
        return RemoteStore(client, locale.default_locale, locale.fallbacks)

    if backend == StoreBackend.LAZY:
        return LazyCacheStore(
            client,
            default_locale=locale.default_locale,
            locale_fallbacks=locale.fallbacks,
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries or None,
        )

    raise ValueError(f"Unknown store backend: {backend}")


def default_middleware(config: ServiceConfig) -> list[MiddlewareFactory]:
    """Middleware list, innermost first."""
    from ..middleware import CachingMiddleware, CollectionCacheKeyMiddleware, LocaleMiddleware

    chain: list[MiddlewareFactory] = []
    if config.cache.enabled and config.store_backend != StoreBackend.LAZY:
        chain.append(
            lambda store: CachingMiddleware(
                store,
                ttl_seconds=config.cache.ttl_seconds,
                max_entries=config.cache.max_entries or None,
            )
        )
    chain.append(
        lambda store: LocaleMiddleware(store, config.locale.default_locale, config.locale.fallbacks)
    )
    chain.append(CollectionCacheKeyMiddleware)
    return chain


def compose(backend: Store, middleware: Sequence[MiddlewareFactory]) -> Store:
    """Wrap backend in each middleware, innermost first."""
    store = backend
    for wrap in middleware:
        store = wrap(store)
    return store


def create_store(
    config: ServiceConfig,
    client: RemoteClient | None = None,
    middleware: Sequence[MiddlewareFactory] | None = None,
) -> tuple[Store, Store]:
    """Create the backend and the composed store.

    Returns:
        (store, backend) where store is the outermost middleware
    """
    backend = create_backend(config, client)
    chain = default_middleware(config) if middleware is None else list(middleware)
    store = compose(backend, chain)
    logger.info(
        "Store created",
        extra={
            "backend": config.store_backend.value,
            "middleware": [type(s).__name__ for s in _chain_of(store)],
        },
    )
    return store, backend


def _chain_of(store: Store) -> list[Store]:
    chain = []
    while hasattr(store, "store"):
        chain.append(store)
        store = store.store
    return chain
