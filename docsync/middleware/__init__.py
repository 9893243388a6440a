"""
Middleware module for docsync - decorators over any Store.

Each middleware wraps the next store in the chain, delegates writes and
runs select()/transform() hooks on every read path.

- CachingMiddleware: TTL document cache with Nil markers
- LocaleMiddleware: single-locale views with fallback chains
- CollectionCacheKeyMiddleware: ETag-like keys for filtered collections
"""

from .base import MiddlewareQuery, StoreMiddleware
from .caching import CachingMiddleware
from .collection_cache_key import (
    CacheableQuery,
    CollectionCacheKeyMiddleware,
    NotCacheableError,
)
from .locale import LocaleMiddleware

__all__ = [
    "CacheableQuery",
    "CachingMiddleware",
    "CollectionCacheKeyMiddleware",
    "LocaleMiddleware",
    "MiddlewareQuery",
    "NotCacheableError",
    "StoreMiddleware",
]
