"""
Store module for docsync - backends and the query model.

This module provides:
- The Store protocol and error hierarchy
- Immutable, chainable queries with locale-fallback conditions
- Backends: in-memory, SQLite, remote passthrough and lazy on-demand cache
- A factory that composes a backend with the middleware chain

Invariants:
    - Every backend honors the same revision rule in index()
    - Tombstones and Nil markers read as absent from every backend
    - Queries are lazy; nothing is fetched until a result is consumed

How to change safely:
    - Run the shared contract tests against every backend
    - Keep MemoryQuery and SQLiteQuery predicate semantics identical
"""

from .base import (
    BaseStore,
    QueryTooComplexError,
    ReadOnlyStoreError,
    Store,
    StoreError,
    UnsupportedOperatorError,
)
from .factory import compose, create_backend, create_store
from .lazy_cache import LazyCacheStore
from .memory import MemoryQuery, MemoryStore
from .query import Condition, Query
from .remote import RemoteQuery, RemoteStore
from .sqlite import SQLiteQuery, SQLiteStore

__all__ = [
    "BaseStore",
    "Condition",
    "LazyCacheStore",
    "MemoryQuery",
    "MemoryStore",
    "Query",
    "QueryTooComplexError",
    "ReadOnlyStoreError",
    "RemoteQuery",
    "RemoteStore",
    "SQLiteQuery",
    "SQLiteStore",
    "Store",
    "StoreError",
    "UnsupportedOperatorError",
    "compose",
    "create_backend",
    "create_store",
]
