"""
docsync - Local replica of a remote, versioned document collection.

This package keeps a queryable local copy of a remote content API:
- Token-based incremental sync plus webhook notifications
- One Store contract implemented by several storage engines
- Middleware decorators (caching, locale views, collection cache keys)
- Schema inference from sampled documents
- Link and locale-fallback resolution

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Remote    │────▶│ SyncEngine  │────▶│  Store.index()  │
    │   Client    │     │  (cursor)   │     │  (revision rule)│
    └─────────────┘     └──────▲──────┘     └────────┬────────┘
                               │                     │
                        ┌──────┴──────┐              ▼
                        │  Webhook    │     ┌─────────────────┐
                        │  Receiver   │────▶│   Middleware    │
                        └─────────────┘     │ cache / locale  │
                                            └────────┬────────┘
                                                     │
                        ┌────────────────────────────┼───────────────┐
                        ▼                            ▼               ▼
                   ┌─────────┐                 ┌──────────┐    ┌──────────┐
                   │ Memory  │                 │  SQLite  │    │  Remote  │
                   └─────────┘                 └──────────┘    └──────────┘

Invariants:
    - Revision is monotonic per document id; stale writes are ignored
    - Tombstones occupy the id slot but read as absent
    - The sync cursor lives in the same Store as the documents

How to change safely:
    - New backends must pass the shared store contract tests
    - Middleware must keep read hooks on every read path
"""

from ._version import __version__

__all__ = ["__version__"]
