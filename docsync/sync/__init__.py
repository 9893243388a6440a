"""
Sync module for docsync - replaying the remote change stream.

- SyncEngine: one token-based sync cycle into a Store
- SyncScheduler: webhook-triggered cycles with delayed background retries
"""

from .engine import SYNC_COMPLETE, SyncEngine, SyncError, SyncResult
from .scheduler import SyncScheduler

__all__ = [
    "SYNC_COMPLETE",
    "SyncEngine",
    "SyncError",
    "SyncResult",
    "SyncScheduler",
]
