"""
Sync engine for docsync.

The SyncEngine replays the remote change stream into a Store. One call
to next() is one sync cycle:

    Idle -> fetch page -> index items -> fetch page ... -> persist token -> Idle

The cursor (sync token) is kept in the same Store as the documents,
under a reserved id, so a restarted process resumes where the last
completed cycle stopped.

Invariants:
    - Items are applied strictly in delivery order
    - The token is persisted only after every page of the cycle is applied;
      a failed cycle is replayed from the previous token, which is safe
      because index() is idempotent
    - Cycles are serialized; reads on the Store are never paused
    - A malformed item is logged and skipped, it never aborts a cycle
    - Watched ids remember the number of the cycle that last applied them,
      so a pending retry can tell whether another cycle already did its work

How to change safely:
    - Keep the token write as the last step of next()
    - Test resume-after-failure whenever the paging logic changes
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from ..client.errors import ApiError
from ..client.remote import RemoteClient
from ..document import Document, MalformedDocumentError, document_id, document_type
from ..events import EventEmitter
from ..store.base import Store

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "sync:token"
STATE_TYPE = "SyncState"
SYNC_COMPLETE = "sync"


class SyncError(Exception):
    """A sync cycle failed before its token could be persisted.

    Attributes:
        retryable: Whether running the cycle again may succeed
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync cycle.

    Attributes:
        id_found: Whether the awaited id was delivered (True when none was awaited)
        count: Number of items applied
        token: Token the next cycle starts from
    """

    id_found: bool
    count: int
    token: str | None


class SyncEngine:
    """Applies the remote sync stream to a Store.

    Example:
        >>> engine = SyncEngine(store, client)
        >>> result = await engine.next()
        >>> result.count
        42
    """

    def __init__(
        self,
        store: Store,
        client: RemoteClient,
        state_key: str = DEFAULT_STATE_KEY,
        emitter: EventEmitter | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Store that receives index() calls and holds the token
            client: Remote API client
            state_key: Reserved document id for the sync token
            emitter: Receives every applied item, keyed by sys.type

        Raises:
            ValueError: If the store does not index documents
        """
        if not getattr(store, "indexes", True):
            raise ValueError("Sync requires a store that indexes documents")
        self.store = store
        self.client = client
        self.state_key = state_key
        self.emitter = emitter or EventEmitter()
        self._state: dict[str, Any] | None = None
        self._lock = asyncio.Lock()
        self._cycles = 0
        self._applied_count = 0
        self._skipped_count = 0
        self._watches: Counter[str] = Counter()
        self._delivered_in: dict[str, int] = {}

    @property
    def cycles(self) -> int:
        """Number of completed cycles."""
        return self._cycles

    def watch(self, doc_id: str) -> None:
        """Start recording in which cycle doc_id is delivered.

        Watches are counted; each watch() needs a matching unwatch().
        """
        self._watches[doc_id] += 1

    def unwatch(self, doc_id: str) -> None:
        self._watches[doc_id] -= 1
        if self._watches[doc_id] <= 0:
            del self._watches[doc_id]
            self._delivered_in.pop(doc_id, None)

    def delivered_since(self, doc_id: str, cycle: int) -> bool:
        """Whether a watched doc_id was applied in cycle number `cycle` or later."""
        return self._delivered_in.get(doc_id, -1) >= cycle

    @property
    def state(self) -> dict[str, Any]:
        """Copy of the last known sync state."""
        return dict(self._state or {})

    @property
    def token(self) -> str | None:
        return (self._state or {}).get("token")

    async def _read_state(self) -> dict[str, Any]:
        stored = await self.store.find(self.state_key)
        if not stored:
            return {}
        return {"token": stored.get("token")}

    async def _write_state(self, token: str | None) -> None:
        await self.store.set(
            self.state_key,
            {"sys": {"id": self.state_key, "type": STATE_TYPE}, "token": token},
        )

    async def next(self, up_to_id: str | None = None) -> SyncResult:
        """Run one sync cycle.

        Args:
            up_to_id: An id known to have changed; reported back in id_found

        Raises:
            SyncError: If the remote API fails mid-cycle
        """
        async with self._lock:
            if self._state is None:
                self._state = await self._read_state()
            token = self._state.get("token")

            id_found = up_to_id is None
            count = 0
            next_token = token
            logger.debug("Sync cycle started", extra={"has_token": token is not None})

            try:
                async for page in self.client.sync_pages(token):
                    for item in page.items:
                        if await self._apply(item):
                            count += 1
                        if not id_found and document_id(item) == up_to_id:
                            id_found = True
                    if page.next_token:
                        next_token = page.next_token
            except ApiError as e:
                logger.error(
                    "Sync cycle failed",
                    extra={"status": e.status, "applied": count},
                )
                raise SyncError(f"Sync cycle failed: {e}", retryable=e.retryable) from e

            self._state = {"token": next_token}
            await self._write_state(next_token)
            self._cycles += 1

        result = SyncResult(id_found=id_found, count=count, token=next_token)
        logger.info(
            "Sync cycle complete",
            extra={"count": count, "up_to_id": up_to_id, "id_found": id_found},
        )
        await self.emitter.emit(SYNC_COMPLETE, result)
        return result

    async def _apply(self, item: Document) -> bool:
        try:
            await self.store.index(item)
        except MalformedDocumentError as e:
            self._skipped_count += 1
            logger.warning("Skipped malformed sync item", extra={"error": str(e)})
            return False

        self._applied_count += 1
        doc_id = document_id(item)
        if doc_id in self._watches:
            self._delivered_in[doc_id] = self._cycles
        await self.emitter.emit(document_type(item), item)
        return True

    @property
    def stats(self) -> dict[str, Any]:
        """Get sync statistics."""
        return {
            "cycles": self._cycles,
            "applied_count": self._applied_count,
            "skipped_count": self._skipped_count,
            "has_token": self.token is not None,
        }
