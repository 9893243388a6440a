"""
Sync scheduling and webhook race handling.

A webhook announces a change before the sync stream is guaranteed to
include it. SyncScheduler.sync(up_to_id) runs a cycle and, when the
announced id was not delivered yet, schedules a delayed retry of itself
in the background:

    attempt 0  -> immediate cycle, id missing -> retry in retry_wait
    attempt 1  -> cycle, id missing           -> retry in retry_wait * 2
    ...        -> give up after retry_limit retries

A cycle that sees the id schedules nothing. The id is watched on the
engine from the first attempt until the last retry ends, so a cycle run
by anyone else that applies it turns the pending retry into a no-op:
the retry wakes, finds the id delivered, and returns without a cycle.

Invariants:
    - Retries are asyncio tasks; the caller is never blocked by a delay
    - At most one retry is scheduled per missed cycle
    - A retry whose id was applied since the first attempt runs no cycle
    - stop() cancels every pending retry

How to change safely:
    - Keep retry scheduling out of SyncEngine; the engine stays a single cycle
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .engine import SyncEngine, SyncError, SyncResult

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs sync cycles and schedules delayed retries for missed ids.

    Attributes:
        engine: Engine that runs each cycle
        retry_limit: Maximum retries per missed id
        retry_wait: Delay before the first retry in seconds, doubled per attempt
        retries_scheduled: Total retries scheduled since construction
    """

    def __init__(
        self,
        engine: SyncEngine,
        retry_limit: int = 2,
        retry_wait: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.retry_limit = retry_limit
        self.retry_wait = retry_wait
        self.retries_scheduled = 0
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def pending(self) -> int:
        """Number of background syncs not finished yet."""
        return sum(1 for t in self._tasks if not t.done())

    async def sync(
        self,
        up_to_id: str | None = None,
        attempt: int = 0,
        since: int | None = None,
    ) -> SyncResult:
        """Run one cycle, scheduling a retry if up_to_id was not seen.

        Args:
            up_to_id: Id announced by a webhook
            attempt: Retries already spent on up_to_id
            since: First cycle number that counts as delivering up_to_id;
                defaults to the cycle this call runs

        Raises:
            SyncError: If the cycle failed; a retry is still scheduled
                when the failure is retryable
        """
        if since is None:
            since = self.engine.cycles
        if up_to_id is not None:
            self.engine.watch(up_to_id)
        try:
            try:
                result = await self.engine.next(up_to_id)
            except SyncError as e:
                if e.retryable:
                    self._schedule_retry(up_to_id, attempt, since)
                raise

            if not result.id_found and not self._delivered(up_to_id, since):
                self._schedule_retry(up_to_id, attempt, since)
            return result
        finally:
            if up_to_id is not None:
                self.engine.unwatch(up_to_id)

    def trigger(self, up_to_id: str | None = None) -> asyncio.Task:
        """Start sync(up_to_id) in the background and return its task."""
        return self._track(asyncio.create_task(self._run(up_to_id, 0, 0.0)))

    def _delivered(self, up_to_id: str | None, since: int) -> bool:
        return up_to_id is not None and self.engine.delivered_since(up_to_id, since)

    def _schedule_retry(self, up_to_id: str | None, attempt: int, since: int) -> None:
        if self._stopped:
            return
        if attempt >= self.retry_limit:
            logger.warning(
                "Sync retries exhausted",
                extra={"up_to_id": up_to_id, "attempts": attempt + 1},
            )
            return

        delay = self.retry_wait * (2 ** attempt)
        task = self._track(asyncio.create_task(self._run(up_to_id, attempt + 1, delay, since)))
        if up_to_id is not None:
            # Watch until the retry task ends, cancelled or not.
            self.engine.watch(up_to_id)
            task.add_done_callback(lambda _: self.engine.unwatch(up_to_id))
        self.retries_scheduled += 1
        logger.info(
            "Sync retry scheduled",
            extra={"up_to_id": up_to_id, "attempt": attempt + 1, "delay_seconds": delay},
        )

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        up_to_id: str | None,
        attempt: int,
        delay: float,
        since: int | None = None,
    ) -> SyncResult | None:
        retry = since is not None
        try:
            if delay:
                await self._sleep(delay)
            if retry and self._delivered(up_to_id, since):
                logger.debug(
                    "Sync retry skipped, id already delivered",
                    extra={"up_to_id": up_to_id, "attempt": attempt},
                )
                return None
            return await self.sync(up_to_id, attempt, since)
        except Exception as e:
            logger.error(
                f"Background sync failed: {e}",
                extra={"up_to_id": up_to_id, "attempt": attempt},
                exc_info=True,
            )
            return None

    async def join(self) -> None:
        """Wait until every background sync, retries included, has finished."""
        while any(not t.done() for t in self._tasks):
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel pending retries and wait for them to finish."""
        self._stopped = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Sync scheduler stopped", extra={"cancelled": len(tasks)})
