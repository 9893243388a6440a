"""
Event emitter for document changes.

The sync engine and the webhook receiver announce every document they
apply, keyed by the document kind (sys.type):

    emitter = EventEmitter()
    listener_id = emitter.on("Entry", indexer.index)
    await emitter.emit("Entry", doc)
    emitter.off(listener_id)

Listeners may be plain callables or coroutine functions. A listener that
raises is logged and skipped; the remaining listeners still run and the
write that triggered the event stands.

Invariants:
    - emit() iterates a snapshot, so listeners may subscribe or
      unsubscribe while an event is being delivered
    - Listeners run in subscription order

How to change safely:
    - Never let a listener exception escape emit()
    - Keep listener ids stable strings; callers store them
"""

from __future__ import annotations

import inspect
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ANY_EVENT = "*"

Listener = Callable[..., Any]


@dataclass(frozen=True)
class _Subscription:
    id: str
    event: str
    listener: Listener


class EventEmitter:
    """Publish/subscribe hub keyed by event name.

    Subscribing to ANY_EVENT receives every event; such listeners are
    called with the event name as their first argument.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Subscription]] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def on(self, event: str, listener: Listener) -> str:
        """Subscribe listener to event, returning a listener id."""
        with self._lock:
            subscription = _Subscription(f"{event}:{next(self._ids)}", event, listener)
            self._listeners.setdefault(event, []).append(subscription)
        return subscription.id

    add_listener = on

    def off(self, listener_id: str) -> bool:
        """Unsubscribe by listener id. Returns whether a listener was removed."""
        event = listener_id.rsplit(":", 1)[0]
        with self._lock:
            subscriptions = self._listeners.get(event, [])
            for subscription in subscriptions:
                if subscription.id == listener_id:
                    subscriptions.remove(subscription)
                    return True
        return False

    remove_listener = off

    def listener_count(self, event: str | None = None) -> int:
        with self._lock:
            if event is not None:
                return len(self._listeners.get(event, []))
            return sum(len(s) for s in self._listeners.values())

    async def emit(self, event: str, *args: Any) -> int:
        """Deliver an event to its listeners and to ANY_EVENT listeners.

        Returns:
            Number of listeners that failed
        """
        with self._lock:
            snapshot = list(self._listeners.get(event, []))
            if event != ANY_EVENT:
                snapshot += [
                    _Subscription(s.id, s.event, _with_event_name(s.listener, event))
                    for s in self._listeners.get(ANY_EVENT, [])
                ]

        failures = 0
        for subscription in snapshot:
            try:
                result = subscription.listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failures += 1
                logger.warning(
                    "Event listener failed",
                    extra={"event": event, "listener_id": subscription.id},
                    exc_info=True,
                )
        return failures


def _with_event_name(listener: Listener, event: str) -> Listener:
    def _call(*args: Any) -> Any:
        return listener(event, *args)

    return _call
