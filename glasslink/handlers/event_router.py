"""Event router with one active handler per event kind.

Both long-lived channels (the perception server stream and the peripheral
link) publish their notifications through an :class:`EventRouter`.

Delivery rules:
- subscribing to a kind replaces its previous handler (last wins)
- events of one kind are delivered in arrival order, and a handler is not
  invoked again for that kind until its previous invocation has returned
- different kinds are delivered concurrently with respect to each other
- a failing handler is logged and never stops delivery of later events
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

logger = logging.getLogger(__name__)

EventKind = Union[str, Enum]


def _kind_key(kind: EventKind) -> str:
    return kind.value if isinstance(kind, Enum) else str(kind)


class SubscriptionHandle:
    """Returned by :meth:`EventRouter.subscribe`; cancels that registration only."""

    def __init__(self, router: "EventRouter", kind: str, handler: Callable):
        self.router = router
        self.kind = kind
        self.handler = handler

    @property
    def active(self) -> bool:
        return self.router.get_handler(self.kind) is self.handler

    def cancel(self) -> bool:
        """Unsubscribe if this handler is still the active one for its kind."""
        if self.active:
            return self.router.unsubscribe(self.kind)
        return False


class EventRouter:
    """Maps each event kind to a single handler and serialises delivery per kind.

    Attributes:
        name (str): Owner name used in log lines
        known_kinds (Optional[Tuple[str, ...]]): When set, subscribing to any
            other kind raises ``ValueError``
    """

    def __init__(self, name: str, known_kinds: Optional[Iterable[EventKind]] = None):
        self.name = name
        self.known_kinds: Optional[Tuple[str, ...]] = (
            tuple(_kind_key(k) for k in known_kinds) if known_kinds is not None else None
        )
        self._handlers: Dict[str, Callable] = {}
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def subscribe(self, kind: EventKind, handler: Callable) -> SubscriptionHandle:
        """Register ``handler`` for ``kind``, replacing any previous handler.

        Args:
            kind: Event kind (string or str-valued enum)
            handler: Sync or async callable taking the event payload

        Returns:
            SubscriptionHandle: Handle that cancels this registration
        """
        key = _kind_key(kind)
        if self.known_kinds is not None and key not in self.known_kinds:
            raise ValueError(f"Unknown {self.name} event kind: {key}")
        if key in self._handlers:
            logger.debug(f"[{self.name}] Replacing handler for '{key}'")
        self._handlers[key] = handler
        return SubscriptionHandle(self, key, handler)

    def unsubscribe(self, kind: EventKind) -> bool:
        """Remove the handler for ``kind``. Returns True if one was registered."""
        return self._handlers.pop(_kind_key(kind), None) is not None

    def get_handler(self, kind: EventKind) -> Optional[Callable]:
        return self._handlers.get(_kind_key(kind))

    def has_handler(self, kind: EventKind) -> bool:
        return _kind_key(kind) in self._handlers

    def dispatch(self, kind: EventKind, payload: Any = None) -> None:
        """Queue an event for delivery to the handler of its kind.

        Never blocks and never runs the handler inline. Must be called from
        the event loop thread.
        """
        key = _kind_key(kind)
        queue = self._queues.get(key)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[key] = queue
        worker = self._workers.get(key)
        if worker is None or worker.done():
            self._workers[key] = asyncio.get_running_loop().create_task(
                self._deliver(key, queue), name=f"{self.name}:{key}"
            )
        self._pending += 1
        self._idle.clear()
        queue.put_nowait(payload)

    async def _deliver(self, key: str, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                handler = self._handlers.get(key)
                if handler is None:
                    logger.debug(f"[{self.name}] No handler for '{key}', event dropped")
                    continue
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[{self.name}] Error in '{key}' handler: {e}")
            finally:
                self._pending -= 1
                if self._pending <= 0:
                    self._pending = 0
                    self._idle.set()

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        if self._pending:
            await self._idle.wait()

    async def close(self) -> None:
        """Stop the delivery workers. Queued events are discarded."""
        current = asyncio.current_task()
        workers = [w for w in self._workers.values() if w is not current]
        self._workers.clear()
        self._queues.clear()
        self._pending = 0
        self._idle.set()
        for worker in workers:
            worker.cancel()
        for worker in workers:
            try:
                await worker
            except asyncio.CancelledError:
                pass

    def get_handler_stats(self) -> Dict[str, Any]:
        """Get statistics about registered handlers and pending events."""
        return {
            "handlers": sorted(self._handlers),
            "pending": {key: queue.qsize() for key, queue in self._queues.items()},
        }
