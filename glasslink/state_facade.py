"""
Aggregated, immutable connectivity snapshot for presentation code.

:class:`StateFacade` has no algorithm of its own. It is fed by the event
channel and peripheral link state listeners and by the description-bearing
server events, and republishes a new frozen :class:`StateSnapshot` on
every change. Each update builds the whole next snapshot before swapping
it in, so an observer never sees e.g. a connected peripheral without an
active device.

Unlike the channel registries, the facade keeps a list of observers: any
number of views may follow the snapshot at once.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional

from glasslink.models.state import (
    ConnectionState,
    PeripheralDevice,
    PeripheralState,
    StateSnapshot,
)

logger = logging.getLogger(__name__)

SnapshotObserver = Callable[[StateSnapshot], None]


class StateFacade:
    def __init__(self, initial: Optional[StateSnapshot] = None):
        self._snapshot = initial or StateSnapshot()
        self._observers: List[SnapshotObserver] = []

    @property
    def snapshot(self) -> StateSnapshot:
        return self._snapshot

    def subscribe(
        self, observer: SnapshotObserver, emit_current: bool = False
    ) -> Callable[[], None]:
        """
        Follow snapshot changes.

        Args:
            observer: Called synchronously with each new snapshot
            emit_current: Also call it once with the current snapshot

        Returns:
            Callable: Removes this observer when called
        """
        self._observers.append(observer)
        if emit_current:
            self._notify(observer, self._snapshot)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # Inputs

    def on_event_channel_state(self, state: ConnectionState) -> None:
        self._publish(event_channel_state=state)

    def on_peripheral_state(
        self, state: PeripheralState, device: Optional[PeripheralDevice] = None
    ) -> None:
        if state != PeripheralState.CONNECTED:
            device = None
        self._publish(peripheral_state=state, active_device=device)

    def on_description(self, description: str) -> None:
        if description:
            self._publish(last_description=description)

    def on_status(self, status: str) -> None:
        if status:
            self._publish(last_status=status)

    # Output

    def _publish(self, **changes) -> None:
        current = self._snapshot
        candidate = replace(current, **changes)
        if candidate == current:
            return
        self._snapshot = candidate
        for observer in list(self._observers):
            self._notify(observer, candidate)

    def _notify(self, observer: SnapshotObserver, snapshot: StateSnapshot) -> None:
        try:
            observer(snapshot)
        except Exception as e:
            logger.error(f"Error in snapshot observer: {e}")
