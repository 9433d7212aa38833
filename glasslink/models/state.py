"""Domain state types shared by the connectivity components.

All of these are plain dataclasses. ``StateSnapshot`` and
``PeripheralDevice`` are frozen so a reference handed to an observer can
never change underneath it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class ConnectionState(str, Enum):
    """Event channel connection lifecycle.

    FAILED is the terminal state reached after a bounded reconnect policy
    runs out of attempts.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "connection_failed"


class PeripheralState(str, Enum):
    """Peripheral link lifecycle."""

    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class JournalKind(str, Enum):
    """Severity tag attached to journal entries."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class PeripheralDevice:
    """A wireless peripheral seen during discovery.

    Identity is ``id`` (the channel address); ``name`` may be absent.
    """

    id: str
    name: Optional[str] = None
    signal_strength: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class AudioEvent:
    """One audio push from the perception server."""

    payload: str
    description: str = ""
    detected_objects: Tuple[str, ...] = ()
    timestamp: str = ""
    received_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class JournalEntry:
    timestamp: datetime
    message: str
    kind: JournalKind = JournalKind.INFO

    def format(self) -> str:
        """Render as ``[HH:MM:SS] message``."""
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


@dataclass(frozen=True)
class StateSnapshot:
    """Consistent view of both channels for presentation code.

    ``active_device`` is only ever set while ``peripheral_state`` is
    CONNECTED.
    """

    event_channel_state: ConnectionState = ConnectionState.DISCONNECTED
    peripheral_state: PeripheralState = PeripheralState.IDLE
    active_device: Optional[PeripheralDevice] = None
    last_description: Optional[str] = None
    last_status: Optional[str] = None

    @property
    def server_connected(self) -> bool:
        return self.event_channel_state == ConnectionState.CONNECTED

    @property
    def peripheral_connected(self) -> bool:
        return self.peripheral_state == PeripheralState.CONNECTED
