"""Domain state types and server wire models."""

from .events import (
    AudioDataMessage,
    ConnectionStatusMessage,
    DetectionMessage,
    InboundEventType,
    OutboundEventType,
    ServerStatusMessage,
    UpdateSettingsMessage,
)
from .state import (
    AudioEvent,
    ConnectionState,
    JournalEntry,
    JournalKind,
    PeripheralDevice,
    PeripheralState,
    StateSnapshot,
)

__all__ = [
    "AudioDataMessage",
    "AudioEvent",
    "ConnectionState",
    "ConnectionStatusMessage",
    "DetectionMessage",
    "InboundEventType",
    "JournalEntry",
    "JournalKind",
    "OutboundEventType",
    "PeripheralDevice",
    "PeripheralState",
    "ServerStatusMessage",
    "StateSnapshot",
    "UpdateSettingsMessage",
]
