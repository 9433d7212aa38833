"""
Companion client: composition root and presentation-facing API.

:class:`CompanionClient` builds one instance of every component, wires
them together and exposes the operations a UI (or the headless CLI)
needs:

- ``subscribe(observer)`` / ``snapshot``: follow the aggregated state
- ``trigger_scan()``, ``trigger_connect(device_id)``,
  ``trigger_disconnect()``: peripheral control
- ``trigger_server_connect()``: (re)open the server event stream
- ``journal``: read-only view of the activity journal

Hardware and network seams (Socket.IO client factory, bleak factories, access
gate, playback backend) can be injected, so several isolated clients can
live in one process.
"""

import logging
from typing import Any, Callable, List, Optional

from bleak import BleakClient, BleakScanner

from glasslink.audio.foreground import ForegroundMonitor
from glasslink.audio.playback import AudioPlayer
from glasslink.audio.relay import AudioRelay
from glasslink.config.constants import FRESH_START_RECONNECT_DELAY_MS
from glasslink.config.models import ApplicationConfig
from glasslink.exceptions import PermissionDenied
from glasslink.handlers.error_handler import ErrorHandler
from glasslink.journal import ActivityJournal
from glasslink.models.events import (
    ConnectionStatusMessage,
    DetectionMessage,
    InboundEventType,
    ServerStatusMessage,
)
from glasslink.models.state import AudioEvent, JournalEntry, PeripheralDevice, StateSnapshot
from glasslink.services.event_channel import EventChannel, SocketFactory
from glasslink.services.peripheral_link import AccessGate, PeripheralLink
from glasslink.state_facade import SnapshotObserver, StateFacade
from glasslink.utils.retry_utils import ReconnectPolicy

logger = logging.getLogger(__name__)


class ReadOnlyJournal:
    """Journal view handed to presentation code."""

    def __init__(self, journal: ActivityJournal):
        self._journal = journal

    @property
    def capacity(self) -> int:
        return self._journal.capacity

    def entries(self) -> List[JournalEntry]:
        return self._journal.entries()

    def lines(self) -> List[str]:
        return self._journal.lines()

    def __len__(self) -> int:
        return len(self._journal)


class CompanionClient:
    """
    Owns the event channel, peripheral link, audio relay, journal and state
    facade for one companion session.

    Args:
        config: Application configuration; defaults are used when omitted
        socket_factory: Builds the Socket.IO client for each server connection attempt
        scanner_factory: bleak scanner factory
        client_factory: bleak client factory
        access_gate: Bluetooth authorization check
        player: Local playback backend
        foreground: Host foreground flag
    """

    def __init__(
        self,
        config: Optional[ApplicationConfig] = None,
        socket_factory: Optional[SocketFactory] = None,
        scanner_factory: Callable[..., Any] = BleakScanner,
        client_factory: Callable[..., Any] = BleakClient,
        access_gate: Optional[AccessGate] = None,
        player: Optional[AudioPlayer] = None,
        foreground: Optional[ForegroundMonitor] = None,
    ):
        self.config = config or ApplicationConfig()

        self._journal = ActivityJournal(capacity=self.config.journal_capacity)
        self.error_handler = ErrorHandler(journal=self._journal)
        self.facade = StateFacade()
        self.foreground = foreground or ForegroundMonitor()

        self.event_channel = EventChannel(
            self.config.event_channel,
            self._journal,
            self.error_handler,
            socket_factory=socket_factory,
            on_state_change=self.facade.on_event_channel_state,
        )
        self.peripheral = PeripheralLink(
            self.config.peripheral,
            self._journal,
            self.error_handler,
            scanner_factory=scanner_factory,
            client_factory=client_factory,
            access_gate=access_gate,
            on_state_change=self.facade.on_peripheral_state,
        )
        self.relay = AudioRelay(
            self.config.audio,
            self._journal,
            self.error_handler,
            peripheral=self.peripheral,
            player=player,
            foreground=self.foreground,
        )
        self.journal = ReadOnlyJournal(self._journal)

        self.event_channel.subscribe(InboundEventType.AUDIO_DATA, self._on_audio_data)
        self.event_channel.subscribe(InboundEventType.DETECTION, self._on_detection)
        self.event_channel.subscribe(InboundEventType.CONNECTION_STATUS, self._on_connection_status)
        self.event_channel.subscribe(InboundEventType.SERVER_STATUS, self._on_server_status)

    # ------------------------------------------------------------------
    # Presentation API
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> StateSnapshot:
        return self.facade.snapshot

    def subscribe(
        self, observer: SnapshotObserver, emit_current: bool = False
    ) -> Callable[[], None]:
        """Follow snapshot changes. Returns an unsubscribe callable."""
        return self.facade.subscribe(observer, emit_current=emit_current)

    async def trigger_scan(
        self, duration: Optional[float] = None, name_filter: Optional[str] = None
    ) -> List[PeripheralDevice]:
        """
        Scan for peripherals, requesting Bluetooth access first if needed.

        Raises:
            PermissionDenied: If access is refused
            PeripheralBusy: If a peripheral is connecting or connected
        """
        if not self.peripheral.access_granted:
            if not await self.peripheral.request_access():
                raise PermissionDenied("Bluetooth permissions not granted")
        return await self.peripheral.discover(duration, name_filter)

    async def trigger_connect(self, device_id: str) -> PeripheralDevice:
        """Connect to a discovered peripheral. Raises PeripheralConnectionError."""
        return await self.peripheral.connect(device_id)

    async def trigger_disconnect(self) -> None:
        await self.peripheral.disconnect()

    async def trigger_server_connect(
        self, endpoint: Optional[str] = None, policy: Optional[ReconnectPolicy] = None
    ) -> None:
        """Open the server event stream using the configured reconnect policy."""
        await self.event_channel.connect(endpoint, policy)

    async def trigger_server_disconnect(self) -> None:
        await self.event_channel.disconnect()

    async def request_status(self) -> bool:
        return await self.event_channel.request_status()

    async def update_settings(
        self, confidence: Optional[float] = None, cooldown: Optional[float] = None
    ) -> bool:
        return await self.event_channel.update_settings(confidence=confidence, cooldown=cooldown)

    def set_foreground(self, foreground: bool) -> None:
        self.foreground.set_foreground(foreground)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, endpoint: Optional[str] = None) -> None:
        """Connect to the server on startup, with the slower startup retry delay."""
        policy = self.config.event_channel.reconnect_policy(
            base_delay_ms=FRESH_START_RECONNECT_DELAY_MS
        )
        await self.event_channel.connect(endpoint, policy)

    async def stop(self) -> None:
        """Close every component. Safe to call more than once."""
        await self.event_channel.close()
        await self.peripheral.close()
        await self.relay.close()

    async def drain(self) -> None:
        """Wait until both channels have delivered their pending notifications."""
        await self.event_channel.drain()
        await self.peripheral.drain()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_audio_data(self, event: AudioEvent) -> None:
        self.facade.on_description(event.description)
        if event.description:
            self._journal.info(f"Detected: {event.description}")
        await self.relay.handle(event)

    def _on_detection(self, message: DetectionMessage) -> None:
        self.facade.on_description(message.description)
        if message.description:
            logger.info(f"Detection: {message.description}")

    def _on_connection_status(self, message: ConnectionStatusMessage) -> None:
        text = message.message or message.status or ""
        self.facade.on_status(text)
        if text:
            self._journal.info(f"Server: {text}")

    def _on_server_status(self, status: ServerStatusMessage) -> None:
        logger.info(
            f"Server status: model_loaded={status.model_loaded}, "
            f"tts_available={status.tts_available}, "
            f"confidence={status.confidence}, clients={status.connected_clients}"
        )
