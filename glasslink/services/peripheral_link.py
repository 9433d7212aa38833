"""
Wireless peripheral link (BLE) to the external audio output device.

This module manages discovery, connection and characteristic writes to
exactly one peripheral at a time, using bleak for the platform BLE stack.

State machine::

    IDLE -> SCANNING -> (device_found)* -> CONNECTING -> CONNECTED -> IDLE

Scanning and connecting are mutually exclusive: ``connect()`` stops any
active scan first. Unlike the event channel, a failed or dropped
peripheral connection is never retried automatically.

Notifications (single handler per kind, see :class:`EventRouter`):

- ``device_found``: :class:`PeripheralDevice`
- ``connect``: :class:`PeripheralDevice`
- ``disconnect``: :class:`PeripheralDevice` that was active
"""

import asyncio
import enum
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from glasslink.config.constants import DEFAULT_SIGNAL_STRENGTH
from glasslink.config.models import PeripheralConfig
from glasslink.exceptions import (
    NotConnected,
    PeripheralBusy,
    PeripheralConnectionError,
    PermissionDenied,
)
from glasslink.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from glasslink.handlers.event_router import EventKind, EventRouter, SubscriptionHandle
from glasslink.journal import ActivityJournal
from glasslink.models.state import PeripheralDevice, PeripheralState

logger = logging.getLogger(__name__)

AccessGate = Callable[[], Awaitable[bool]]
StateListener = Callable[[PeripheralState, Optional[PeripheralDevice]], None]

_SCAN_STOPPED = object()


class PeripheralEventType(str, enum.Enum):
    DEVICE_FOUND = "device_found"
    CONNECT = "connect"
    DISCONNECT = "disconnect"


class _ScanSession:
    """Bookkeeping for one scan window."""

    def __init__(self, scanner: Any):
        self.scanner = scanner
        self.queue: asyncio.Queue = asyncio.Queue()
        self.seen: set = set()
        self.stopped = False
        self.hardware_stopped = False


class PeripheralLink:
    """
    Owns the single BLE peripheral connection.

    Hardware access goes through ``scanner_factory`` and ``client_factory``
    (``BleakScanner`` and ``BleakClient`` by default) so the link can run
    against fakes in tests.
    """

    def __init__(
        self,
        config: PeripheralConfig,
        journal: ActivityJournal,
        error_handler: ErrorHandler,
        scanner_factory: Callable[..., Any] = BleakScanner,
        client_factory: Callable[..., Any] = BleakClient,
        access_gate: Optional[AccessGate] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.config = config
        self.journal = journal
        self.error_handler = error_handler
        self._scanner_factory = scanner_factory
        self._client_factory = client_factory
        self._access_gate = access_gate or self._probe_adapter
        self._on_state_change = on_state_change
        self._router = EventRouter("peripheral", known_kinds=PeripheralEventType)

        self._state = PeripheralState.IDLE
        self._access_granted = False
        self._discovered: Dict[str, PeripheralDevice] = {}
        self._ble_devices: Dict[str, Any] = {}
        self._scan: Optional[_ScanSession] = None
        self._client: Any = None
        self._pending_client: Any = None
        self._active_device: Optional[PeripheralDevice] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PeripheralState:
        return self._state

    @property
    def active_device(self) -> Optional[PeripheralDevice]:
        return self._active_device

    @property
    def discovered_devices(self) -> List[PeripheralDevice]:
        """Devices seen in the current scan window, in discovery order."""
        return list(self._discovered.values())

    @property
    def access_granted(self) -> bool:
        return self._access_granted

    def is_connected(self) -> bool:
        return self._state == PeripheralState.CONNECTED and self._client is not None

    def on(self, kind: EventKind, handler: Callable) -> SubscriptionHandle:
        """Register the single handler for ``kind`` (last registration wins)."""
        return self._router.subscribe(kind, handler)

    def off(self, kind: EventKind) -> bool:
        return self._router.unsubscribe(kind)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def request_access(self) -> bool:
        """Evaluate the platform authorization gate. Must succeed before ``scan``."""
        try:
            granted = bool(await self._access_gate())
        except Exception as e:
            logger.warning(f"Bluetooth access check failed: {e}")
            granted = False

        self._access_granted = granted
        if granted:
            self.journal.success("Bluetooth access granted")
        else:
            self.journal.warning("Bluetooth access denied")
        return granted

    async def _probe_adapter(self) -> bool:
        """Default gate: the adapter is usable if a scan can be started."""
        scanner = self._scanner_factory()
        try:
            await scanner.start()
            await scanner.stop()
            return True
        except (BleakError, OSError) as e:
            logger.warning(f"Bluetooth adapter unavailable: {e}")
            return False

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def scan(
        self, duration: Optional[float] = None, name_filter: Optional[str] = None
    ) -> AsyncIterator[PeripheralDevice]:
        """
        Discover nearby named peripherals.

        Yields each device id at most once per scan window (first sighting
        wins). The window ends after ``duration`` seconds or on
        :meth:`stop_scan` / :meth:`connect`. Starting a new scan ends any
        scan already running and clears the discovery registry.

        Args:
            duration: Scan window in seconds; defaults to the configured one
            name_filter: Only report devices whose name contains this text

        Raises:
            PermissionDenied: If :meth:`request_access` has not been granted
            PeripheralBusy: If a connection is in progress or established
        """
        if not self._access_granted:
            raise PermissionDenied("Bluetooth permissions not granted")
        if self._state in (PeripheralState.CONNECTING, PeripheralState.CONNECTED):
            raise PeripheralBusy(f"Cannot scan while {self._state.value}")

        if self._scan is not None:
            await self._halt_scan(self._scan)

        duration = self.config.scan_duration if duration is None else duration
        self._discovered.clear()
        self._ble_devices.clear()

        session = _ScanSession(scanner=None)
        session.scanner = self._scanner_factory(
            detection_callback=lambda device, adv: self._on_detection(session, name_filter, device, adv)
        )
        self._scan = session
        self._set_state(PeripheralState.SCANNING)
        self.journal.info("Scanning for Bluetooth devices...")

        try:
            await session.scanner.start()
        except Exception as e:
            self._scan = None
            self._set_state(PeripheralState.IDLE)
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.PERIPHERAL,
                severity=ErrorSeverity.HIGH,
                operation="scan",
                message=f"Scan error: {e}",
            )
            raise

        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        try:
            while True:
                if session.stopped:
                    # The end marker is queued behind every device already found
                    item = await session.queue.get()
                else:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        self._end_window(session)
                        continue
                    try:
                        item = await asyncio.wait_for(session.queue.get(), timeout=remaining)
                    except asyncio.TimeoutError:
                        self._end_window(session)
                        continue
                if item is _SCAN_STOPPED:
                    break
                yield item
        finally:
            await self._halt_scan(session)
            if self._scan is session:
                self._scan = None
                if self._state == PeripheralState.SCANNING:
                    self._set_state(PeripheralState.IDLE)
            self.journal.info(f"Scan complete. Found {len(session.seen)} devices")

    async def discover(
        self, duration: Optional[float] = None, name_filter: Optional[str] = None
    ) -> List[PeripheralDevice]:
        """Run a full scan window and return the devices found."""
        return [device async for device in self.scan(duration, name_filter)]

    def stop_scan(self) -> None:
        """End the active scan window early."""
        if self._scan is not None:
            self._end_window(self._scan)

    @staticmethod
    def _end_window(session: _ScanSession) -> None:
        """Stop accepting sightings; devices queued so far are still delivered."""
        if not session.stopped:
            session.stopped = True
            session.queue.put_nowait(_SCAN_STOPPED)

    def _on_detection(
        self, session: _ScanSession, name_filter: Optional[str], device: Any, adv: Any
    ) -> None:
        if session.stopped or self._scan is not session:
            return
        address = device.address
        if address in session.seen:
            return
        name = device.name or getattr(adv, "local_name", None)
        if not name:
            return
        if name_filter and name_filter not in name:
            return

        rssi = getattr(adv, "rssi", None)
        found = PeripheralDevice(
            id=address,
            name=name,
            signal_strength=rssi if rssi is not None else DEFAULT_SIGNAL_STRENGTH,
        )
        session.seen.add(address)
        self._discovered[address] = found
        self._ble_devices[address] = device
        logger.info(f"Found: {name} ({address})")
        session.queue.put_nowait(found)
        self._router.dispatch(PeripheralEventType.DEVICE_FOUND, found)

    async def _halt_scan(self, session: _ScanSession) -> None:
        self._end_window(session)
        if session.hardware_stopped:
            return
        session.hardware_stopped = True
        try:
            await session.scanner.stop()
        except Exception as e:
            logger.warning(f"Error stopping scan: {e}")

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self, device_id: str) -> PeripheralDevice:
        """
        Connect to a peripheral and make it the active device.

        Any active scan is stopped first, and a different active device is
        released before the new one is acquired.

        Raises:
            PeripheralBusy: If another connection attempt is in flight
            PeripheralConnectionError: If the connection fails
        """
        if self._state == PeripheralState.CONNECTING:
            raise PeripheralBusy("A connection attempt is already in progress")
        if self.is_connected():
            if self._active_device is not None and self._active_device.id == device_id:
                return self._active_device
            await self.disconnect()

        device = self._discovered.get(device_id) or PeripheralDevice(id=device_id)
        self._set_state(PeripheralState.CONNECTING)
        if self._scan is not None:
            await self._halt_scan(self._scan)
        self.journal.info(f"Connecting to device: {device.display_name}")

        client = self._client_factory(
            self._ble_devices.get(device_id, device_id),
            disconnected_callback=self._on_hardware_disconnect,
        )
        self._pending_client = client
        try:
            await client.connect()
            services = client.services
            if services is not None and services.get_characteristic(self.config.characteristic_uuid) is None:
                logger.warning(
                    f"Characteristic {self.config.characteristic_uuid} not found on {device.display_name}"
                )
        except Exception as e:
            if self._pending_client is not client:
                # disconnect() tore the link down while it was being set up
                await self._cancel_connect(client, device)
            self._pending_client = None
            self._set_state(PeripheralState.IDLE)
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.PERIPHERAL,
                severity=ErrorSeverity.HIGH,
                operation="connect",
                message=f"Connection error: {e}",
                device_id=device_id,
            )
            try:
                await client.disconnect()
            except Exception as cleanup_error:
                logger.debug(f"Error releasing failed connection: {cleanup_error}")
            raise PeripheralConnectionError(f"Could not connect to {device_id}: {e}") from e

        if self._pending_client is not client:
            # disconnect() was called while the connection was being set up
            await self._cancel_connect(client, device)

        self._pending_client = None
        self._client = client
        self._active_device = device
        self._set_state(PeripheralState.CONNECTED)
        self.journal.success(f"Connected to: {device.display_name}")
        self._router.dispatch(PeripheralEventType.CONNECT, device)
        return device

    async def _cancel_connect(self, client: Any, device: PeripheralDevice) -> None:
        """Finish an attempt that :meth:`disconnect` abandoned, then raise."""
        try:
            await client.disconnect()
        except Exception as e:
            logger.debug(f"Error releasing cancelled connection: {e}")
        error = PeripheralConnectionError(f"Connection to {device.id} was cancelled")
        await self.error_handler.handle_error(
            error,
            context=ErrorContext.PERIPHERAL,
            severity=ErrorSeverity.LOW,
            operation="connect",
            message=f"Connection to {device.display_name} cancelled",
            device_id=device.id,
        )
        raise error

    async def disconnect(self) -> None:
        """Release the active device. Legal in every state; never raises."""
        if self._scan is not None:
            await self._halt_scan(self._scan)

        pending, self._pending_client = self._pending_client, None
        if pending is not None:
            # The abandoned connect() reports the cancellation itself
            self._set_state(PeripheralState.IDLE)
            try:
                await pending.disconnect()
            except Exception as e:
                logger.debug(f"Error cancelling pending connection: {e}")

        client = self._client
        if client is None:
            return
        self._release(client, "Disconnected successfully")
        try:
            await client.disconnect()
        except Exception as e:
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.PERIPHERAL,
                severity=ErrorSeverity.LOW,
                operation="disconnect",
                message=f"Disconnect error: {e}",
            )

    def _on_hardware_disconnect(self, client: Any) -> None:
        """bleak ``disconnected_callback``; also fires after a requested disconnect."""
        if client is not self._client:
            return
        self._release(client, "Device disconnected")

    def _release(self, client: Any, message: str) -> None:
        """Clear the active slot and notify exactly once per connection."""
        if client is not self._client:
            return
        device = self._active_device
        self._client = None
        self._active_device = None
        self._set_state(PeripheralState.IDLE)
        self.journal.info(message)
        self._router.dispatch(PeripheralEventType.DISCONNECT, device)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def write(self, data: bytes) -> bool:
        """
        Write bytes to the peripheral's data characteristic.

        The payload is split into ``chunk_size`` frames. Higher-level audio
        framing is the peripheral firmware's concern.

        Returns:
            bool: True if every frame was written

        Raises:
            NotConnected: If there is no active device
        """
        client = self._client
        if client is None or self._state != PeripheralState.CONNECTED:
            raise NotConnected("No device connected")

        chunk_size = self.config.chunk_size
        try:
            for offset in range(0, len(data), chunk_size):
                await client.write_gatt_char(
                    self.config.characteristic_uuid,
                    data[offset:offset + chunk_size],
                    response=self.config.write_with_response,
                )
        except Exception as e:
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.PERIPHERAL,
                severity=ErrorSeverity.MEDIUM,
                operation="write",
                message=f"Send audio error: {e}",
            )
            return False

        logger.debug(f"Wrote {len(data)} bytes to {self.config.characteristic_uuid}")
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait until all dispatched notifications have been handled."""
        await self._router.drain()

    async def close(self) -> None:
        """Stop scanning, release the device and stop notification delivery."""
        self.stop_scan()
        await self.disconnect()
        await self._router.close()

    def _set_state(self, state: PeripheralState) -> None:
        if state == self._state:
            return
        logger.info(f"Peripheral link: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state, self._active_device)
            except Exception as e:
                logger.error(f"Error in peripheral state listener: {e}")
