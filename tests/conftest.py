"""
Pytest configuration file for the glasslink test suite.

Hardware and network are never touched: the Socket.IO client, the bleak
scanner/client factories and the playback backend are replaced by the
fakes defined here.
"""

import asyncio
import base64
import inspect
import io
import logging
import wave
from typing import List, Optional

import pytest
from socketio import exceptions as socketio_exceptions

from glasslink.audio.playback import AudioPlayer, PlaybackResource
from glasslink.config.models import (
    ApplicationConfig,
    AudioConfig,
    EventChannelConfig,
    PeripheralConfig,
)
from glasslink.handlers.error_handler import ErrorHandler
from glasslink.journal import ActivityJournal


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture(autouse=True)
def skip_integration(request):
    if request.node.get_closest_marker("integration"):
        pytest.skip("Skipping integration tests: needs hardware or a live server")


# ----------------------------------------------------------------------
# Audio helpers
# ----------------------------------------------------------------------


def make_wav_bytes(duration: float = 0.05, sample_rate: int = 16000) -> bytes:
    """Build a short silent 16-bit mono WAV file in memory."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(b"\x00\x00" * int(sample_rate * duration))
    return buffer.getvalue()


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav_bytes()


@pytest.fixture
def wav_b64(wav_bytes) -> str:
    return base64.b64encode(wav_bytes).decode("ascii")


class FakeResource(PlaybackResource):
    def __init__(self, path: str, data: bytes):
        super().__init__()
        self.path = path
        self.data = data
        self.played = False
        self.unload_calls = 0

    async def play(self) -> None:
        self.played = True

    async def unload(self) -> None:
        self.unload_calls += 1
        self.unloaded = True
        self._mark_finished()

    def complete(self) -> None:
        """Simulate natural end of playback."""
        self._mark_finished()


class FakePlayer(AudioPlayer):
    """Records every load; resources never finish unless told to."""

    def __init__(self, fail_load: bool = False):
        self.fail_load = fail_load
        self.resources: List[FakeResource] = []

    async def load(self, path) -> FakeResource:
        if self.fail_load:
            raise RuntimeError("unsupported format")
        with open(path, "rb") as f:
            data = f.read()
        resource = FakeResource(str(path), data)
        self.resources.append(resource)
        return resource

    @property
    def loaded(self) -> List[FakeResource]:
        return [r for r in self.resources if not r.unloaded]


@pytest.fixture
def fake_player() -> FakePlayer:
    return FakePlayer()


# ----------------------------------------------------------------------
# Socket.IO server fakes
# ----------------------------------------------------------------------


class FakeSocketIOClient:
    """Stands in for ``socketio.AsyncClient``; the test plays the server.

    ``refuse`` makes ``connect`` fail the way the real client does,
    ``hang`` makes it wait forever for the server's namespace reply.
    """

    def __init__(self, refuse: Optional[str] = None, hang: bool = False):
        self.refuse = refuse
        self.hang = hang
        self.handlers = {}
        self.connected = False
        self.connect_calls: List[tuple] = []
        self.emitted: List[tuple] = []
        self.fail_emit = False
        self.disconnect_calls = 0

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def connect(self, url, **kwargs) -> None:
        self.connect_calls.append((url, kwargs))
        if self.hang:
            await asyncio.Event().wait()
        if self.refuse:
            raise socketio_exceptions.ConnectionError(self.refuse)
        self.connected = True

    async def emit(self, event, data=None) -> None:
        if not self.connected or self.fail_emit:
            raise socketio_exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            await self._fire("disconnect", "client disconnect")

    async def push_event(self, name: str, *args) -> None:
        """Deliver a server event the way the client library dispatches it."""
        if name in self.handlers:
            await self._fire(name, *args)

    async def drop(self, reason: str = "transport error") -> None:
        """Simulate the transport dying."""
        self.connected = False
        await self._fire("disconnect", reason)

    async def server_disconnect(self) -> None:
        """Simulate an orderly close initiated by the server."""
        await self.drop("server disconnect")

    @property
    def url(self) -> Optional[str]:
        return self.connect_calls[0][0] if self.connect_calls else None

    async def _fire(self, event: str, *args) -> None:
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result


class FakeSocketFactory:
    """Hands out scripted clients in order; ``None`` entries refuse the connection."""

    def __init__(self, clients: Optional[List[Optional[FakeSocketIOClient]]] = None):
        self.pending = list(clients or [])
        self.created: List[FakeSocketIOClient] = []

    def add(self, client: Optional[FakeSocketIOClient]) -> None:
        self.pending.append(client)

    def __call__(self) -> FakeSocketIOClient:
        client = self.pending.pop(0) if self.pending else None
        if client is None:
            client = FakeSocketIOClient(refuse="Connection refused")
        self.created.append(client)
        return client

    @property
    def urls(self) -> List[str]:
        return [client.url for client in self.created if client.url]


@pytest.fixture
def socket_factory() -> FakeSocketFactory:
    return FakeSocketFactory()


# ----------------------------------------------------------------------
# BLE fakes
# ----------------------------------------------------------------------


class FakeBLEDevice:
    def __init__(self, address: str, name: Optional[str] = None):
        self.address = address
        self.name = name


class FakeAdvertisement:
    def __init__(self, rssi: Optional[int] = None, local_name: Optional[str] = None):
        self.rssi = rssi
        self.local_name = local_name


class FakeScanner:
    """Stands in for ``BleakScanner``; tests call ``emit`` to simulate sightings."""

    instances: List["FakeScanner"] = []

    def __init__(self, detection_callback=None, sightings=None, fail_start: bool = False):
        self.detection_callback = detection_callback
        self.sightings = list(sightings or [])
        self.fail_start = fail_start
        self.started = False
        self.stopped = False
        FakeScanner.instances.append(self)

    async def start(self) -> None:
        if self.fail_start:
            raise OSError("Bluetooth adapter is off")
        self.started = True
        for device, adv in self.sightings:
            self.emit(device, adv)

    async def stop(self) -> None:
        self.stopped = True

    def emit(self, device: FakeBLEDevice, adv: FakeAdvertisement) -> None:
        if self.detection_callback is not None:
            self.detection_callback(device, adv)


class FakeCharacteristics:
    def __init__(self, uuids):
        self.uuids = set(uuids)

    def get_characteristic(self, uuid):
        return uuid if uuid in self.uuids else None


class FakeClient:
    """Stands in for ``BleakClient``."""

    def __init__(self, address_or_device, disconnected_callback=None, fail_connect=False,
                 fail_write=False, characteristic_uuid=None, connect_delay=0.0):
        self.target = address_or_device
        self.disconnected_callback = disconnected_callback
        self.fail_connect = fail_connect
        self.connect_delay = connect_delay
        self.fail_write = fail_write
        self.connected = False
        self.writes: List[bytes] = []
        self.write_responses: List[bool] = []
        self.disconnect_calls = 0
        self.services = FakeCharacteristics([characteristic_uuid] if characteristic_uuid else [])

    async def connect(self) -> bool:
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect:
            raise OSError("Device not reachable")
        self.connected = True
        return True

    async def disconnect(self) -> bool:
        self.disconnect_calls += 1
        was_connected = self.connected
        self.connected = False
        if was_connected and self.disconnected_callback is not None:
            self.disconnected_callback(self)
        return True

    async def write_gatt_char(self, uuid, data, response=False) -> None:
        if self.fail_write:
            raise OSError("GATT write failed")
        self.writes.append(bytes(data))
        self.write_responses.append(response)

    def drop(self) -> None:
        """Simulate the peripheral going out of range."""
        self.connected = False
        if self.disconnected_callback is not None:
            self.disconnected_callback(self)


class ClientFactory:
    """Records every ``FakeClient`` it builds.

    ``connect_delays`` gives the n-th client a slow ``connect``; clients
    past the end of the list connect immediately.
    """

    def __init__(self, connect_delays=None, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.connect_delays = list(connect_delays or [])
        self.clients: List[FakeClient] = []

    def __call__(self, address_or_device, disconnected_callback=None) -> FakeClient:
        delay = self.connect_delays.pop(0) if self.connect_delays else 0.0
        client = FakeClient(
            address_or_device,
            disconnected_callback=disconnected_callback,
            connect_delay=delay,
            **self.client_kwargs,
        )
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


def scanner_factory_with(sightings=None, fail_start=False):
    def factory(detection_callback=None):
        return FakeScanner(detection_callback, sightings=sightings, fail_start=fail_start)

    return factory


async def allow_access() -> bool:
    return True


async def deny_access() -> bool:
    return False


# ----------------------------------------------------------------------
# Component fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def journal() -> ActivityJournal:
    return ActivityJournal(capacity=50)


@pytest.fixture
def error_handler(journal) -> ErrorHandler:
    return ErrorHandler(journal=journal)


@pytest.fixture
def channel_config() -> EventChannelConfig:
    return EventChannelConfig(
        server_url="http://perception.local:5000",
        reconnect_base_delay_ms=0,
        reconnect_max_attempts=3,
        reconnect_max_delay_ms=0,
    )


@pytest.fixture
def peripheral_config() -> PeripheralConfig:
    return PeripheralConfig(scan_duration=0.2, chunk_size=4)


@pytest.fixture
def audio_config(tmp_path) -> AudioConfig:
    return AudioConfig(transient_file=tmp_path / "transient.wav")


@pytest.fixture
def app_config(channel_config, peripheral_config, audio_config) -> ApplicationConfig:
    return ApplicationConfig(
        event_channel=channel_config,
        peripheral=peripheral_config,
        audio=audio_config,
    )


def audio_payload(audio: str, description: str = "a chair ahead", objects=None, timestamp="t1"):
    return {
        "audio": audio,
        "description": description,
        "objects": objects if objects is not None else ["chair"],
        "timestamp": timestamp,
    }


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)
