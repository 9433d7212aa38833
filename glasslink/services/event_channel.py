"""
Event channel to the remote perception server.

This module owns the Socket.IO connection to the perception server: one
``socketio.AsyncClient`` per connection attempt, automatic reconnection
governed by a :data:`ReconnectPolicy`, and a single-handler-per-kind
registry for the events the server pushes.

The Socket.IO client's own reconnection is switched off; the supervisor
task here is the only thing that retries.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED
                        |             |
                        v             v (transport error / server close)
                   RECONNECTING <-----+
                        |
                        +-> CONNECTING (next attempt)
                        +-> FAILED      (bounded policy exhausted)

``disconnect()`` is legal in every state and always ends in DISCONNECTED.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import socketio
from pydantic import BaseModel, ValidationError
from socketio import exceptions as socketio_exceptions

from glasslink.config.constants import SOCKETIO_PATH
from glasslink.config.models import EventChannelConfig
from glasslink.exceptions import DecodeError, TransportError
from glasslink.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from glasslink.handlers.event_router import EventKind, EventRouter, SubscriptionHandle
from glasslink.journal import ActivityJournal
from glasslink.models.events import (
    EVENT_ALIASES,
    AudioDataMessage,
    ConnectionStatusMessage,
    DetectionMessage,
    InboundEventType,
    OutboundEventType,
    ServerStatusMessage,
    UpdateSettingsMessage,
)
from glasslink.models.state import ConnectionState
from glasslink.utils.retry_utils import ReconnectPolicy, RetryUtils

logger = logging.getLogger(__name__)

SocketFactory = Callable[[], Any]
StateListener = Callable[[ConnectionState], None]

SUPPORTED_SCHEMES = ("http", "https", "ws", "wss")

# Inbound payload models, keyed by event name
_PAYLOAD_MODELS: Dict[str, type] = {
    InboundEventType.CONNECTION_STATUS.value: ConnectionStatusMessage,
    InboundEventType.AUDIO_DATA.value: AudioDataMessage,
    InboundEventType.DETECTION.value: DetectionMessage,
    InboundEventType.SERVER_STATUS.value: ServerStatusMessage,
}


def validate_endpoint(endpoint: str) -> str:
    """Reject endpoints the Socket.IO client cannot open. Returns the endpoint."""
    parsed = urlparse(endpoint)
    if parsed.scheme not in SUPPORTED_SCHEMES or not parsed.netloc:
        raise ValueError(f"Unsupported server URL: {endpoint}")
    return endpoint


def default_socket_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class _Session:
    """One live Socket.IO connection and the signal that it has ended."""

    def __init__(self, sio: Any):
        self.sio = sio
        self.closed = asyncio.Event()
        self.reason = "connection lost"

    def on_disconnect(self, reason: Any = None) -> None:
        if reason:
            self.reason = str(reason)
        self.closed.set()


class EventChannel:
    """
    Persistent event stream to the perception server.

    Notifications are published through an :class:`EventRouter`:

    - ``connect``: payload None
    - ``disconnect``: payload is the reason string
    - ``connection_status``: :class:`ConnectionStatusMessage`
    - ``audio_data``: :class:`AudioEvent` (also fed by legacy ``audio_ready``)
    - ``detection``: :class:`DetectionMessage`
    - ``server_status``: :class:`ServerStatusMessage`

    Exhausting a bounded reconnect policy moves the channel to FAILED and
    journals the failure; nothing is raised to the caller.
    """

    def __init__(
        self,
        config: EventChannelConfig,
        journal: ActivityJournal,
        error_handler: ErrorHandler,
        socket_factory: Optional[SocketFactory] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.config = config
        self.journal = journal
        self.error_handler = error_handler
        self._socket_factory = socket_factory or default_socket_factory
        self._on_state_change = on_state_change
        self._router = EventRouter("event_channel", known_kinds=InboundEventType)

        self._state = ConnectionState.DISCONNECTED
        self._endpoint: Optional[str] = None
        self._policy: ReconnectPolicy = config.reconnect_policy()
        self._session: Optional[_Session] = None
        self._run_task: Optional[asyncio.Task] = None
        self._first_attempt: Optional[asyncio.Future] = None
        self._connected_notified = False
        self._closing = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def subscribe(self, kind: EventKind, handler: Callable) -> SubscriptionHandle:
        """Register the single handler for ``kind`` (last registration wins)."""
        return self._router.subscribe(kind, handler)

    def unsubscribe(self, kind: EventKind) -> bool:
        return self._router.unsubscribe(kind)

    async def connect(
        self,
        endpoint: Optional[str] = None,
        policy: Optional[ReconnectPolicy] = None,
    ) -> None:
        """
        Open the event stream and keep it alive.

        A no-op while a connection is established or being attempted. Returns
        once the first attempt has either succeeded or failed; retries keep
        running in the background.

        Args:
            endpoint: Server URL; defaults to the configured ``server_url``
            policy: Reconnect policy for this session; defaults to the
                configured one

        Raises:
            ValueError: If the endpoint is not an http(s)/ws(s) URL
        """
        if self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
        ):
            logger.debug(f"connect() ignored while {self._state.value}")
            return

        self._endpoint = validate_endpoint(endpoint or self.config.server_url)
        self._policy = policy or self.config.reconnect_policy()
        self._closing = False
        self._first_attempt = asyncio.get_running_loop().create_future()
        self._set_state(ConnectionState.CONNECTING)

        logger.info(
            f"Connecting to perception server at {self._endpoint} "
            f"({RetryUtils.describe(self._policy)})"
        )
        self._run_task = asyncio.create_task(self._run(), name="event_channel")
        self._run_task.add_done_callback(self._on_run_done)
        await asyncio.shield(self._first_attempt)

    async def disconnect(self, reason: str = "client disconnect") -> None:
        """Tear the stream down and stop any retry loop. Never raises."""
        self._closing = True
        self._settle_first_attempt()

        session = self._session
        task, self._run_task = self._run_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Event channel task ended with error: {e}")

        self._session = None
        if session is not None:
            await self._close_socket(session.sio)

        was_connected = self._connected_notified
        self._set_state(ConnectionState.DISCONNECTED)
        if was_connected:
            self.journal.info("Disconnected from server")
            self._notify_disconnect(reason)

    async def emit(self, event: str, data: Any = None) -> bool:
        """Send an event to the server. Returns False when not connected."""
        session = self._session
        if self._state != ConnectionState.CONNECTED or session is None:
            logger.warning(f"Cannot emit '{event}': not connected")
            return False
        try:
            await session.sio.emit(event, data)
            logger.debug(f"Emitted '{event}'")
            return True
        except Exception as e:
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.EVENT_CHANNEL,
                severity=ErrorSeverity.LOW,
                operation=f"emit {event}",
            )
            return False

    async def request_status(self) -> bool:
        return await self.emit(OutboundEventType.REQUEST_STATUS.value)

    async def update_settings(
        self, confidence: Optional[float] = None, cooldown: Optional[float] = None
    ) -> bool:
        settings = UpdateSettingsMessage(confidence=confidence, cooldown=cooldown)
        return await self.emit(
            OutboundEventType.UPDATE_SETTINGS.value, settings.model_dump(exclude_none=True)
        )

    async def drain(self) -> None:
        """Wait until all dispatched notifications have been handled."""
        await self._router.drain()

    async def close(self) -> None:
        """Disconnect and stop notification delivery."""
        await self.disconnect()
        await self._router.close()

    # ------------------------------------------------------------------
    # Connection supervisor
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        attempt = 0
        while not self._closing:
            attempt += 1
            self._set_state(ConnectionState.CONNECTING)
            try:
                session = await self._open(self._endpoint)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self.error_handler.handle_error(
                    e if isinstance(e, TransportError) else TransportError(str(e)),
                    context=ErrorContext.EVENT_CHANNEL,
                    severity=ErrorSeverity.MEDIUM,
                    operation="connect",
                    message=f"Connection attempt {attempt} failed: {e}",
                    attempt=attempt,
                )
                self._settle_first_attempt()
                if not RetryUtils.can_retry(self._policy, attempt):
                    self._fail(attempt)
                    return
                self._set_state(ConnectionState.RECONNECTING)
                await asyncio.sleep(RetryUtils.delay_after(self._policy, attempt))
                continue

            attempt = 0
            self._session = session
            self._set_state(ConnectionState.CONNECTED)
            self._connected_notified = True
            self.journal.success("Connected to server")
            self._router.dispatch(InboundEventType.CONNECT, None)
            self._settle_first_attempt()

            try:
                await session.closed.wait()
            finally:
                if self._session is session:
                    self._session = None

            await self._close_socket(session.sio)
            if self._closing:
                return

            reason = session.reason
            self._set_state(ConnectionState.RECONNECTING)
            self._notify_disconnect(reason)
            await self.error_handler.handle_error(
                TransportError(reason),
                context=ErrorContext.EVENT_CHANNEL,
                severity=ErrorSeverity.MEDIUM,
                operation="receive",
                message=f"Disconnected from server ({reason}), reconnecting",
            )
            await asyncio.sleep(self._policy.delay)

    def _fail(self, attempts: int) -> None:
        message = f"Connection failed after {attempts} attempts"
        self._set_state(ConnectionState.FAILED)
        self.journal.error(message)

    async def _open(self, endpoint: str) -> _Session:
        """
        Open a Socket.IO connection (websocket transport only).

        The whole handshake, including the namespace CONNECT reply, is
        bounded by ``open_timeout``.

        Raises:
            TransportError: If the server is unreachable, refuses the
                connection or does not finish the handshake in time
        """
        sio = self._socket_factory()
        session = _Session(sio)
        sio.on("disconnect", session.on_disconnect)
        for name in _PAYLOAD_MODELS:
            sio.on(name, self._event_handler(name))
        for alias, kind in EVENT_ALIASES.items():
            sio.on(alias, self._event_handler(kind.value))

        timeout = self.config.open_timeout
        try:
            await asyncio.wait_for(
                sio.connect(
                    endpoint,
                    transports=["websocket"],
                    socketio_path=SOCKETIO_PATH,
                    wait_timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            await self._close_socket(sio)
            raise TransportError(f"Handshake timed out after {timeout}s") from e
        except socketio_exceptions.ConnectionError as e:
            await self._close_socket(sio)
            raise TransportError(str(e)) from e
        except BaseException:
            await self._close_socket(sio)
            raise
        return session

    def _event_handler(self, name: str) -> Callable:
        async def handler(*args):
            await self._route_event(name, list(args))

        return handler

    async def _route_event(self, name: str, args: list) -> None:
        model = _PAYLOAD_MODELS[name]
        raw = args[0] if args else {}
        try:
            message: BaseModel = model.model_validate(raw)
        except ValidationError as e:
            await self.error_handler.handle_error(
                DecodeError(str(e)),
                context=ErrorContext.AUDIO if name == InboundEventType.AUDIO_DATA.value else ErrorContext.EVENT_CHANNEL,
                severity=ErrorSeverity.MEDIUM,
                operation=f"decode {name}",
                message=f"Malformed {name} event dropped",
            )
            return

        if isinstance(message, AudioDataMessage):
            self._router.dispatch(name, message.to_audio_event())
        else:
            self._router.dispatch(name, message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _close_socket(self, sio: Any) -> None:
        try:
            await sio.disconnect()
        except Exception as e:
            logger.debug(f"Error closing Socket.IO client: {e}")

    def _notify_disconnect(self, reason: str) -> None:
        if not self._connected_notified:
            return
        self._connected_notified = False
        self._router.dispatch(InboundEventType.DISCONNECT, reason)

    def _on_run_done(self, task: asyncio.Task) -> None:
        self._settle_first_attempt()
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Event channel supervisor crashed: {task.exception()}")

    def _settle_first_attempt(self) -> None:
        if self._first_attempt is not None and not self._first_attempt.done():
            self._first_attempt.set_result(None)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(f"Event channel: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error(f"Error in event channel state listener: {e}")
