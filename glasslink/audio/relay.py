"""
Audio relay: turns one inbound :class:`AudioEvent` into sound.

Processing steps for each event, each with its own recovery:

1. Decode the base64 payload. A bad payload is reported and the event is
   dropped; the server sends a fresh one on its next detection cycle.
2. Drop the event if the host is in the background.
3. Write the bytes to the process-wide transient file.
4. Unload the previous playback resource, then load and start the new one.
5. Unload the resource automatically when it finishes playing.
6. Forward the same bytes to the peripheral if it is connected at that
   moment.

Playback is single-slot: a new event cancels the sound that is playing and
replaces it. Steps 3 and 4 run under one lock, so the transient file is
never written while another event is loading it.

Nothing in here raises to the caller. Every failure becomes one journal
entry through the error handler, so a bad audio event never interrupts
the event stream.
"""

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Any, Optional, Set

from glasslink.audio.foreground import ForegroundMonitor
from glasslink.audio.playback import AudioPlayer, PlaybackResource, SoundDevicePlayer
from glasslink.config.models import AudioConfig
from glasslink.exceptions import DecodeError, NotConnected
from glasslink.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from glasslink.journal import ActivityJournal
from glasslink.models.state import AudioEvent

logger = logging.getLogger(__name__)


def decode_audio_payload(payload: str) -> bytes:
    """Decode a base64 audio payload. Raises :class:`DecodeError`."""
    if not payload:
        raise DecodeError("Empty audio payload")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 audio payload: {e}") from e


class AudioRelay:
    """Decodes, plays and forwards server audio events.

    Args:
        config: Audio settings (transient file path, playback switch)
        journal: Activity journal for user-visible outcomes
        error_handler: Shared error funnel
        peripheral: Link used for forwarding; anything with
            ``is_connected()`` and ``async write(bytes)``
        player: Playback backend, ``SoundDevicePlayer`` by default
        foreground: Host foreground flag
    """

    def __init__(
        self,
        config: AudioConfig,
        journal: ActivityJournal,
        error_handler: ErrorHandler,
        peripheral: Optional[Any] = None,
        player: Optional[AudioPlayer] = None,
        foreground: Optional[ForegroundMonitor] = None,
    ):
        self.config = config
        self.journal = journal
        self.error_handler = error_handler
        self.peripheral = peripheral
        self.player = player or SoundDevicePlayer(config)
        self.foreground = foreground or ForegroundMonitor()

        self._playback_lock = asyncio.Lock()
        self._forward_lock = asyncio.Lock()
        self._current: Optional[PlaybackResource] = None
        self._watchers: Set[asyncio.Task] = set()

        self.events_handled = 0
        self.events_dropped = 0

    @property
    def transient_file(self) -> Path:
        return Path(self.config.transient_file)

    @property
    def active_resource(self) -> Optional[PlaybackResource]:
        """The one playback resource currently loaded, if any."""
        return self._current

    async def handle(self, event: AudioEvent) -> None:
        """Process one audio event. Never raises."""
        try:
            audio = decode_audio_payload(event.payload)
        except DecodeError as e:
            self.events_dropped += 1
            await self.error_handler.handle_error(
                e,
                context=ErrorContext.AUDIO,
                severity=ErrorSeverity.MEDIUM,
                operation="decode",
                message=f"Audio error: {e}",
            )
            return

        if not self.foreground.is_foreground:
            self.events_dropped += 1
            self.journal.warning("App in background, skipping audio playback")
            return

        self.events_handled += 1
        if self.config.enable_playback:
            await self._play_locally(audio)
        await self._forward(audio)

    async def _play_locally(self, audio: bytes) -> None:
        async with self._playback_lock:
            await self._release_current()
            resource: Optional[PlaybackResource] = None
            try:
                await asyncio.to_thread(self.transient_file.write_bytes, audio)
                resource = await self.player.load(self.transient_file)
                self._current = resource
                await resource.play()
            except asyncio.CancelledError:
                await self._release_current()
                raise
            except Exception as e:
                await self._release_current()
                await self.error_handler.handle_error(
                    e,
                    context=ErrorContext.AUDIO,
                    severity=ErrorSeverity.MEDIUM,
                    operation="playback",
                    message=f"Local playback error: {e}",
                )
                return

            watcher = asyncio.create_task(self._release_when_finished(resource))
            self._watchers.add(watcher)
            watcher.add_done_callback(self._watchers.discard)
            self.journal.info("Playing audio locally")

    async def _release_when_finished(self, resource: PlaybackResource) -> None:
        await resource.finished
        async with self._playback_lock:
            if self._current is resource:
                await self._release_current()
                logger.debug("Playback finished, resource released")

    async def _release_current(self) -> None:
        resource, self._current = self._current, None
        if resource is None:
            return
        try:
            await resource.unload()
        except Exception as e:
            logger.warning(f"Error unloading playback resource: {e}")

    async def _forward(self, audio: bytes) -> None:
        peripheral = self.peripheral
        if peripheral is None or not peripheral.is_connected():
            return
        async with self._forward_lock:
            try:
                sent = await peripheral.write(audio)
            except NotConnected:
                logger.debug("Peripheral disconnected before audio could be forwarded")
                return
            except Exception as e:
                await self.error_handler.handle_error(
                    e,
                    context=ErrorContext.PERIPHERAL,
                    severity=ErrorSeverity.MEDIUM,
                    operation="forward",
                    message=f"Send audio error: {e}",
                )
                return
        if sent:
            self.journal.info(f"Sent {len(audio)} bytes of audio to device")

    async def stop(self) -> None:
        """Stop any playback in progress."""
        async with self._playback_lock:
            await self._release_current()

    async def close(self) -> None:
        """Stop playback and cancel completion watchers."""
        await self.stop()
        watchers = list(self._watchers)
        for watcher in watchers:
            watcher.cancel()
        for watcher in watchers:
            try:
                await watcher
            except asyncio.CancelledError:
                pass
