"""
Local audio playback backend.

The relay talks to playback through two small interfaces:

- :class:`AudioPlayer` loads a file into a :class:`PlaybackResource`
- :class:`PlaybackResource` starts playback, exposes a ``finished`` future
  that resolves on natural completion, and releases its device on
  ``unload()``

:class:`SoundDevicePlayer` implements them with sounddevice and numpy.
WAV files are read with the standard ``wave`` module. sounddevice is
imported when a file is first played, so the module can be imported on
hosts without PortAudio.

Audio Processing Pipeline:
1. Read WAV frames from the transient file
2. Convert 8/16/32-bit PCM to float32 in [-1, 1] and apply volume
3. Stream through ``sounddevice.OutputStream``
4. Resolve ``finished`` from the stream's finished callback
"""

import asyncio
import logging
import wave
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import numpy as np

from glasslink.config.models import AudioConfig
from glasslink.exceptions import PlaybackError

logger = logging.getLogger(__name__)

_PCM_DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}


class PlaybackResource(ABC):
    """One loaded sound. Must be unloaded exactly once by its owner."""

    def __init__(self) -> None:
        self.finished: asyncio.Future = asyncio.get_running_loop().create_future()
        self.unloaded = False

    @abstractmethod
    async def play(self) -> None:
        """Begin playback and return without waiting for completion."""

    @abstractmethod
    async def unload(self) -> None:
        """Stop playback if running and release the underlying device."""

    def _mark_finished(self) -> None:
        if not self.finished.done():
            self.finished.set_result(None)


class AudioPlayer(ABC):
    @abstractmethod
    async def load(self, path: Union[str, Path]) -> PlaybackResource:
        """Load a sound file. Raises :class:`PlaybackError` if it cannot be decoded."""


def read_wav(path: Union[str, Path]) -> Tuple[np.ndarray, int]:
    """
    Read a PCM WAV file into a float32 array.

    Args:
        path: WAV file to read

    Returns:
        tuple: (frames shaped ``(n, channels)``, sample rate)

    Raises:
        PlaybackError: If the file is not PCM WAV
    """
    try:
        with wave.open(str(path), "rb") as wav_file:
            channels = wav_file.getnchannels()
            sample_width = wav_file.getsampwidth()
            frame_rate = wav_file.getframerate()
            raw = wav_file.readframes(wav_file.getnframes())
    except (wave.Error, EOFError, OSError) as e:
        raise PlaybackError(f"Cannot read audio file {path}: {e}") from e

    dtype = _PCM_DTYPES.get(sample_width)
    if dtype is None:
        raise PlaybackError(f"Unsupported sample width: {sample_width * 8} bits")

    samples = np.frombuffer(raw, dtype=dtype).astype(np.float32)
    if dtype is np.uint8:
        samples = (samples - 128.0) / 128.0
    else:
        samples /= float(np.iinfo(dtype).max) + 1.0

    return samples.reshape(-1, channels), frame_rate


class SoundDeviceResource(PlaybackResource):
    """A decoded WAV buffer played through a sounddevice output stream."""

    def __init__(self, frames: np.ndarray, sample_rate: int, config: AudioConfig):
        super().__init__()
        self.frames = frames
        self.sample_rate = sample_rate
        self.config = config
        self._loop = asyncio.get_running_loop()
        self._position = 0
        self._stream: Optional[Any] = None

    @property
    def duration(self) -> float:
        return len(self.frames) / self.sample_rate if self.sample_rate else 0.0

    async def play(self) -> None:
        if self.unloaded:
            raise PlaybackError("Cannot play an unloaded resource")
        if len(self.frames) == 0:
            self._mark_finished()
            return

        import sounddevice as sd

        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.frames.shape[1],
                dtype="float32",
                latency=self.config.latency,
                callback=self._callback,
                finished_callback=self._on_stream_finished,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise PlaybackError(f"Cannot start audio output: {e}") from e

    def _callback(self, outdata: Any, frames: int, time: Any, status: Any) -> None:
        """Runs on the PortAudio thread."""
        import sounddevice as sd

        if status:
            logger.debug(f"Playback status: {status}")
        chunk = self.frames[self._position:self._position + frames]
        count = len(chunk)
        outdata[:count] = chunk
        if count < frames:
            outdata[count:] = 0
            raise sd.CallbackStop()
        self._position += count

    def _on_stream_finished(self) -> None:
        """Runs on the PortAudio thread once the stream has stopped."""
        self._loop.call_soon_threadsafe(self._mark_finished)

    async def unload(self) -> None:
        if self.unloaded:
            return
        self.unloaded = True
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.abort()
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing output stream: {e}")
        self._mark_finished()


class SoundDevicePlayer(AudioPlayer):
    """Plays WAV files on the default output device."""

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()

    async def load(self, path: Union[str, Path]) -> SoundDeviceResource:
        frames, sample_rate = await asyncio.to_thread(read_wav, path)
        volume = max(0.0, min(1.0, self.config.volume))
        if volume != 1.0:
            frames = frames * volume
        logger.debug(f"Loaded {len(frames)} frames at {sample_rate} Hz from {path}")
        return SoundDeviceResource(frames, sample_rate, self.config)
