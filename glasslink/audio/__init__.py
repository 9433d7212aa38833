"""Audio relay and local playback."""

from .foreground import ForegroundMonitor
from .playback import AudioPlayer, PlaybackResource, SoundDevicePlayer
from .relay import AudioRelay

__all__ = [
    "AudioPlayer",
    "AudioRelay",
    "ForegroundMonitor",
    "PlaybackResource",
    "SoundDevicePlayer",
]
