"""
Configuration models for the glasslink companion client.

This module defines dataclasses for the different configuration domains
(event channel, peripheral link, audio relay, logging), providing type
safety and validation for all application settings.
"""

import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from glasslink.config.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHARACTERISTIC_UUID,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DEVICE_NAME,
    DEFAULT_JOURNAL_CAPACITY,
    DEFAULT_RECONNECT_DELAY_MS,
    DEFAULT_RECONNECT_MAX_ATTEMPTS,
    DEFAULT_RECONNECT_MAX_DELAY_MS,
    DEFAULT_SCAN_DURATION,
    DEFAULT_SERVER_URL,
    DEFAULT_SERVICE_UUID,
    TRANSIENT_AUDIO_FILENAME,
)
from glasslink.utils.retry_utils import Bounded, ReconnectPolicy, Unbounded


class LogLevel(Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class EventChannelConfig:
    """Perception server connection settings.

    ``reconnect_max_attempts`` of ``None`` means retry forever.
    """

    server_url: str = DEFAULT_SERVER_URL
    reconnect_base_delay_ms: int = DEFAULT_RECONNECT_DELAY_MS
    reconnect_max_attempts: Optional[int] = DEFAULT_RECONNECT_MAX_ATTEMPTS
    reconnect_max_delay_ms: int = DEFAULT_RECONNECT_MAX_DELAY_MS
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    open_timeout: float = 10.0

    def reconnect_policy(self, base_delay_ms: Optional[int] = None) -> ReconnectPolicy:
        """Build the reconnect policy, optionally overriding the base delay."""
        delay = (base_delay_ms if base_delay_ms is not None else self.reconnect_base_delay_ms) / 1000.0
        max_delay = max(delay, self.reconnect_max_delay_ms / 1000.0)
        if self.reconnect_max_attempts is None:
            return Unbounded(delay=delay, max_delay=max_delay, backoff_factor=self.backoff_factor)
        return Bounded(
            max_attempts=self.reconnect_max_attempts,
            delay=delay,
            max_delay=max_delay,
            backoff_factor=self.backoff_factor,
        )


@dataclass
class PeripheralConfig:
    """Wireless audio peripheral settings."""

    device_name: str = DEFAULT_DEVICE_NAME
    service_uuid: str = DEFAULT_SERVICE_UUID
    characteristic_uuid: str = DEFAULT_CHARACTERISTIC_UUID
    chunk_size: int = DEFAULT_CHUNK_SIZE
    scan_duration: float = DEFAULT_SCAN_DURATION
    write_with_response: bool = False


@dataclass
class AudioConfig:
    """Audio relay and local playback settings."""

    transient_file: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / TRANSIENT_AUDIO_FILENAME
    )
    enable_playback: bool = True
    volume: float = 1.0
    latency: str = "low"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    log_dir: Path = Path("logs")
    log_filename: str = "glasslink.log"


@dataclass
class ApplicationConfig:
    """Complete application configuration."""

    event_channel: EventChannelConfig = field(default_factory=EventChannelConfig)
    peripheral: PeripheralConfig = field(default_factory=PeripheralConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    journal_capacity: int = DEFAULT_JOURNAL_CAPACITY

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.event_channel.server_url.startswith(("http://", "https://", "ws://", "wss://")):
            errors.append(f"Unsupported server URL scheme: {self.event_channel.server_url}")

        if self.event_channel.reconnect_base_delay_ms < 0:
            errors.append("Reconnect delay must not be negative")

        if (
            self.event_channel.reconnect_max_attempts is not None
            and self.event_channel.reconnect_max_attempts < 1
        ):
            errors.append("Reconnect attempts must be at least 1 (or unbounded)")

        if self.event_channel.backoff_factor < 1.0:
            errors.append("Backoff factor must be >= 1.0")

        if self.peripheral.chunk_size <= 0:
            errors.append("Peripheral chunk size must be positive")

        if self.peripheral.scan_duration <= 0:
            errors.append("Scan duration must be positive")

        if not 0.0 <= self.audio.volume <= 1.0:
            errors.append("Audio volume must be between 0.0 and 1.0")

        if self.journal_capacity <= 0:
            errors.append("Journal capacity must be positive")

        return errors
