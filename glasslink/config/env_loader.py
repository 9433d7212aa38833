"""
Environment variable loader for glasslink configuration.

This module handles loading configuration from environment variables,
with type conversion, validation, and fallback to defaults.

Environment variables must be explicitly loaded using load_env_file() before
accessing any configuration functions.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, cast

from dotenv import load_dotenv

from .constants import (
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
)
from .models import (
    ApplicationConfig,
    AudioConfig,
    EventChannelConfig,
    LoggingConfig,
    LogLevel,
    PeripheralConfig,
)


# Track if environment variables have been loaded
_env_loaded = False

UNBOUNDED_VALUES = ("0", "none", "unbounded", "infinite")


def load_env_file(env_file: Optional[str] = None) -> None:
    """Load environment variables from a .env file.

    This function must be called before accessing any configuration functions.

    Args:
        env_file: Path to the .env file. If None, uses default behavior.
    """
    global _env_loaded
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()
    _env_loaded = True


def _check_env_loaded() -> None:
    """Check if environment variables have been loaded, raise error if not."""
    if not _env_loaded:
        raise RuntimeError(
            "Environment variables not loaded. Call load_env_file() before accessing configuration."
        )


T = TypeVar("T")


def safe_convert(value: Optional[str], target_type: Type[T], default: T) -> T:
    """Safely convert environment variable string to target type."""
    if value is None:
        return default

    try:
        if target_type == bool:
            return cast(T, value.strip().lower() in ("true", "1", "yes", "on"))
        elif target_type == int:
            return cast(T, int(value))
        elif target_type == float:
            return cast(T, float(value))
        elif target_type == str:
            return cast(T, value)
        elif target_type == Path:
            return cast(T, Path(value))
        elif callable(target_type):
            return cast(T, target_type(value))  # type: ignore
        else:
            return default
    except (ValueError, TypeError):
        return default


def parse_max_attempts(value: Optional[str]) -> Optional[int]:
    """Parse the reconnect attempt cap; zero or a keyword means unbounded."""
    if value is None:
        return DEFAULT_RECONNECT_MAX_ATTEMPTS
    if value.strip().lower() in UNBOUNDED_VALUES:
        return None
    attempts = safe_convert(value, int, DEFAULT_RECONNECT_MAX_ATTEMPTS)
    return attempts if attempts > 0 else None


def load_event_channel_config() -> EventChannelConfig:
    """Load perception server connection settings from environment variables."""
    _check_env_loaded()

    return EventChannelConfig(
        server_url=os.getenv("GLASSLINK_SERVER_URL", DEFAULT_SERVER_URL),
        reconnect_base_delay_ms=safe_convert(
            os.getenv("GLASSLINK_RECONNECT_DELAY_MS"), int, DEFAULT_RECONNECT_DELAY_MS
        ),
        reconnect_max_attempts=parse_max_attempts(os.getenv("GLASSLINK_RECONNECT_MAX_ATTEMPTS")),
        reconnect_max_delay_ms=safe_convert(
            os.getenv("GLASSLINK_RECONNECT_MAX_DELAY_MS"), int, DEFAULT_RECONNECT_MAX_DELAY_MS
        ),
        backoff_factor=safe_convert(
            os.getenv("GLASSLINK_RECONNECT_BACKOFF"), float, DEFAULT_BACKOFF_FACTOR
        ),
        open_timeout=safe_convert(os.getenv("GLASSLINK_OPEN_TIMEOUT"), float, 10.0),
    )


def load_peripheral_config() -> PeripheralConfig:
    """Load peripheral settings from environment variables."""
    _check_env_loaded()

    return PeripheralConfig(
        device_name=os.getenv("GLASSLINK_DEVICE_NAME", DEFAULT_DEVICE_NAME),
        service_uuid=os.getenv("GLASSLINK_SERVICE_UUID", DEFAULT_SERVICE_UUID),
        characteristic_uuid=os.getenv(
            "GLASSLINK_CHARACTERISTIC_UUID", DEFAULT_CHARACTERISTIC_UUID
        ),
        chunk_size=safe_convert(os.getenv("GLASSLINK_CHUNK_SIZE"), int, DEFAULT_CHUNK_SIZE),
        scan_duration=safe_convert(
            os.getenv("GLASSLINK_SCAN_SECONDS"), float, DEFAULT_SCAN_DURATION
        ),
        write_with_response=safe_convert(
            os.getenv("GLASSLINK_WRITE_WITH_RESPONSE"), bool, False
        ),
    )


def load_audio_config() -> AudioConfig:
    """Load audio relay settings from environment variables."""
    _check_env_loaded()

    config = AudioConfig(
        enable_playback=safe_convert(os.getenv("GLASSLINK_PLAYBACK"), bool, True),
        volume=safe_convert(os.getenv("GLASSLINK_VOLUME"), float, 1.0),
    )
    transient_file = os.getenv("GLASSLINK_AUDIO_FILE")
    if transient_file:
        config.transient_file = Path(transient_file)
    return config


def load_logging_config() -> LoggingConfig:
    """Load logging configuration from environment variables."""
    _check_env_loaded()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = LogLevel.INFO
    try:
        log_level = LogLevel(log_level_str)
    except ValueError:
        pass

    return LoggingConfig(
        level=log_level,
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
        log_filename=os.getenv("LOG_FILENAME", "glasslink.log"),
    )


def load_application_config() -> ApplicationConfig:
    """Load complete application configuration from environment variables."""
    _check_env_loaded()

    config = ApplicationConfig(
        event_channel=load_event_channel_config(),
        peripheral=load_peripheral_config(),
        audio=load_audio_config(),
        logging=load_logging_config(),
        journal_capacity=safe_convert(
            os.getenv("GLASSLINK_JOURNAL_CAPACITY"), int, DEFAULT_JOURNAL_CAPACITY
        ),
    )

    # Validate configuration and raise exceptions for critical errors
    validation_errors = config.validate()
    if validation_errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in validation_errors)
        raise ValueError(error_msg)

    return config


def get_environment_info() -> Dict[str, Any]:
    """Get information about current environment variables for debugging."""
    _check_env_loaded()

    return {
        "environment_variables_loaded": len(
            [k for k in os.environ.keys() if k.startswith(("GLASSLINK_", "LOG_"))]
        ),
        "dotenv_loaded": Path(".env").exists(),
        "server_url": os.getenv("GLASSLINK_SERVER_URL", DEFAULT_SERVER_URL),
    }
