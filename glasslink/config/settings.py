"""
Centralized configuration settings for glasslink.

This module provides the main configuration interface for the entire application,
including singleton access to configuration.
"""

from typing import List, Optional

from .env_loader import get_environment_info, load_application_config
from .models import ApplicationConfig


# Global configuration instance
_config: Optional[ApplicationConfig] = None


def get_config() -> ApplicationConfig:
    """Get the global application configuration instance."""
    global _config
    if _config is None:
        _config = load_application_config()
    return _config


def reload_config() -> ApplicationConfig:
    """Reload configuration from environment variables."""
    global _config
    _config = load_application_config()
    return _config


def set_config(config: Optional[ApplicationConfig]) -> None:
    """Set a custom configuration instance (useful for testing)."""
    global _config
    _config = config


def validate_configuration() -> List[str]:
    """Validate the current configuration and return any errors."""
    return get_config().validate()


def print_configuration_summary() -> None:
    """Print a summary of the current configuration."""
    config = get_config()
    env_info = get_environment_info()

    print("=== glasslink Configuration Summary ===")
    print(f"Server: {config.event_channel.server_url}")
    print(f"Reconnect: {config.event_channel.reconnect_policy()}")
    print(f"Peripheral: {config.peripheral.device_name} ({config.peripheral.characteristic_uuid})")
    print(f"Playback enabled: {config.audio.enable_playback}")
    print(f"Transient audio file: {config.audio.transient_file}")
    print(f"Log level: {config.logging.level.value}")
    print(f".env file present: {env_info['dotenv_loaded']}")

    errors = validate_configuration()
    if errors:
        print("\nConfiguration Issues:")
        for error in errors:
            print(f"  - {error}")
    else:
        print("\nConfiguration is valid")


# Convenience aliases for common configurations
def event_channel_config():
    """Get perception server connection configuration."""
    return get_config().event_channel


def peripheral_config():
    """Get peripheral configuration."""
    return get_config().peripheral


def audio_config():
    """Get audio configuration."""
    return get_config().audio


def logging_config():
    """Get logging configuration."""
    return get_config().logging
