"""
Configuration module for the glasslink companion client.

Usage:

```python
from glasslink.config import load_env_file, get_config
load_env_file()
config = get_config()
print(config.event_channel.server_url)

from glasslink.config.logging_config import configure_logging
logger = configure_logging()
```
"""

from .settings import (
    get_config,
    reload_config,
    set_config,
    event_channel_config,
    peripheral_config,
    audio_config,
    logging_config,
    validate_configuration,
    print_configuration_summary,
)

from .models import (
    ApplicationConfig,
    EventChannelConfig,
    PeripheralConfig,
    AudioConfig,
    LoggingConfig,
    LogLevel,
)

from .env_loader import load_env_file
from .constants import *
from .logging_config import configure_logging

__all__ = [
    "get_config",
    "reload_config",
    "set_config",
    "event_channel_config",
    "peripheral_config",
    "audio_config",
    "logging_config",
    "validate_configuration",
    "print_configuration_summary",
    "load_env_file",
    "ApplicationConfig",
    "EventChannelConfig",
    "PeripheralConfig",
    "AudioConfig",
    "LoggingConfig",
    "LogLevel",
    "configure_logging",
]
