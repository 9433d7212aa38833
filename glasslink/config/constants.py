"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase.
"""

# Logger name used throughout the application
LOGGER_NAME = "glasslink"

# Perception server
DEFAULT_SERVER_URL = "http://192.168.1.131:5000"
SOCKETIO_PATH = "socket.io"

# Reconnect policy defaults
DEFAULT_RECONNECT_DELAY_MS = 1000  # long-lived session route
FRESH_START_RECONNECT_DELAY_MS = 5000  # route used on a fresh app start
DEFAULT_RECONNECT_MAX_ATTEMPTS = 5
DEFAULT_RECONNECT_MAX_DELAY_MS = 5000
DEFAULT_BACKOFF_FACTOR = 1.0  # 1.0 keeps the delay fixed

# Peripheral (ESP32 audio sink)
DEFAULT_DEVICE_NAME = "SmartGlass_BT"
DEFAULT_SERVICE_UUID = "4fafc201-1fb5-459e-8fcc-c5c9c331914b"
DEFAULT_CHARACTERISTIC_UUID = "beb5483e-36e1-4688-b7f5-ea07361b26a8"
DEFAULT_CHUNK_SIZE = 512  # bytes per characteristic write
DEFAULT_SCAN_DURATION = 10.0  # seconds
DEFAULT_SIGNAL_STRENGTH = -100  # dBm reported when a sighting carries no RSSI

# Audio
TRANSIENT_AUDIO_FILENAME = "glasslink_temp_audio.wav"

# Activity journal
DEFAULT_JOURNAL_CAPACITY = 50
