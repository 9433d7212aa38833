"""
glasslink: companion client for camera-equipped smart glasses.

Receives scene descriptions and spoken audio from a perception server,
plays the audio locally and forwards it to the glasses over BLE.
"""

__version__ = "0.1.0"
