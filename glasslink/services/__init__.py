"""Services package for the two long-lived connections.

- EventChannel: Socket.IO event stream from the perception server
- PeripheralLink: BLE link to the audio peripheral
"""

from .event_channel import EventChannel
from .peripheral_link import PeripheralEventType, PeripheralLink

__all__ = ["EventChannel", "PeripheralEventType", "PeripheralLink"]
