"""
Pydantic models for the perception server's Socket.IO event schemas.

The server pushes scene descriptions, detected objects and synthesized
speech to the companion client, and accepts a small set of control
events back. Payloads are JSON; audio is a base64 encoded WAV blob.

Inbound events:
- ``connection_status``: human readable status line
- ``audio_data``: description + objects + base64 audio
- ``detection``: description + objects, no audio
- ``server_status``: model/TTS availability and client count

Older server builds emit ``audio_ready`` (with ``text`` instead of
``description``) for what is now ``audio_data``; see :data:`EVENT_ALIASES`.

Outbound events:
- ``request_status``: no payload
- ``update_settings``: optional detection confidence and cooldown

Fields the client does not know about are ignored.
"""

import enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from glasslink.models.state import AudioEvent


class InboundEventType(str, enum.Enum):
    """Event names the server emits (plus the transport's own connect/disconnect)."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECTION_STATUS = "connection_status"
    AUDIO_DATA = "audio_data"
    DETECTION = "detection"
    SERVER_STATUS = "server_status"


# Legacy event names, mapped onto the kind they are delivered as
EVENT_ALIASES = {
    "audio_ready": InboundEventType.AUDIO_DATA,
}


class OutboundEventType(str, enum.Enum):
    """Event names the client emits."""

    REQUEST_STATUS = "request_status"
    UPDATE_SETTINGS = "update_settings"


def _object_names(value: Any) -> List[str]:
    """Normalise detected objects to an ordered list of names.

    Older server builds send ``{"name": ..., "confidence": ...}`` objects,
    newer ones send bare strings.
    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValueError("objects must be a sequence")
    names = []
    for item in value:
        if isinstance(item, str):
            names.append(item)
        elif isinstance(item, dict) and "name" in item:
            names.append(str(item["name"]))
        else:
            raise ValueError(f"Unrecognised detected object: {item!r}")
    return names


class InboundMessage(BaseModel):
    """Base model for all server pushed payloads."""

    model_config = ConfigDict(extra="ignore")


class ConnectionStatusMessage(InboundMessage):
    """Model for the ``connection_status`` event.

    Example:
    {"status": "connected", "message": "Connected to Smart Glass server"}
    """

    status: Optional[str] = None
    message: str = ""


class DescribedMessage(InboundMessage):
    """Shared shape of ``audio_data`` and ``detection``.

    The description arrives as ``description`` or, from older servers, as
    ``text``.
    """

    description: str = ""
    objects: List[str] = Field(default_factory=list)
    timestamp: str = ""

    @model_validator(mode="before")
    @classmethod
    def accept_text_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and "description" not in data and "text" in data:
            data = dict(data)
            data["description"] = data["text"]
        return data

    @field_validator("objects", mode="before")
    @classmethod
    def normalise_objects(cls, v):
        return _object_names(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def stringify_timestamp(cls, v):
        return "" if v is None else str(v)


class AudioDataMessage(DescribedMessage):
    """Model for the ``audio_data`` event.

    Example:
    {
      "audio": "UklGRiQAAABXQVZF...",
      "description": "a chair ahead",
      "objects": ["chair"],
      "timestamp": "2024-05-01T10:00:00"
    }
    """

    audio: str

    @field_validator("audio")
    @classmethod
    def audio_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("audio payload is empty")
        return v

    def to_audio_event(self) -> AudioEvent:
        return AudioEvent(
            payload=self.audio,
            description=self.description,
            detected_objects=tuple(self.objects),
            timestamp=self.timestamp,
        )


class DetectionMessage(DescribedMessage):
    """Model for the ``detection`` event (description without audio)."""


class ServerStatusMessage(InboundMessage):
    """Model for the ``server_status`` event."""

    model_loaded: bool = False
    tts_available: bool = False
    confidence: Optional[float] = None
    connected_clients: int = 0


class UpdateSettingsMessage(BaseModel):
    """Payload of the outbound ``update_settings`` event."""

    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    cooldown: Optional[float] = Field(None, ge=0.0)
