"""
Unit tests for server wire models and domain state types.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from glasslink.models.events import (
    AudioDataMessage,
    ConnectionStatusMessage,
    DetectionMessage,
    ServerStatusMessage,
    UpdateSettingsMessage,
)
from glasslink.models.state import (
    AudioEvent,
    ConnectionState,
    JournalEntry,
    JournalKind,
    PeripheralDevice,
    PeripheralState,
    StateSnapshot,
)


class TestAudioDataMessage:
    def test_valid_payload(self):
        message = AudioDataMessage.model_validate(
            {
                "audio": "UklGRg==",
                "description": "a chair ahead",
                "objects": ["chair"],
                "timestamp": "t1",
                "server_extra": 42,
            }
        )
        assert message.description == "a chair ahead"
        assert message.objects == ["chair"]
        assert not hasattr(message, "server_extra")

    def test_to_audio_event(self):
        message = AudioDataMessage(audio="UklGRg==", description="door", objects=["door"], timestamp="t2")
        event = message.to_audio_event()

        assert isinstance(event, AudioEvent)
        assert event.payload == "UklGRg=="
        assert event.detected_objects == ("door",)
        assert event.timestamp == "t2"

    def test_missing_audio_is_rejected(self):
        with pytest.raises(ValidationError):
            AudioDataMessage.model_validate({"description": "a chair"})

    def test_empty_audio_is_rejected(self):
        with pytest.raises(ValidationError):
            AudioDataMessage.model_validate({"audio": ""})

    def test_object_dicts_are_normalised(self):
        message = AudioDataMessage.model_validate(
            {"audio": "AA==", "objects": [{"name": "person", "confidence": 0.91}, "cup"]}
        )
        assert message.objects == ["person", "cup"]

    def test_numeric_timestamp_is_stringified(self):
        message = AudioDataMessage.model_validate({"audio": "AA==", "timestamp": 1714550400.5})
        assert message.timestamp == "1714550400.5"


class TestOtherInboundMessages:
    def test_detection_accepts_text_alias(self):
        message = DetectionMessage.model_validate({"text": "a person on the left", "objects": []})
        assert message.description == "a person on the left"

    def test_connection_status(self):
        message = ConnectionStatusMessage.model_validate(
            {"status": "connected", "message": "Connected to Smart Glass server"}
        )
        assert message.message == "Connected to Smart Glass server"

    def test_server_status_defaults(self):
        status = ServerStatusMessage.model_validate({"model_loaded": True})
        assert status.model_loaded is True
        assert status.tts_available is False
        assert status.connected_clients == 0


class TestUpdateSettingsMessage:
    def test_optional_fields_are_excluded(self):
        assert UpdateSettingsMessage(confidence=0.6).model_dump(exclude_none=True) == {
            "confidence": 0.6
        }

    @pytest.mark.parametrize("kwargs", [{"confidence": 1.5}, {"cooldown": -1}])
    def test_out_of_range(self, kwargs):
        with pytest.raises(ValidationError):
            UpdateSettingsMessage(**kwargs)


class TestStateTypes:
    def test_connection_failed_value(self):
        assert ConnectionState.FAILED.value == "connection_failed"

    def test_device_display_name(self):
        assert PeripheralDevice(id="AA:BB").display_name == "AA:BB"
        assert PeripheralDevice(id="AA:BB", name="SmartGlass_BT").display_name == "SmartGlass_BT"

    def test_snapshot_is_frozen(self):
        snapshot = StateSnapshot()
        with pytest.raises(Exception):
            snapshot.last_description = "changed"

    def test_snapshot_flags(self):
        snapshot = StateSnapshot(
            event_channel_state=ConnectionState.CONNECTED,
            peripheral_state=PeripheralState.CONNECTED,
            active_device=PeripheralDevice(id="AA:BB"),
        )
        assert snapshot.server_connected
        assert snapshot.peripheral_connected

    def test_journal_entry_format(self):
        entry = JournalEntry(datetime(2024, 1, 1, 13, 2, 3), "Scanning", JournalKind.INFO)
        assert entry.format() == "[13:02:03] Scanning"
