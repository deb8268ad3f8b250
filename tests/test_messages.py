"""Tests for wire message decoding."""

from __future__ import annotations

import json

import pytest

from irrigation.relay.messages import (
    Command,
    ConsumerAnnounce,
    DeviceAnnounce,
    MessageDecodeError,
    Refresh,
    Telemetry,
    Unknown,
    decode_message,
    device_status,
)


class TestDecode:
    def test_device_announce(self):
        msg = decode_message('{"type": "init-esp"}')
        assert isinstance(msg, DeviceAnnounce)

    def test_consumer_announce(self):
        msg = decode_message(json.dumps({"type": "init-frontend", "frontendId": "frontend-1234"}))
        assert isinstance(msg, ConsumerAnnounce)
        assert msg.key == "frontend-1234"

    @pytest.mark.parametrize("key", [None, "", 42])
    def test_consumer_announce_bad_key(self, key):
        msg = decode_message(json.dumps({"type": "init-frontend", "frontendId": key}))
        assert isinstance(msg, Unknown)
        assert msg.type == "init-frontend"

    def test_command(self):
        raw = json.dumps({"type": "command", "command": "autoMode", "value": "off"})
        msg = decode_message(raw)
        assert isinstance(msg, Command)
        assert msg.command == "autoMode"
        assert msg.value == "off"
        assert msg.raw == raw

    def test_command_without_value(self):
        msg = decode_message(json.dumps({"type": "command", "command": "pump"}))
        assert isinstance(msg, Command)
        assert msg.value is None

    def test_command_missing_command(self):
        assert isinstance(decode_message('{"type": "command"}'), Unknown)

    def test_refresh(self):
        assert isinstance(decode_message('{"type": "refresh"}'), Refresh)

    def test_untyped_telemetry(self):
        raw = json.dumps({"temperature": 21.0, "soilMoisture": 700})
        msg = decode_message(raw)
        assert isinstance(msg, Telemetry)
        assert msg.payload["soilMoisture"] == 700
        assert msg.raw == raw

    def test_typed_telemetry(self):
        msg = decode_message(json.dumps({"type": "telemetry", "humidity": 40}))
        assert isinstance(msg, Telemetry)

    def test_bytes_frame(self):
        msg = decode_message(b'{"type": "refresh"}')
        assert isinstance(msg, Refresh)

    def test_object_without_reading_fields(self):
        msg = decode_message('{"hello": "world"}')
        assert isinstance(msg, Unknown)
        assert msg.type is None

    def test_unknown_type(self):
        msg = decode_message('{"type": "subscribe", "temperature": 20}')
        assert isinstance(msg, Unknown)
        assert msg.type == "subscribe"

    @pytest.mark.parametrize("raw", ["nope", "", "[]", "null", "3.5", b"\xff"])
    def test_malformed_raises(self, raw):
        with pytest.raises(MessageDecodeError):
            decode_message(raw)

    def test_device_status(self):
        assert json.loads(device_status(True)) == {"type": "device-status", "espConnected": True}
