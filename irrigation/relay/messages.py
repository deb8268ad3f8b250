"""Wire messages exchanged over the relay socket.

Every inbound frame is decoded exactly once, at the transport boundary,
into one of the variants below:

  Device → Relay:    DeviceAnnounce (``init-esp``), Telemetry (untyped)
  Consumer → Relay:  ConsumerAnnounce (``init-frontend``), Command, Refresh

Anything else decodes to :class:`Unknown`.  The ``raw`` text is kept on
every variant so fan-out can forward the envelope verbatim.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

TYPE_INIT_DEVICE = "init-esp"
TYPE_INIT_CONSUMER = "init-frontend"
TYPE_COMMAND = "command"
TYPE_REFRESH = "refresh"
TYPE_TELEMETRY = "telemetry"
TYPE_DEVICE_STATUS = "device-status"

READING_FIELDS = (
    "temperature",
    "humidity",
    "soilMoisture",
    "lightLevel",
    "rainDrop",
    "pumpStatus",
    "autoMode",
)


class MessageDecodeError(ValueError):
    """Raised when a frame is not a JSON object."""


@dataclass(frozen=True)
class DeviceAnnounce:
    raw: str


@dataclass(frozen=True)
class ConsumerAnnounce:
    raw: str
    key: str


@dataclass(frozen=True)
class Telemetry:
    raw: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Command:
    raw: str
    command: str
    value: str | None = None


@dataclass(frozen=True)
class Refresh:
    raw: str


@dataclass(frozen=True)
class Unknown:
    raw: str
    type: str | None = None


Message = Union[DeviceAnnounce, ConsumerAnnounce, Telemetry, Command, Refresh, Unknown]


def decode_message(raw: str | bytes) -> Message:
    """Decode a raw frame into a tagged message.

    Raises :class:`MessageDecodeError` if *raw* is not a JSON object.
    Well-formed JSON that matches no known shape becomes :class:`Unknown`.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageDecodeError("frame is not valid UTF-8") from exc
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MessageDecodeError(f"frame is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MessageDecodeError(f"expected a JSON object, got {type(data).__name__}")

    msg_type = data.get("type")

    if msg_type == TYPE_INIT_DEVICE:
        return DeviceAnnounce(raw)

    if msg_type == TYPE_INIT_CONSUMER:
        key = data.get("frontendId")
        if not isinstance(key, str) or not key:
            return Unknown(raw, msg_type)
        return ConsumerAnnounce(raw, key)

    if msg_type == TYPE_COMMAND:
        command = data.get("command")
        if not isinstance(command, str) or not command:
            return Unknown(raw, msg_type)
        value = data.get("value")
        return Command(raw, command, value if isinstance(value, str) else None)

    if msg_type == TYPE_REFRESH:
        return Refresh(raw)

    if msg_type in (None, TYPE_TELEMETRY) and any(f in data for f in READING_FIELDS):
        return Telemetry(raw, data)

    return Unknown(raw, msg_type if isinstance(msg_type, str) else None)


def device_status(online: bool) -> str:
    """Encode the relay's device-availability notice for consumers."""
    return json.dumps({"type": TYPE_DEVICE_STATUS, "espConnected": online})
