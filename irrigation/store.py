"""Reading persistence for the telemetry relay.

The relay hands every device reading to a :class:`ReadingStore` without
waiting on it.  Stores report success as a boolean and log their own
failures; nothing here is allowed to raise into the relay.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from irrigation.db import get_db, init_db

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_time(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class Reading(BaseModel):
    """One immutable sensor reading produced by a device."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: float
    humidity: float
    soil_moisture: int = Field(alias="soilMoisture")
    light_level: int = Field(alias="lightLevel")
    rain_drop: Literal[0, 1] = Field(alias="rainDrop")
    pump_status: bool = Field(alias="pumpStatus")
    auto_mode: bool = Field(alias="autoMode")
    timestamp: datetime = Field(default_factory=_utcnow)
    received_at: datetime = Field(default_factory=_utcnow, alias="receivedAt")

    @classmethod
    def from_payload(cls, payload: dict[str, Any], received_at: datetime | None = None) -> Reading:
        """Validate a telemetry envelope.

        *received_at* (or now) is the relay receipt time that history is
        windowed on.  The device's own ``timestamp`` is kept as reported
        and defaults to the receipt time.  Raises
        :class:`pydantic.ValidationError` on bad or missing fields.
        """
        data = dict(payload)
        data.pop("receivedAt", None)
        data["received_at"] = received_at or _utcnow()
        if data.get("timestamp") is None:
            data["timestamp"] = data["received_at"]
        return cls.model_validate(data)

    def stored_timestamp(self) -> str:
        """Device timestamp in the sortable UTC text form used by the database."""
        return _to_db_time(self.timestamp)

    def stored_received_at(self) -> str:
        return _to_db_time(self.received_at)


class ReadingStore(abc.ABC):
    """Abstract sink for device readings."""

    @abc.abstractmethod
    async def save(self, reading: Reading) -> bool:
        """Persist *reading*.  Returns ``True`` on success; never raises."""
        raise NotImplementedError


class SQLiteReadingStore(ReadingStore):
    """Stores readings in the ``sensor_readings`` table."""

    def __init__(self) -> None:
        self._initialised = False

    async def save(self, reading: Reading) -> bool:
        try:
            await asyncio.to_thread(self._insert, reading)
        except Exception:
            logger.exception("Error saving sensor data")
            return False
        logger.debug("Sensor data saved (%s)", reading.stored_received_at())
        return True

    def _insert(self, reading: Reading) -> None:
        if not self._initialised:
            init_db()
            self._initialised = True
        db = get_db()
        db.execute(
            """INSERT INTO sensor_readings
                   (temperature, humidity, soil_moisture, light_level,
                    rain_drop, pump_status, auto_mode, timestamp, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                reading.temperature,
                reading.humidity,
                reading.soil_moisture,
                reading.light_level,
                reading.rain_drop,
                reading.pump_status,
                reading.auto_mode,
                reading.stored_timestamp(),
                reading.stored_received_at(),
            ),
        )
        db.commit()
