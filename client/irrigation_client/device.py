"""Simulated field controller for development without hardware.

Publishes plausible readings through a device session and reacts to the
dashboard commands a real controller accepts:

  pump on|off      switch the pump (ignored while auto mode is on)
  autoMode on|off  let soil moisture drive the pump
  refresh          publish a reading immediately
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any

from .calibration import IRRIGATION_SOIL_THRESHOLD, soil_moisture_percent
from .session import ReconnectingSession

logger = logging.getLogger(__name__)


def _drift(rng: random.Random, value: float, step: float, low: float, high: float) -> float:
    return max(low, min(high, value + rng.uniform(-step, step)))


class SimulatedDevice:
    """Generates repeatable sensor values and tracks pump/auto-mode state."""

    def __init__(self, session: ReconnectingSession, interval: float = 5.0, seed: int | None = None):
        self.session = session
        self.interval = interval
        self.random = random.Random(seed if seed is not None else 1)
        self.temperature = 28.5
        self.humidity = 65.0
        self.soil_moisture = 500
        self.light_level = 300
        self.rain_drop = 1
        self.pump_status = False
        self.auto_mode = True
        self._running = False
        session.on_message = self.handle_message

    def step(self) -> None:
        """Advance the simulated environment by one tick."""
        rng = self.random
        self.temperature = round(_drift(rng, self.temperature, 0.4, 10.0, 45.0), 1)
        self.humidity = round(_drift(rng, self.humidity, 1.5, 10.0, 95.0), 1)
        # Pump wets the soil (raw value falls); otherwise it slowly dries.
        soil_step = -25 if self.pump_status else 8
        self.soil_moisture = int(max(0, min(1024, self.soil_moisture + soil_step + rng.randint(-5, 5))))
        self.light_level = int(_drift(rng, self.light_level, 20, 0, 1024))
        if rng.random() < 0.02:
            self.rain_drop = 1 - self.rain_drop
        if self.auto_mode:
            self._apply_auto_mode()

    def _apply_auto_mode(self) -> None:
        self.pump_status = soil_moisture_percent(self.soil_moisture) < IRRIGATION_SOIL_THRESHOLD

    def reading(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "soilMoisture": self.soil_moisture,
            "lightLevel": self.light_level,
            "rainDrop": self.rain_drop,
            "pumpStatus": self.pump_status,
            "autoMode": self.auto_mode,
            "espConnected": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def apply_command(self, payload: dict[str, Any]) -> bool:
        """Apply a command payload.  Returns ``True`` if a reading should follow."""
        msg_type = payload.get("type")
        if msg_type == "refresh":
            return True
        if msg_type != "command":
            return False

        command = payload.get("command")
        on = payload.get("value") == "on"
        if command == "pump":
            if self.auto_mode:
                logger.info("Pump command ignored while auto mode is on")
                return True
            self.pump_status = on
        elif command == "autoMode":
            self.auto_mode = on
            if on:
                self._apply_auto_mode()
        else:
            logger.warning("Unknown command: %s", command)
            return False
        logger.info("Applied %s=%s", command, payload.get("value"))
        return True

    async def handle_message(self, payload: dict[str, Any]) -> None:
        if self.apply_command(payload):
            await self.publish()

    async def publish(self) -> bool:
        return await self.session.send(self.reading())

    async def run(self) -> None:
        """Start the session and publish a reading every *interval* seconds."""
        self._running = True
        await self.session.start()
        try:
            while self._running:
                await asyncio.sleep(self.interval)
                self.step()
                if not await self.publish():
                    logger.debug("Reading skipped: relay not connected")
        finally:
            await self.session.close()

    def stop(self) -> None:
        self._running = False
