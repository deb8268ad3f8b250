"""Dashboard view model: turns session state into display values.

The socket indicator reflects the local connection only.  The device
indicator follows the last ``espConnected`` flag seen in any message and
changes only when fresh data arrives; there is no staleness timeout, so a
device that vanishes without closing its socket keeps showing online.
"""

from __future__ import annotations

from typing import Any

from .calibration import (
    irrigation_needed,
    light_percent,
    rain_status,
    soil_moisture_percent,
    status_band,
)

# Shown until the first reading arrives.
INITIAL_STATE: dict[str, Any] = {
    "temperature": 0.0,
    "humidity": 0.0,
    "soilMoisture": 1024,
    "lightLevel": 1024,
    "rainDrop": 1,
    "pumpStatus": False,
    "autoMode": True,
    "espConnected": False,
    "lastUpdated": None,
}


def render(state: dict[str, Any]) -> dict[str, Any]:
    """Compute display values from a :meth:`ReconnectingSession.current_state` dict."""
    merged = {**INITIAL_STATE, **{k: v for k, v in state.items() if v is not None}}
    soil = soil_moisture_percent(merged["soilMoisture"])
    light = light_percent(merged["lightLevel"])
    return {
        "socketConnected": bool(state.get("connected", False)),
        "deviceOnline": bool(merged["espConnected"]),
        "lastUpdated": merged["lastUpdated"],
        "temperature": merged["temperature"],
        "temperatureStatus": status_band("temperature", merged["temperature"]),
        "humidity": merged["humidity"],
        "humidityStatus": status_band("humidity", merged["humidity"]),
        "soilMoisturePercent": round(soil, 1),
        "soilMoistureStatus": status_band("soilMoisture", soil),
        "lightPercent": round(light, 1),
        "rainStatus": rain_status(merged["rainDrop"]),
        "pumpStatus": bool(merged["pumpStatus"]),
        "autoMode": bool(merged["autoMode"]),
        "irrigationNeeded": (
            merged["lastUpdated"] is not None
            and irrigation_needed(soil, merged["rainDrop"])
        ),
    }


def format_summary(view: dict[str, Any]) -> str:
    """One-line text rendering for terminals and logs."""
    return (
        f"[{'connected' if view['socketConnected'] else 'disconnected'}"
        f" | device {'online' if view['deviceOnline'] else 'offline'}] "
        f"temp {view['temperature']}°C ({view['temperatureStatus']}), "
        f"humidity {view['humidity']}% ({view['humidityStatus']}), "
        f"soil {view['soilMoisturePercent']}% ({view['soilMoistureStatus']}), "
        f"light {view['lightPercent']}%, {view['rainStatus']}, "
        f"pump {'on' if view['pumpStatus'] else 'off'}, "
        f"auto {'on' if view['autoMode'] else 'off'}"
        + (" | irrigation needed" if view["irrigationNeeded"] else "")
    )


# ── Commands ──────────────────────────────────────────────────────


def pump_command(on: bool) -> dict:
    return {"type": "command", "command": "pump", "value": "on" if on else "off"}


def auto_mode_command(on: bool) -> dict:
    return {"type": "command", "command": "autoMode", "value": "on" if on else "off"}


def refresh_command() -> dict:
    return {"type": "refresh"}
