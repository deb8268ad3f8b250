"""Sensor calibration and status banding for dashboard rendering.

All functions are pure: the result depends only on the arguments.
Raw soil-moisture and light readings come from 10-bit ADCs (0–1024) where
a lower value means wetter soil / brighter light, so both map inverted.
"""

from __future__ import annotations

RAW_MAX = 1024

# metric → lower/upper bound of the optimal band
THRESHOLDS: dict[str, dict[str, float]] = {
    "temperature": {"low": 18, "high": 35},
    "humidity": {"low": 30, "high": 80},
    "soilMoisture": {"low": 30, "high": 50},
}

# metric → (below low, in band, above high)
BAND_LABELS: dict[str, tuple[str, str, str]] = {
    "temperature": ("Low", "Optimal", "High"),
    "humidity": ("Low", "Optimal", "High"),
    "soilMoisture": ("Dry", "Moist", "Wet"),
}

IRRIGATION_SOIL_THRESHOLD = 30


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def soil_moisture_percent(raw: float) -> float:
    """Map a raw soil reading to wetness percent (0 raw → 100%)."""
    return _clamp_percent(100 - (raw / RAW_MAX) * 100)


def light_percent(raw: float) -> float:
    """Map a raw LDR reading to brightness percent (0 raw → 100%)."""
    return _clamp_percent(100 - (raw / RAW_MAX) * 100)


def status_band(metric: str, value: float) -> str:
    """Classify *value* for *metric* as below, within, or above its band.

    Soil moisture is classified on the calibrated percentage, not the raw
    reading.  Raises ``KeyError`` for a metric without thresholds.
    """
    bounds = THRESHOLDS[metric]
    low_label, ok_label, high_label = BAND_LABELS[metric]
    if value < bounds["low"]:
        return low_label
    if value > bounds["high"]:
        return high_label
    return ok_label


def rain_status(rain_drop: int) -> str:
    """The raindrop sensor pulls its output low (0) when wet."""
    return "Rain Detected" if rain_drop == 0 else "No Rain"


def irrigation_needed(soil_percent: float, rain_drop: int) -> bool:
    """Dashboard irrigation hint: dry soil and no rain on the sensor."""
    return soil_percent < IRRIGATION_SOIL_THRESHOLD and rain_drop == 1
