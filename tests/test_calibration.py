"""Tests for sensor calibration and status banding."""

from __future__ import annotations

import pytest

from client.irrigation_client.calibration import (
    BAND_LABELS,
    THRESHOLDS,
    irrigation_needed,
    light_percent,
    rain_status,
    soil_moisture_percent,
    status_band,
)


class TestPercentMapping:
    def test_soil_endpoints(self):
        assert soil_moisture_percent(0) == 100
        assert soil_moisture_percent(1024) == 0
        assert soil_moisture_percent(512) == 50

    def test_soil_monotonic_decreasing(self):
        values = [soil_moisture_percent(raw) for raw in range(0, 1025, 16)]
        assert all(a >= b for a, b in zip(values, values[1:]))

    @pytest.mark.parametrize("raw,expected", [(-50, 100), (2048, 0), (5000, 0)])
    def test_soil_clamped(self, raw, expected):
        assert soil_moisture_percent(raw) == expected

    def test_light_uses_same_inversion(self):
        for raw in (0, 100, 512, 1000, 1024, 1500):
            assert light_percent(raw) == soil_moisture_percent(raw)

    def test_pure(self):
        assert soil_moisture_percent(300) == soil_moisture_percent(300)


class TestStatusBand:
    @pytest.mark.parametrize("value,expected", [(10, "Low"), (18, "Optimal"), (28.5, "Optimal"), (35, "Optimal"), (35.1, "High")])
    def test_temperature(self, value, expected):
        assert status_band("temperature", value) == expected

    @pytest.mark.parametrize("value,expected", [(29, "Low"), (65, "Optimal"), (81, "High")])
    def test_humidity(self, value, expected):
        assert status_band("humidity", value) == expected

    @pytest.mark.parametrize("value,expected", [(10, "Dry"), (40, "Moist"), (75, "Wet")])
    def test_soil(self, value, expected):
        assert status_band("soilMoisture", value) == expected

    def test_unknown_metric(self):
        with pytest.raises(KeyError):
            status_band("pressure", 1000)

    def test_thresholds_documented(self):
        assert THRESHOLDS == {
            "temperature": {"low": 18, "high": 35},
            "humidity": {"low": 30, "high": 80},
            "soilMoisture": {"low": 30, "high": 50},
        }
        assert set(BAND_LABELS) == set(THRESHOLDS)


class TestRainAndIrrigation:
    def test_rain_status(self):
        assert rain_status(0) == "Rain Detected"
        assert rain_status(1) == "No Rain"

    @pytest.mark.parametrize("rain_drop", [0, 1])
    def test_irrigation_never_flagged_while_raining(self, rain_drop):
        if irrigation_needed(5, rain_drop):
            assert rain_status(rain_drop) == "No Rain"

    def test_irrigation_needed(self):
        assert irrigation_needed(20, 1) is True
        assert irrigation_needed(20, 0) is False
        assert irrigation_needed(30, 1) is False
