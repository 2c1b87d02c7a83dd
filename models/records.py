"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True, slots=True)
class SensorReading:
    """Canonical decoded snapshot of one device sample.

    ``o3`` stays in ppb as reported by the device, ``co`` is in ppm and
    ``pm25`` in µg/m³. ``aqi`` is the overall index computed from them.
    """

    aqi: int
    co2: float
    o3: float
    co: float
    glp: float
    natural_gas: float
    pm1: float
    pm25: float
    rh: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class AmbientConditions:
    """Weather-style summary derived alongside a reading."""

    temperature_c: float
    humidity: float
    pressure: str
    aqi: int


@dataclass(frozen=True, slots=True)
class DecodedSample:
    reading: SensorReading
    conditions: AmbientConditions


@dataclass(frozen=True, slots=True)
class HistoricalPoint:
    timestamp: datetime
    aqi: int


@dataclass(frozen=True, slots=True)
class FieldPoint:
    timestamp: datetime
    value: float
    time_key: Optional[str] = None


@dataclass(frozen=True)
class AlertState:
    """Per-session alert memory: last AQI category and pollutant flags."""

    last_aqi_category: Optional[str] = None
    pollutant_elevated: Dict[str, bool] = field(
        default_factory=lambda: {"pm25": False, "o3": False}
    )
