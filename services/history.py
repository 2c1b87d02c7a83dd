"""One-shot historical reads over a single date bucket."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List

from models.records import FieldPoint, HistoricalPoint
from services.decoder import decode_reading, extract_numeric, parse_timestamp
from storage.timeseries import TimeSeriesStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryVariable:
    path: str
    label: str
    unit: str


HISTORY_VARIABLES: Dict[str, HistoryVariable] = {
    "co": HistoryVariable("gases.co_ppm", "Carbon monoxide (CO)", "ppm"),
    "o3": HistoryVariable("gases.o3_ppm", "Ozone (O3)", "ppb"),
    "pm25": HistoryVariable("particulates.pm25_mgm3", "PM2.5", "µg/m³"),
    "co2": HistoryVariable("gases.air_quality_ppm", "Air quality (NH3/CO2)", "ppm"),
    "temperature": HistoryVariable("environment.temperature", "Temperature", "°C"),
    "humidity": HistoryVariable("environment.humidity", "Humidity", "%"),
    "pressure": HistoryVariable("environment.pressure", "Pressure", "hPa"),
}


class HistoryAggregator:
    """Fetches a bucket once and reduces it to a sorted series.

    Nothing is cached; every call goes back to the store.
    """

    def __init__(self, store: TimeSeriesStore) -> None:
        self.store = store

    def fetch_history(self, date_key: str, limit: int) -> List[HistoricalPoint]:
        if limit <= 0:
            raise ValueError("limit must be positive.")
        snapshot = self.store.fetch_once((date_key,), limit=limit) or {}
        points = []
        for sample in snapshot.values():
            reading = decode_reading(sample)
            points.append(HistoricalPoint(timestamp=reading.timestamp, aqi=reading.aqi))
        points.sort(key=lambda point: point.timestamp)
        logger.debug(
            "Fetched AQI history",
            extra={"date_key": date_key, "point_count": len(points)},
        )
        return points

    def fetch_field(self, date_key: str, field_path: str) -> List[FieldPoint]:
        snapshot = self.store.fetch_once((date_key,)) or {}
        points = []
        for time_key, sample in snapshot.items():
            value = extract_numeric(sample, field_path)
            if value is None:
                continue
            points.append(
                FieldPoint(
                    timestamp=self._point_timestamp(date_key, time_key, sample),
                    value=value,
                    time_key=time_key,
                )
            )
        points.sort(key=lambda point: (point.timestamp, point.time_key or ""))
        logger.debug(
            "Fetched field history",
            extra={
                "date_key": date_key,
                "field_path": field_path,
                "point_count": len(points),
            },
        )
        return points

    def fetch_variable(self, date_key: str, variable_key: str) -> List[FieldPoint]:
        try:
            variable = HISTORY_VARIABLES[variable_key]
        except KeyError as exc:
            raise KeyError(f"Unknown history variable {variable_key!r}.") from exc
        return self.fetch_field(date_key, variable.path)

    @staticmethod
    def _point_timestamp(date_key: str, time_key: str, sample: object) -> datetime:
        # Time keys are written as HH-MM-SS under a YYYY-MM-DD bucket.
        try:
            return parse_timestamp(f"{date_key}T{time_key.replace('-', ':')}")
        except ValueError:
            return decode_reading(sample if isinstance(sample, dict) else {}).timestamp
