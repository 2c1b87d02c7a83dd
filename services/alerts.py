"""Edge-triggered alerting over the stream of decoded readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from datastore.alert_log import AlertLog
from models.records import AlertState, SensorReading
from models.schemas import AlertClass, AlertRecord
from services.aqi import AQI_CATEGORIES, category_index, is_concerning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollutantThreshold:
    warn: float
    bad: float
    unit: str


# Keyed by SensorReading attribute; o3 is compared in ppb.
POLLUTANT_THRESHOLDS: Dict[str, PollutantThreshold] = {
    "pm25": PollutantThreshold(warn=35.5, bad=55.5, unit="µg/m³"),
    "o3": PollutantThreshold(warn=125.0, bad=200.0, unit="ppb"),
}

_WARN_LEVEL = AQI_CATEGORIES[2].text
_BAD_LEVEL = AQI_CATEGORIES[3].text
_RECOVERED_LEVEL = AQI_CATEGORIES[1].text


def initial_state(thresholds: Mapping[str, PollutantThreshold] = POLLUTANT_THRESHOLDS) -> AlertState:
    return AlertState(
        last_aqi_category=None,
        pollutant_elevated={pollutant: False for pollutant in thresholds},
    )


def _category_position(text: Optional[str]) -> Optional[int]:
    for index, category in enumerate(AQI_CATEGORIES):
        if category.text == text:
            return index
    return None


def evaluate(
    reading: SensorReading,
    state: AlertState,
    *,
    thresholds: Mapping[str, PollutantThreshold] = POLLUTANT_THRESHOLDS,
    now: Optional[Callable[[], datetime]] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> Tuple[AlertState, List[AlertRecord]]:
    """Advance ``state`` by one reading and return the alerts it triggers.

    The AQI alert fires only when the reading moves between the acceptable
    categories (Good, Moderate) and the concerning ones. Pollutant alerts fire
    on the edge of the ``warn`` threshold in either direction; escalating from
    the warn tier to the bad tier while already elevated emits nothing.
    """
    clock = now or (lambda: datetime.now(timezone.utc))
    new_id = id_factory or (lambda: uuid4().hex)
    alerts: List[AlertRecord] = []

    def emit(type_: str, level: str, value: float, message: str, cls: AlertClass) -> None:
        alerts.append(
            AlertRecord(
                id=new_id(),
                ts=clock(),
                type=type_,
                level=level,
                value=value,
                message=message,
                cls=cls,
            )
        )

    current_index = category_index(reading.aqi)
    current = AQI_CATEGORIES[current_index]
    previous_index = _category_position(state.last_aqi_category)
    if previous_index is not None and previous_index != current_index:
        was_concerning = is_concerning(previous_index)
        now_concerning = is_concerning(current_index)
        if now_concerning and not was_concerning:
            emit("AQI", current.text, reading.aqi, f"AQI changed to {current.text}", AlertClass(current.cls))
        elif was_concerning and not now_concerning:
            emit("AQI", current.text, reading.aqi, "AQI returned to acceptable levels", AlertClass(current.cls))

    elevated = dict(state.pollutant_elevated)
    for pollutant, threshold in thresholds.items():
        value = float(getattr(reading, pollutant))
        label = pollutant.upper()
        if value >= threshold.warn:
            if not elevated.get(pollutant, False):
                is_bad = value >= threshold.bad
                emit(
                    label,
                    _BAD_LEVEL if is_bad else _WARN_LEVEL,
                    value,
                    f"{label} elevated ({value:g} {threshold.unit})",
                    AlertClass.bad if is_bad else AlertClass.warn,
                )
                elevated[pollutant] = True
        elif elevated.get(pollutant, False):
            emit(
                label,
                _RECOVERED_LEVEL,
                value,
                f"{label} returned to acceptable levels",
                AlertClass.mod,
            )
            elevated[pollutant] = False

    new_state = AlertState(last_aqi_category=current.text, pollutant_elevated=elevated)
    return new_state, alerts


class AlertStateMachine:
    """Owns one session's ``AlertState`` and writes alerts to the log.

    ``evaluate`` is serialised with a lock: each transition depends on the
    state left by the previous reading.
    """

    def __init__(
        self,
        alert_log: AlertLog,
        thresholds: Mapping[str, PollutantThreshold] = POLLUTANT_THRESHOLDS,
    ) -> None:
        self.alert_log = alert_log
        self.thresholds = dict(thresholds)
        self._state = initial_state(self.thresholds)
        self._lock = Lock()

    @property
    def state(self) -> AlertState:
        with self._lock:
            return self._state

    def evaluate(self, reading: SensorReading) -> List[AlertRecord]:
        with self._lock:
            self._state, alerts = evaluate(reading, self._state, thresholds=self.thresholds)
            for alert in alerts:
                logger.info(
                    "Alert emitted: %s",
                    alert.message,
                    extra={
                        "alert_id": alert.id,
                        "alert_type": alert.type,
                        "alert_level": alert.level,
                        "aqi": reading.aqi,
                    },
                )
                try:
                    self.alert_log.append(alert)
                except OSError:
                    logger.exception(
                        "Failed to write alert to log",
                        extra={"alert_id": alert.id, "alert_type": alert.type},
                    )
        return alerts

    def reset(self) -> None:
        with self._lock:
            self._state = initial_state(self.thresholds)
