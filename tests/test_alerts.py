"""Unit tests for the alert state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import List

import pytest

from datastore.alert_log import AlertLog
from models.records import AlertState, SensorReading
from models.schemas import AlertClass, AlertRecord
from services.alerts import AlertStateMachine, evaluate, initial_state

_BASE = SensorReading(
    aqi=20,
    co2=400.0,
    o3=10.0,
    co=0.2,
    glp=0.0,
    natural_gas=0.0,
    pm1=1.0,
    pm25=4.0,
    rh=40.0,
    timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
)


def _reading(aqi: int = 20, pm25: float = 4.0, o3: float = 10.0) -> SensorReading:
    return replace(_BASE, aqi=aqi, pm25=pm25, o3=o3)


def _run(readings: List[SensorReading]) -> List[List[AlertRecord]]:
    state = initial_state()
    emitted = []
    for reading in readings:
        state, alerts = evaluate(reading, state)
        emitted.append(alerts)
    return emitted


def test_first_reading_only_records_category() -> None:
    state, alerts = evaluate(_reading(aqi=180), initial_state())

    assert alerts == []
    assert state.last_aqi_category == "Unhealthy"
    assert state.pollutant_elevated == {"pm25": False, "o3": False}


def test_identical_reading_is_idempotent() -> None:
    reading = _reading(aqi=120, pm25=40.0)
    state, first = evaluate(reading, AlertState(last_aqi_category="Good"))

    second_state, second = evaluate(reading, state)

    assert len(first) == 2
    assert second == []
    assert second_state == state


def test_aqi_alerts_fire_only_on_macro_flips() -> None:
    emitted = _run([_reading(aqi=value) for value in (40, 120, 180, 90)])

    assert [len(alerts) for alerts in emitted] == [0, 1, 0, 1]
    worsened, recovered = emitted[1][0], emitted[3][0]
    assert worsened.type == "AQI"
    assert worsened.level == "Unhealthy for Sensitive Groups"
    assert worsened.cls is AlertClass.warn
    assert worsened.value == 120
    assert worsened.message == "AQI changed to Unhealthy for Sensitive Groups"
    assert recovered.level == "Moderate"
    assert recovered.cls is AlertClass.mod
    assert recovered.message == "AQI returned to acceptable levels"


def test_movement_within_acceptable_band_is_silent() -> None:
    emitted = _run([_reading(aqi=value) for value in (10, 80, 30, 100)])

    assert all(alerts == [] for alerts in emitted)


def test_pm25_edges_with_hysteresis() -> None:
    emitted = _run([_reading(pm25=value) for value in (10, 40, 60, 30)])

    assert [len(alerts) for alerts in emitted] == [0, 1, 0, 1]
    entered, returned = emitted[1][0], emitted[3][0]
    assert entered.type == "PM25"
    assert entered.level == "Unhealthy for Sensitive Groups"
    assert entered.cls is AlertClass.warn
    assert entered.value == 40
    assert "elevated" in entered.message
    assert returned.level == "Moderate"
    assert returned.cls is AlertClass.mod
    assert returned.message == "PM25 returned to acceptable levels"


def test_pollutant_entering_straight_into_bad_tier() -> None:
    emitted = _run([_reading(o3=10), _reading(o3=250)])

    alert = emitted[1][0]
    assert alert.type == "O3"
    assert alert.level == "Unhealthy"
    assert alert.cls is AlertClass.bad
    assert alert.message == "O3 elevated (250 ppb)"


def test_oscillating_at_threshold_alerts_every_time() -> None:
    emitted = _run([_reading(pm25=value) for value in (35.5, 35.4, 35.5, 35.4)])

    assert [len(alerts) for alerts in emitted] == [1, 1, 1, 1]


def test_alerts_are_emitted_in_evaluation_order() -> None:
    state = AlertState(last_aqi_category="Good")

    _, alerts = evaluate(_reading(aqi=160, pm25=60.0, o3=130.0), state)

    assert [alert.type for alert in alerts] == ["AQI", "PM25", "O3"]


def test_ids_and_timestamps_come_from_injected_factories() -> None:
    stamp = datetime(2030, 1, 1, tzinfo=timezone.utc)
    ids = iter(["first", "second"])

    _, alerts = evaluate(
        _reading(aqi=160, pm25=60.0),
        AlertState(last_aqi_category="Good"),
        now=lambda: stamp,
        id_factory=lambda: next(ids),
    )

    assert [alert.id for alert in alerts] == ["first", "second"]
    assert all(alert.ts == stamp for alert in alerts)


def test_default_ids_are_unique() -> None:
    _, alerts = evaluate(_reading(aqi=160, pm25=60.0, o3=300.0), AlertState(last_aqi_category="Good"))

    assert len({alert.id for alert in alerts}) == 3


def test_machine_owns_state_and_appends_to_log() -> None:
    log = AlertLog(name="alerts")
    machine = AlertStateMachine(log)

    machine.evaluate(_reading(aqi=40))
    emitted = machine.evaluate(_reading(aqi=120))

    assert machine.state.last_aqi_category == "Unhealthy for Sensitive Groups"
    assert [record.id for record in log.scan()] == [emitted[0].id]

    machine.reset()
    assert machine.state == initial_state()


def test_log_write_failure_does_not_roll_back_state(caplog) -> None:
    class BrokenLog(AlertLog):
        def append(self, record: AlertRecord) -> None:
            raise OSError("disk full")

    machine = AlertStateMachine(BrokenLog(name="alerts"))

    with caplog.at_level(logging.ERROR):
        alerts = machine.evaluate(_reading(pm25=50.0))

    assert len(alerts) == 1
    assert machine.state.pollutant_elevated["pm25"] is True
    records = [record for record in caplog.records if record.name == "services.alerts"]
    assert any(getattr(record, "alert_id", None) == alerts[0].id for record in records)


@pytest.mark.parametrize("aqi", [0, 500])
def test_value_carries_reading_aqi(aqi: int) -> None:
    _, alerts = evaluate(_reading(aqi=aqi), AlertState(last_aqi_category="Unhealthy" if aqi == 0 else "Good"))

    assert alerts[0].value == aqi
