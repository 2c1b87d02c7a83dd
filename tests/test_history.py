from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import FakeStore, make_sample
from services.decoder import decode_reading
from services.history import HISTORY_VARIABLES, HistoryAggregator
from storage.timeseries import InMemoryTimeSeriesStore


@pytest.fixture()
def bucket() -> dict:
    return {
        "09-00-00": make_sample(pm25=40.0, timestamp="2024-05-01T09:00:00Z"),
        "07-00-00": make_sample(pm25=5.0, timestamp="2024-05-01T07:00:00Z"),
        "08-00-00": make_sample(pm25=20.0, timestamp="2024-05-01T08:00:00Z"),
    }


def test_fetch_history_sorts_out_of_order_results(bucket: dict) -> None:
    aggregator = HistoryAggregator(FakeStore({"2024-05-01": bucket}))

    points = aggregator.fetch_history("2024-05-01", limit=72)

    assert [point.timestamp.hour for point in points] == [7, 8, 9]
    assert [point.aqi for point in points] == [
        decode_reading(bucket[key]).aqi for key in ("07-00-00", "08-00-00", "09-00-00")
    ]


def test_fetch_history_honours_limit(bucket: dict) -> None:
    aggregator = HistoryAggregator(FakeStore({"2024-05-01": bucket}))

    points = aggregator.fetch_history("2024-05-01", limit=2)

    assert [point.timestamp.hour for point in points] == [8, 9]


def test_fetch_history_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        HistoryAggregator(FakeStore()).fetch_history("2024-05-01", limit=0)


def test_fetch_history_for_missing_bucket_is_empty() -> None:
    assert HistoryAggregator(FakeStore()).fetch_history("2024-05-01", limit=5) == []


def test_fetch_field_discards_missing_and_non_numeric(bucket: dict) -> None:
    bucket["07-30-00"] = {"timestamp": "2024-05-01T07:30:00Z", "gases": {"co_ppm": "high"}}
    bucket["06-00-00"] = {"timestamp": "2024-05-01T06:00:00Z"}
    aggregator = HistoryAggregator(FakeStore({"2024-05-01": bucket}))

    points = aggregator.fetch_field("2024-05-01", "particulates.pm25_mgm3")

    assert [point.value for point in points] == [5.0, 20.0, 40.0]
    assert [point.time_key for point in points] == ["07-00-00", "08-00-00", "09-00-00"]
    assert points[0].timestamp == datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)


def test_fetch_field_falls_back_to_sample_timestamp() -> None:
    store = FakeStore(
        {
            "2024-05-01": {
                "b-key": make_sample(timestamp="2024-05-01T05:00:00Z"),
                "a-key": make_sample(timestamp="2024-05-01T06:00:00Z"),
            }
        }
    )

    points = HistoryAggregator(store).fetch_field("2024-05-01", "environment.humidity")

    assert [point.time_key for point in points] == ["b-key", "a-key"]


def test_fetch_variable_uses_catalogue(bucket: dict) -> None:
    aggregator = HistoryAggregator(FakeStore({"2024-05-01": bucket}))

    points = aggregator.fetch_variable("2024-05-01", "temperature")

    assert HISTORY_VARIABLES["temperature"].unit == "°C"
    assert [point.value for point in points] == [21.5, 21.5, 21.5]
    with pytest.raises(KeyError):
        aggregator.fetch_variable("2024-05-01", "radon")


def test_history_reads_from_real_store_every_call() -> None:
    store = InMemoryTimeSeriesStore(name="sensor_data")
    aggregator = HistoryAggregator(store)
    store.put_sample("2024-05-01", "08-00-00", make_sample(timestamp="2024-05-01T08:00:00Z"))

    assert len(aggregator.fetch_history("2024-05-01", limit=72)) == 1

    store.put_sample("2024-05-01", "09-00-00", make_sample(timestamp="2024-05-01T09:00:00Z"))
    assert len(aggregator.fetch_history("2024-05-01", limit=72)) == 2
