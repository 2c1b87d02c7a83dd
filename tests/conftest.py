from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest


def make_sample(
    pm25: float = 5.0,
    o3_ppb: float = 10.0,
    co_ppm: float = 0.5,
    timestamp: str = "2024-05-01T08:00:00Z",
    **gases: Any,
) -> Dict[str, Any]:
    """Build a device document shaped like the firmware's payload."""
    return {
        "timestamp": timestamp,
        "device_id": "esp32-01",
        "environment": {"temperature": 21.5, "humidity": 48.25, "pressure": 1012.34},
        "gases": {
            "co_ppm": co_ppm,
            "o3_ppm": o3_ppb,
            "lpg": gases.get("lpg", 1.0),
            "natural_gas": gases.get("natural_gas", 2.0),
            "air_quality_ppm": gases.get("air_quality_ppm", 410.0),
        },
        "particulates": {"pm1_ugm3": 3.0, "pm25_mgm3": pm25},
    }


class FakeSubscription:
    """Subscription whose emissions are driven by the test.

    ``emit`` delivers even after ``cancel`` to mimic a callback that was
    already in flight when the listener was removed.
    """

    def __init__(self, path, listener, limit) -> None:
        self.path = tuple(path)
        self.listener = listener
        self.limit = limit
        self.cancel_count = 0

    @property
    def active(self) -> bool:
        return self.cancel_count == 0

    def cancel(self) -> None:
        self.cancel_count += 1

    def emit(self, snapshot: Optional[Dict[str, Any]]) -> None:
        self.listener(snapshot)


class FakeStore:

    def __init__(self, data: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.data = data or {}
        self.subscriptions: List[FakeSubscription] = []

    def subscribe(self, path, listener, limit=None) -> FakeSubscription:
        subscription = FakeSubscription(path, listener, limit)
        self.subscriptions.append(subscription)
        return subscription

    def fetch_once(self, path, limit=None):
        node: Any = self.data
        for part in path:
            node = node.get(part) if isinstance(node, dict) else None
        if not node:
            return None
        # Deliberately unsorted: consumers must order results themselves.
        keys = list(node)
        if limit is not None:
            keys = sorted(keys)[-limit:]
            keys.reverse()
        return {key: node[key] for key in keys}

    def outer(self) -> FakeSubscription:
        return next(sub for sub in self.subscriptions if sub.path == ())

    def inner(self, date_key: str) -> List[FakeSubscription]:
        return [sub for sub in self.subscriptions if sub.path == (date_key,)]

    def active_inner(self) -> List[FakeSubscription]:
        return [sub for sub in self.subscriptions if sub.path and sub.active]


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()
