"""Programmatic surface consumed by the presentation layer."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, List, Mapping, Optional

from datastore.alert_log import AlertLog, build_default_alert_log
from logging_config import configure_logging
from models.records import FieldPoint, HistoricalPoint, SensorReading
from models.schemas import AlertRecord
from services.alerts import AlertStateMachine
from services.aqi import overall_aqi
from services.decoder import decode_reading
from services.history import HistoryAggregator
from services.telemetry import TelemetrySubscriptionManager
from settings import get_settings
from storage.timeseries import TimeSeriesStore, build_default_store

logger = logging.getLogger(__name__)


class MonitorService:
    """Coordinates the live stream, history reads and alert evaluation.

    Live readings reach the alert machine through a single worker with a
    one-slot buffer: a reading that arrives while the worker is busy replaces
    any reading still waiting, so only the newest one is evaluated.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        alert_log: AlertLog,
        history_limit: int = 72,
    ) -> None:
        self.store = store
        self.alert_log = alert_log
        self.history_limit = history_limit
        self.history = HistoryAggregator(store)
        self.alerts = AlertStateMachine(alert_log)
        self.executor = ThreadPoolExecutor(max_workers=1)
        self._pending: Optional[SensorReading] = None
        self._drain_future: Optional[Future[None]] = None
        self._pending_lock = Lock()
        self._on_alerts: Optional[Callable[[List[AlertRecord]], None]] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._closed = False

    def subscribe_latest(
        self,
        on_update: Callable[[Any], None],
        on_loading_change: Optional[Callable[[bool], None]] = None,
        decode: Callable[[Mapping[str, Any]], Any] = decode_reading,
    ) -> Callable[[], None]:
        """Stream the newest sample decoded by ``decode``.

        Pass ``services.decoder.decode_sample`` to receive the ambient
        conditions alongside the reading.
        """
        if self._closed:
            raise RuntimeError("Monitor has been shut down")
        manager = TelemetrySubscriptionManager(self.store, decode=decode)
        unsubscribe = manager.subscribe(on_update, on_loading_change)
        with self._pending_lock:
            self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def start_alert_monitoring(
        self, on_alerts: Optional[Callable[[List[AlertRecord]], None]] = None
    ) -> Callable[[], None]:
        """Feed the live stream into the alert machine until unsubscribed."""
        self._on_alerts = on_alerts
        return self.subscribe_latest(self._offer)

    def wait_for_alerts(self, timeout: Optional[float] = None) -> None:
        """Block until every offered reading has been evaluated."""
        while True:
            with self._pending_lock:
                future = self._drain_future
            if future is None:
                return
            future.result(timeout=timeout)

    def fetch_history(self, date_key: str, limit: Optional[int] = None) -> List[HistoricalPoint]:
        return self.history.fetch_history(date_key, limit or self.history_limit)

    def fetch_field(self, date_key: str, field_path: str) -> List[FieldPoint]:
        return self.history.fetch_field(date_key, field_path)

    def fetch_variable(self, date_key: str, variable_key: str) -> List[FieldPoint]:
        return self.history.fetch_variable(date_key, variable_key)

    @staticmethod
    def compute_overall_aqi(pm25: float, o3_ppm: float, co_ppm: float) -> int:
        return overall_aqi(pm25, o3_ppm, co_ppm)

    def evaluate(self, reading: SensorReading) -> List[AlertRecord]:
        return self.alerts.evaluate(reading)

    def recent_alerts(self) -> List[AlertRecord]:
        return self.alert_log.scan()

    def shutdown(self) -> None:
        """Cancel live subscriptions and release the alert worker."""
        with self._pending_lock:
            self._closed = True
            unsubscribers, self._unsubscribers = self._unsubscribers, []
            self._pending = None
            self._drain_future = None
        for unsubscribe in unsubscribers:
            unsubscribe()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _offer(self, reading: SensorReading) -> None:
        with self._pending_lock:
            if self._closed:
                return
            self._pending = reading
            if self._drain_future is None:
                self._drain_future = self.executor.submit(self._drain)

    def _drain(self) -> None:
        while True:
            with self._pending_lock:
                reading = self._pending
                self._pending = None
                if reading is None:
                    self._drain_future = None
                    return
            try:
                alerts = self.alerts.evaluate(reading)
                if alerts and self._on_alerts is not None:
                    self._on_alerts(alerts)
            except Exception:  # pragma: no cover
                logger.exception("Alert evaluation failed", extra={"aqi": reading.aqi})


@lru_cache
def build_default_monitor() -> MonitorService:
    """Factory that wires the monitor with the default store and alert log."""
    configure_logging()
    settings = get_settings()
    store = build_default_store()
    alert_log = build_default_alert_log()
    return MonitorService(store=store, alert_log=alert_log, history_limit=settings.history_limit)
