from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Optional

from models.schemas import AlertRecord
from settings import get_settings


class AlertLog:
    """Append-only mapping of alert id to ``AlertRecord``."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, AlertRecord] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, record: AlertRecord) -> None:
        with self._lock:
            if record.id in self._items:
                raise ValueError(f"Alert {record.id!r} already exists in log {self.name!r}.")
            self._items[record.id] = record
            self._persist()

    def extend(self, records: Iterable[AlertRecord]) -> None:
        for record in records:
            self.append(record)

    def get_item(self, key: str) -> Optional[AlertRecord]:
        with self._lock:
            return self._items.get(key)

    def scan(self) -> list[AlertRecord]:
        """Return all alerts, newest first."""

        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda record: record.ts, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._persist()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            alert_id: item.model_dump(mode="json") for alert_id, item in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for alert_id, payload in data.items():
            self._items[alert_id] = AlertRecord.model_validate(payload)


@lru_cache
def build_default_alert_log(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> AlertLog:
    settings = get_settings()
    log_name = settings.alert_log_name if name is None else name
    log_path = settings.alert_log_persistence_path if path is None else path
    persistence = Path(log_path) if log_path else None
    return AlertLog(name=log_name, persistence_path=persistence)
