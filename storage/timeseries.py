"""Two-level ordered time-series store with subscribe/fetch-once semantics.

Data is laid out as ``{date_key: {time_key: sample}}``. Keys at both levels
sort lexicographically by recency, so "latest" always means the last key.
"""

from __future__ import annotations

import copy
import json
import logging
from functools import lru_cache
from itertools import count
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from settings import get_settings

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Any]
Listener = Callable[[Optional[Snapshot]], None]
KeyPath = Tuple[str, ...]


class Subscription:
    """Handle for a registered listener; ``cancel`` may be called repeatedly."""

    def __init__(
        self,
        path: KeyPath,
        listener: Listener,
        limit: Optional[int],
        on_cancel: Callable[["Subscription"], None],
    ) -> None:
        self.path = path
        self.listener = listener
        self.limit = limit
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel(self)


class TimeSeriesStore(Protocol):
    def subscribe(
        self, path: KeyPath, listener: Listener, limit: Optional[int] = None
    ) -> Subscription:
        ...

    def fetch_once(self, path: KeyPath, limit: Optional[int] = None) -> Optional[Snapshot]:
        ...


def _window(node: Any, limit: Optional[int]) -> Optional[Snapshot]:
    if not isinstance(node, dict) or not node:
        return None
    keys = sorted(node)
    if limit is not None:
        keys = keys[-limit:]
    return {key: copy.deepcopy(node[key]) for key in keys}


class InMemoryTimeSeriesStore:

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._data: Dict[str, Dict[str, Any]] = {}
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = count()
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_sample(self, date_key: str, time_key: str, sample: Dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(date_key, {})[time_key] = copy.deepcopy(sample)
            self._persist()
            deliveries = self._pending_deliveries((date_key, time_key))

        for subscription, snapshot in deliveries:
            if subscription.active:
                subscription.listener(snapshot)

    def subscribe(
        self, path: KeyPath, listener: Listener, limit: Optional[int] = None
    ) -> Subscription:
        """Register ``listener`` and deliver the current window immediately."""
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive.")
        path = tuple(path)
        if len(path) > 1:
            raise ValueError(f"Cannot subscribe below the date level: {path!r}")

        with self._lock:
            subscription_id = next(self._ids)
            subscription = Subscription(
                path,
                listener,
                limit,
                on_cancel=lambda _sub, sid=subscription_id: self._remove(sid),
            )
            self._subscriptions[subscription_id] = subscription
            snapshot = _window(self._node(path), limit)

        logger.debug(
            "Listener registered", extra={"path": "/".join(path) or "<root>"}
        )
        listener(snapshot)
        return subscription

    def fetch_once(self, path: KeyPath, limit: Optional[int] = None) -> Optional[Snapshot]:
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive.")
        with self._lock:
            return _window(self._node(tuple(path)), limit)

    def keys(self, path: KeyPath = ()) -> List[str]:
        with self._lock:
            node = self._node(tuple(path))
            return sorted(node) if isinstance(node, dict) else []

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _node(self, path: KeyPath) -> Any:
        node: Any = self._data
        for part in path:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _remove(self, subscription_id: int) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)

    def _pending_deliveries(
        self, written: KeyPath
    ) -> List[Tuple[Subscription, Optional[Snapshot]]]:
        deliveries: List[Tuple[Subscription, Optional[Snapshot]]] = []
        for subscription in self._subscriptions.values():
            depth = len(subscription.path)
            if written[:depth] != subscription.path:
                continue
            snapshot = _window(self._node(subscription.path), subscription.limit)
            # Writes outside a limited window leave the listener's view unchanged.
            if snapshot is None or written[depth] not in snapshot:
                continue
            deliveries.append((subscription, snapshot))
        return deliveries

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._data, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for date_key, bucket in data.items():
            if isinstance(bucket, dict):
                self._data[date_key] = bucket


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> InMemoryTimeSeriesStore:
    settings = get_settings()
    store_name = settings.store_name if name is None else name
    store_path = settings.store_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return InMemoryTimeSeriesStore(name=store_name, persistence_path=persistence)
