"""Live "latest sample" tracking over the two-level time-series store.

The manager keeps one outer listener on the date level and exactly one inner
listener on the newest date bucket. When the newest date changes the inner
listener is cancelled before its replacement is registered.

Transitions::

    IDLE --subscribe--> OUTER_ACTIVE --new date key--> REWIRING_INNER
    REWIRING_INNER --inner registered--> OUTER_ACTIVE
    any --unsubscribe--> DISPOSED
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import partial
from threading import RLock
from typing import Any, Callable, Optional

from services.decoder import decode_reading
from storage.timeseries import Snapshot, Subscription, TimeSeriesStore

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    idle = "idle"
    outer_active = "outer_active"
    rewiring_inner = "rewiring_inner"
    disposed = "disposed"


class TelemetrySubscriptionManager:
    """Streams the newest decoded sample to a single consumer.

    Every ``on_update`` call carries a complete value that replaces the
    previous one. Emissions from an inner listener that has been superseded
    are dropped, so a late callback from the previous date bucket never
    reaches the consumer.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        decode: Callable[[Any], Any] = decode_reading,
    ) -> None:
        self.store = store
        self._decode = decode
        self._lock = RLock()
        self._state = SubscriptionState.idle
        self._outer: Optional[Subscription] = None
        self._inner: Optional[Subscription] = None
        self._outer_key: Optional[str] = None
        self._inner_key: Optional[str] = None
        self._generation = 0
        self._loading: Optional[bool] = None
        self._on_update: Optional[Callable[[Any], None]] = None
        self._on_loading_change: Optional[Callable[[bool], None]] = None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def outer_key(self) -> Optional[str]:
        return self._outer_key

    @property
    def inner_key(self) -> Optional[str]:
        return self._inner_key

    def subscribe(
        self,
        on_update: Callable[[Any], None],
        on_loading_change: Optional[Callable[[bool], None]] = None,
    ) -> Callable[[], None]:
        with self._lock:
            if self._state is not SubscriptionState.idle:
                raise RuntimeError(
                    f"Cannot subscribe from state {self._state.value!r}; "
                    "create a new manager instead."
                )
            self._on_update = on_update
            self._on_loading_change = on_loading_change
            self._state = SubscriptionState.outer_active
            self._set_loading(True)

            outer = self.store.subscribe((), self._handle_outer, limit=1)
            if self._state is SubscriptionState.disposed:
                outer.cancel()
            else:
                self._outer = outer
        return self.unsubscribe

    def unsubscribe(self) -> None:
        with self._lock:
            if self._state is SubscriptionState.disposed:
                return
            self._state = SubscriptionState.disposed
            inner, outer = self._inner, self._outer
            self._inner = None
            self._outer = None
        if inner is not None:
            inner.cancel()
        if outer is not None:
            outer.cancel()
        logger.debug("Telemetry subscription disposed", extra={"state": self._state.value})

    def _handle_outer(self, snapshot: Optional[Snapshot]) -> None:
        with self._lock:
            if self._state is SubscriptionState.disposed:
                return
            if not snapshot:
                self._drop_inner()
                self._outer_key = None
                self._set_loading(False)
                return
            outer_key = max(snapshot)
            if outer_key == self._outer_key and self._inner is not None:
                return
            if self._outer_key is not None and outer_key < self._outer_key:
                # Date keys sort lexicographically; an older bucket is a late delivery.
                logger.debug(
                    "Ignoring outer emission for an older date bucket",
                    extra={"date_key": outer_key, "state": self._state.value},
                )
                return
            self._rewire(outer_key)

    def _rewire(self, outer_key: str) -> None:
        self._state = SubscriptionState.rewiring_inner
        self._drop_inner()
        generation = self._generation
        self._outer_key = outer_key
        self._inner_key = None
        logger.info(
            "Following newest date bucket",
            extra={"date_key": outer_key, "generation": generation},
        )

        inner = self.store.subscribe(
            (outer_key,), partial(self._handle_inner, generation), limit=1
        )
        if self._state is SubscriptionState.disposed or generation != self._generation:
            inner.cancel()
            return
        self._inner = inner
        self._state = SubscriptionState.outer_active

    def _drop_inner(self) -> None:
        # Bumping the generation invalidates callbacks already in flight.
        self._generation += 1
        previous, self._inner = self._inner, None
        if previous is not None:
            previous.cancel()

    def _handle_inner(self, generation: int, snapshot: Optional[Snapshot]) -> None:
        with self._lock:
            if self._state is SubscriptionState.disposed or generation != self._generation:
                logger.debug(
                    "Dropping emission from superseded listener",
                    extra={"generation": generation, "state": self._state.value},
                )
                return
            if not snapshot:
                return
            inner_key = max(snapshot)
            raw = snapshot[inner_key]
            if raw is None:
                return
            value = self._decode(raw)
            self._inner_key = inner_key
            if self._on_update is not None:
                self._on_update(value)
            self._set_loading(False)

    def _set_loading(self, loading: bool) -> None:
        if self._loading is False or self._loading == loading:
            return
        self._loading = loading
        if self._on_loading_change is not None:
            self._on_loading_change(loading)
