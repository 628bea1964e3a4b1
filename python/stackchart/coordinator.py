"""Reload coordination driven by collection lifecycle events."""

from __future__ import annotations

import enum
import logging
import threading

from .events import EventBus, Subscription
from .pipeline import ChartDataPipeline
from .schema import ColumnProfile, QueryKey, TimeWindow
from .state import QueryState

logger = logging.getLogger(__name__)


class CollectState(enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    STOPPED = "stopped"


class ReloadCoordinator:
    """Reloads a chart once per finished collection cycle.

    start  -> remember where the cycle began
    stop   -> load ``[begin, end)`` exactly once
    history -> informational only
    """

    def __init__(self, key: QueryKey, bus: EventBus, state: QueryState,
                 pipeline: ChartDataPipeline) -> None:
        self._key = key
        self._state = state
        self._pipeline = pipeline
        self._lock = threading.Lock()
        self._status = CollectState.IDLE
        self.begin: int = 0
        self.end: int = 0
        self.last_error: Exception | None = None
        self._subscriptions: list[Subscription] = [
            bus.add_collect_start_stop_listener(key, self),
            bus.add_show_local_history_listener(self),
        ]

    @property
    def key(self) -> QueryKey:
        return self._key

    @property
    def status(self) -> CollectState:
        return self._status

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def fire_on_start_collect(self, key: QueryKey) -> None:
        if key != self._key:
            logger.debug("ignoring start for %s (chart is %s)", key, self._key)
            return
        with self._lock:
            if self._status == CollectState.COLLECTING:
                logger.warning("start for %s while already collecting; ignored", key)
                return
            self.begin = self._state.get_last_timestamp(key)
            self._status = CollectState.COLLECTING
        logger.info("Start collect for %s at %d", key, self.begin)

    def fire_on_stop_collect(self, key: QueryKey) -> None:
        if key != self._key:
            logger.debug("ignoring stop for %s (chart is %s)", key, self._key)
            return
        with self._lock:
            if self._status != CollectState.COLLECTING:
                logger.warning("stop for %s without a start; ignored", key)
                return
            self.end = self._state.get_last_timestamp(key)
            self._status = CollectState.STOPPED
            window = TimeWindow(self.begin, self.end)
        logger.info("Stop collect for %s at %d", key, self.end)

        try:
            self._pipeline.load_data(window)
        except Exception as e:
            self.last_error = e
            logger.exception("reload after stop failed for %s", key)

    def fire_on_show_history(self, key: QueryKey | None, column: ColumnProfile | None,
                             begin: int, end: int) -> None:
        logger.info("show history %s %s [%d, %d)",
                    key, column.col_name if column is not None else None, begin, end)

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
