"""Synthetic collection task for demos and the live viewer.

Plays the role of the external collector: appends samples to a store,
advances the task's last timestamp and announces collection cycles on
the event bus.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

import numpy as np

from .events import EventBus
from .pipeline import now_ms
from .schema import ColumnProfile, DataType, Profile, QueryKey, StorageType
from .state import QueryState
from .storage import LocalStore

logger = logging.getLogger(__name__)

DEFAULT_LABELS = ("host-a", "host-b", "host-c", "host-d")


def demo_profile() -> Profile:
    return Profile("demo", [
        ColumnProfile(0, "host", DataType.STRING, StorageType.ENUM),
        ColumnProfile(1, "latency_ms", DataType.FLOAT64, StorageType.RAW),
    ])


def synthesize(store: LocalStore, begin: int, end: int, step_ms: int = 1000,
               labels: Sequence[str] = DEFAULT_LABELS, seed: int = 0) -> int:
    """Fill ``[begin, end)`` with one sample per step on every demo column."""
    rng = np.random.default_rng(seed)
    profile = demo_profile()
    host, latency = profile.columns
    count = 0
    weights = np.linspace(1.0, 2.0, len(labels))
    weights /= weights.sum()
    for ts in range(begin, end, step_ms):
        label = labels[int(rng.choice(len(labels), p=weights))]
        store.append(host, ts, label, 1.0)
        phase = 2 * np.pi * (ts % 60_000) / 60_000
        store.append(latency, ts, label, float(20 + 10 * np.sin(phase) + rng.normal(0, 2)))
        count += 1
    return count


class DemoCollector:
    """Background thread producing collection cycles of ``cycle_ms``."""

    def __init__(self, store: LocalStore, bus: EventBus, state: QueryState,
                 key: QueryKey, *, cycle_ms: int = 5000, step_ms: int = 250,
                 clock: Callable[[], int] | None = None) -> None:
        self._store = store
        self._bus = bus
        self._state = state
        self._key = key
        self._cycle_ms = cycle_ms
        self._step_ms = step_ms
        self._clock = clock or now_ms
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._seed = 0
        store.register(demo_profile())

    def run_cycle(self) -> int:
        """Collect one cycle synchronously.  Return samples written."""
        begin = self._state.get_last_timestamp(self._key) or self._clock() - self._cycle_ms
        end = begin + self._cycle_ms
        self._bus.fire_start_collect(self._key)
        self._seed += 1
        n = synthesize(self._store, begin, end, self._step_ms, seed=self._seed)
        self._state.set_last_timestamp(self._key, end)
        self._bus.fire_stop_collect(self._key)
        logger.debug("collected %d samples for %s", n, self._key)
        return n

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="demo-collector",
                                        daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("demo collection cycle failed")
            self._stop.wait(self._cycle_ms / 1000)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
