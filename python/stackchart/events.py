"""Collection lifecycle event bus.

Listeners register for ``collect start/stop`` signals of one QueryKey, or
for ``show history`` signals, and get a :class:`Subscription` handle back.
Releasing the handle is the only way to unregister.

Delivery is serial: inline in the publishing thread, or on a single
worker thread when the bus is asynchronous.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Protocol

from .schema import ColumnProfile, QueryKey

logger = logging.getLogger(__name__)


class CollectStartStopListener(Protocol):
    def fire_on_start_collect(self, key: QueryKey) -> None: ...
    def fire_on_stop_collect(self, key: QueryKey) -> None: ...


class ShowLocalHistoryListener(Protocol):
    def fire_on_show_history(self, key: QueryKey | None, column: ColumnProfile | None,
                             begin: int, end: int) -> None: ...


class Subscription:
    """Handle for one registration.  ``release()`` is idempotent."""

    def __init__(self, release: Callable[[], None], description: str) -> None:
        self._release = release
        self._description = description
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._release()
        logger.debug("released %s", self._description)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    def __repr__(self) -> str:
        state = "active" if self._active else "released"
        return f"<Subscription {self._description} {state}>"


class EventBus:
    """Shared by every chart; safe for concurrent registration."""

    def __init__(self, asynchronous: bool = False) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._collect: dict[QueryKey, dict[int, CollectStartStopListener]] = {}
        self._history: dict[int, ShowLocalHistoryListener] = {}
        self._executor: ThreadPoolExecutor | None = None
        if asynchronous:
            self._executor = ThreadPoolExecutor(max_workers=1,
                                                thread_name_prefix="stackchart-events")

    # -- registration --

    def add_collect_start_stop_listener(self, key: QueryKey,
                                        listener: CollectStartStopListener) -> Subscription:
        token = next(self._ids)
        with self._lock:
            self._collect.setdefault(key, {})[token] = listener

        def _remove() -> None:
            with self._lock:
                listeners = self._collect.get(key)
                if listeners is not None:
                    listeners.pop(token, None)
                    if not listeners:
                        del self._collect[key]

        return Subscription(_remove, f"collect[{key}]#{token}")

    def add_show_local_history_listener(self, listener: ShowLocalHistoryListener) -> Subscription:
        token = next(self._ids)
        with self._lock:
            self._history[token] = listener

        def _remove() -> None:
            with self._lock:
                self._history.pop(token, None)

        return Subscription(_remove, f"history#{token}")

    def listener_count(self, key: QueryKey | None = None) -> int:
        with self._lock:
            if key is None:
                return len(self._history)
            return len(self._collect.get(key, {}))

    # -- publishing --

    def fire_start_collect(self, key: QueryKey) -> None:
        self._publish(self._collect_listeners(key), "fire_on_start_collect", key)

    def fire_stop_collect(self, key: QueryKey) -> None:
        self._publish(self._collect_listeners(key), "fire_on_stop_collect", key)

    def fire_show_history(self, key: QueryKey | None = None,
                          column: ColumnProfile | None = None,
                          begin: int = 0, end: int = 0) -> None:
        with self._lock:
            listeners = list(self._history.values())
        self._publish(listeners, "fire_on_show_history", key, column, begin, end)

    def _collect_listeners(self, key: QueryKey) -> list[CollectStartStopListener]:
        with self._lock:
            return list(self._collect.get(key, {}).values())

    def _publish(self, listeners: list[Any], method: str, *args: Any) -> None:
        if self._executor is not None:
            self._executor.submit(self._deliver, listeners, method, args)
        else:
            self._deliver(listeners, method, args)

    @staticmethod
    def _deliver(listeners: list[Any], method: str, args: tuple) -> None:
        for listener in listeners:
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("listener %r failed in %s", listener, method)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every event published so far has been delivered."""
        if self._executor is not None:
            self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
