"""Per-task collection state shared between the collector and the charts."""

from __future__ import annotations

import threading

from .schema import QueryKey


class QueryState:
    """Last collected timestamp per running task."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: dict[QueryKey, int] = {}

    def set_last_timestamp(self, key: QueryKey, ts: int) -> None:
        with self._lock:
            self._last[key] = int(ts)

    def get_last_timestamp(self, key: QueryKey) -> int:
        """Return 0 when nothing has been collected for *key* yet."""
        with self._lock:
            return self._last.get(key, 0)

    def clear(self, key: QueryKey) -> None:
        with self._lock:
            self._last.pop(key, None)
