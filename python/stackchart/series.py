"""Registry of series names observed by one chart."""

from __future__ import annotations

import threading
from typing import Iterable


class SeriesRegistry:
    """Insertion-ordered, deduplicated set of series names.

    Names are never removed: a series that stops reporting keeps its
    legend slot for the lifetime of the chart.
    """

    def __init__(self) -> None:
        self._names: dict[str, None] = {}
        self._lock = threading.Lock()

    def observe(self, names: Iterable[str]) -> list[str]:
        """Merge *names* in first-seen order.  Return the newly added ones."""
        added: list[str] = []
        with self._lock:
            for name in names:
                if name not in self._names:
                    self._names[name] = None
                    added.append(name)
        return added

    def current_series(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._names)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def __iter__(self):
        return iter(self.current_series())
