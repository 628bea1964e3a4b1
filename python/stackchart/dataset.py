"""Table dataset behind a stacked chart.

The dataset is a ``timestamp -> series -> value`` table.  Each cell holds
exactly one value: a real aggregate or a synthetic zero written by gap
filling.  Renderers read immutable snapshots; writers commit whole
frames under one lock so a reader never sees a half-applied load.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from .schema import PlotPoint


class RenderSurface(Protocol):
    """Anything that accepts plot points one by one."""

    def add_series_value(self, timestamp: int, value: float, series: str) -> None: ...


class AxisGranularity(enum.Enum):
    TIME = "time"  # hh:mm:ss ticks
    DAY = "day"    # date ticks, for week/month history


def _check_series(series: object) -> str:
    if not isinstance(series, str) or not series:
        raise ValueError(f"invalid series name: {series!r}")
    return series


class Frame:
    """Cells produced by one load, committed to a dataset in one step.

    Real values overwrite; synthetic values (``add_series_value``, used
    by gap filling) only fill cells that are still empty.
    """

    def __init__(self) -> None:
        self.real: dict[int, dict[str, float]] = {}
        self.fill: dict[int, dict[str, float]] = {}

    def put(self, timestamp: int, series: str, value: float) -> None:
        _check_series(series)
        self.real.setdefault(int(timestamp), {})[series] = float(value)
        row = self.fill.get(int(timestamp))
        if row is not None:
            row.pop(series, None)

    def add_series_value(self, timestamp: int, value: float, series: str) -> None:
        _check_series(series)
        ts = int(timestamp)
        if series in self.real.get(ts, ()):
            return
        self.fill.setdefault(ts, {}).setdefault(series, float(value))

    def timestamps(self) -> list[int]:
        return sorted(set(self.real) | set(self.fill))

    def __len__(self) -> int:
        return sum(len(r) for r in self.real.values()) + sum(len(r) for r in self.fill.values())

    def points(self) -> list[PlotPoint]:
        out: list[PlotPoint] = []
        for ts in self.timestamps():
            for series, value in self.real.get(ts, {}).items():
                out.append(PlotPoint(ts, series, value))
            for series, value in self.fill.get(ts, {}).items():
                out.append(PlotPoint(ts, series, value))
        return out


@dataclass(frozen=True)
class DatasetSnapshot:
    timestamps: np.ndarray  # int64, sorted
    series: tuple[str, ...]
    values: np.ndarray  # float64, shape (len(series), len(timestamps))

    def stacked(self) -> np.ndarray:
        """Cumulative layers: row *i* is the top edge of series *i*."""
        if self.values.size == 0:
            return self.values.copy()
        return np.cumsum(self.values, axis=0)


class ChartDataset:
    """Thread-safe table dataset implementing :class:`RenderSurface`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rows: dict[int, dict[str, float]] = {}
        self._series: dict[str, None] = {}
        self._synthetic: set[tuple[int, str]] = set()
        self._version = 0
        self.axis_granularity = AxisGranularity.TIME

    # -- writes --

    def add_series_value(self, timestamp: int, value: float, series: str) -> None:
        _check_series(series)
        with self._lock:
            self._set(int(timestamp), series, float(value), synthetic=False)
            self._square({int(timestamp)})
            self._version += 1

    def apply(self, frame: Frame, replace: bool = False) -> None:
        """Commit *frame* atomically; ``replace`` drops existing rows first."""
        with self._lock:
            if replace:
                self._rows.clear()
                self._series.clear()
                self._synthetic.clear()
            for ts, row in frame.real.items():
                for series, value in row.items():
                    self._set(ts, series, value, synthetic=False)
            for ts, row in frame.fill.items():
                for series, value in row.items():
                    current = self._rows.get(ts, {})
                    if series in current and (ts, series) not in self._synthetic:
                        continue
                    self._set(ts, series, value, synthetic=True)
            self._square(set(frame.timestamps()))
            self._version += 1

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
            self._series.clear()
            self._synthetic.clear()
            self._version += 1

    def _set(self, ts: int, series: str, value: float, synthetic: bool) -> None:
        if series not in self._series:
            self._series[series] = None
            # New series: zero at every existing timestamp
            for other_ts, row in self._rows.items():
                if other_ts != ts and series not in row:
                    row[series] = 0.0
                    self._synthetic.add((other_ts, series))
        self._rows.setdefault(ts, {})[series] = value
        if synthetic:
            self._synthetic.add((ts, series))
        else:
            self._synthetic.discard((ts, series))

    def _square(self, timestamps: set[int]) -> None:
        for ts in timestamps:
            row = self._rows[ts]
            for series in self._series:
                if series not in row:
                    row[series] = 0.0
                    self._synthetic.add((ts, series))

    # -- reads --

    @property
    def version(self) -> int:
        return self._version

    @property
    def series(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._series)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def value(self, timestamp: int, series: str) -> float | None:
        with self._lock:
            return self._rows.get(int(timestamp), {}).get(series)

    def is_synthetic(self, timestamp: int, series: str) -> bool:
        with self._lock:
            return (int(timestamp), series) in self._synthetic

    def points(self) -> list[PlotPoint]:
        with self._lock:
            return [PlotPoint(ts, s, self._rows[ts][s])
                    for ts in sorted(self._rows)
                    for s in self._series if s in self._rows[ts]]

    def snapshot(self) -> DatasetSnapshot:
        with self._lock:
            timestamps = sorted(self._rows)
            series = tuple(self._series)
            values = np.zeros((len(series), len(timestamps)), dtype=np.float64)
            for j, ts in enumerate(timestamps):
                row = self._rows[ts]
                for i, s in enumerate(series):
                    values[i, j] = row.get(s, 0.0)
        return DatasetSnapshot(np.asarray(timestamps, dtype=np.int64), series, values)

    def stacked(self) -> tuple[np.ndarray, tuple[str, ...], np.ndarray]:
        """Return ``(x, series, layers)`` ready for a stacked-area renderer."""
        snap = self.snapshot()
        return snap.timestamps, snap.series, snap.stacked()
