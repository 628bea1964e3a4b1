"""Chart data model: column profiles, metrics, query keys and time windows."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import NamedTuple


class StorageType(IntEnum):
    """How the store keeps a column's values."""
    RAW = 0
    ENUM = 1
    HISTOGRAM = 2


class DataType(IntEnum):
    INT64 = 0
    FLOAT64 = 1
    STRING = 2


class MetricFunction(Enum):
    ASIS = "asis"
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"


class ChartType(Enum):
    LINEAR = "linear"
    STACKED = "stacked"


class ProcessType(Enum):
    REAL_TIME = "real_time"
    HISTORY = "history"


_MINUTE_MS = 60_000
_DAY_MS = 24 * 60 * _MINUTE_MS


class RangeRealTime(IntEnum):
    """Real-time display range, in minutes."""
    FIVE_MIN = 5
    TEN_MIN = 10
    THIRTY_MIN = 30
    SIXTY_MIN = 60

    @property
    def millis(self) -> int:
        return int(self) * _MINUTE_MS


class RangeHistory(Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"

    @property
    def millis(self) -> int | None:
        return _HISTORY_MS.get(self)


_HISTORY_MS = {
    RangeHistory.DAY: _DAY_MS,
    RangeHistory.WEEK: 7 * _DAY_MS,
    RangeHistory.MONTH: 30 * _DAY_MS,
}


# Wire format constants for the column table
NAME_MAX = 64
_NO_STORAGE = 0xFF

_PROFILE_HEADER_FMT = f"<{NAME_MAX}sH"
_PROFILE_HEADER_SIZE = struct.calcsize(_PROFILE_HEADER_FMT)  # 66

_COLUMN_WIRE_FMT = f"<H{NAME_MAX}sBB"
_COLUMN_WIRE_SIZE = struct.calcsize(_COLUMN_WIRE_FMT)  # 68


def _unpack_str(raw: bytes) -> str:
    """Decode a null-terminated fixed-size string field."""
    return raw.split(b"\x00", 1)[0].decode("utf-8")


def _pack_str(s: str, size: int) -> bytes:
    """Encode a string into a fixed-size null-padded field."""
    encoded = s.encode("utf-8")[:size - 1]
    return encoded.ljust(size, b"\x00")


@dataclass(frozen=True)
class ColumnProfile:
    col_id: int
    col_name: str
    data_type: DataType = DataType.FLOAT64
    storage: StorageType | None = StorageType.RAW  # None = undefined


@dataclass
class Profile:
    """Ordered column table of one collection profile."""

    name: str
    columns: list[ColumnProfile] = field(default_factory=list)

    def column(self, name: str) -> ColumnProfile:
        for col in self.columns:
            if col.col_name == name:
                return col
        raise KeyError(f"Unknown column: {name!r}")

    def by_id(self, col_id: int) -> ColumnProfile:
        for col in self.columns:
            if col.col_id == col_id:
                return col
        raise KeyError(f"Unknown column id: {col_id}")

    @classmethod
    def from_bytes(cls, data: bytes) -> Profile:
        """Parse a serialised column table."""
        if len(data) < _PROFILE_HEADER_SIZE:
            raise ValueError("Truncated profile header")
        name_raw, count = struct.unpack_from(_PROFILE_HEADER_FMT, data, 0)
        if len(data) < _PROFILE_HEADER_SIZE + count * _COLUMN_WIRE_SIZE:
            raise ValueError("Truncated column table")

        columns: list[ColumnProfile] = []
        pos = _PROFILE_HEADER_SIZE
        for _ in range(count):
            col_id, cname_raw, dtype, storage = struct.unpack_from(
                _COLUMN_WIRE_FMT, data, pos)
            columns.append(ColumnProfile(
                col_id, _unpack_str(cname_raw), DataType(dtype),
                None if storage == _NO_STORAGE else StorageType(storage),
            ))
            pos += _COLUMN_WIRE_SIZE

        return cls(_unpack_str(name_raw), columns)

    def to_bytes(self) -> bytes:
        """Serialise to packed struct wire format."""
        buf = bytearray(struct.pack(_PROFILE_HEADER_FMT,
                                    _pack_str(self.name, NAME_MAX),
                                    len(self.columns)))
        for col in self.columns:
            storage = _NO_STORAGE if col.storage is None else int(col.storage)
            buf.extend(struct.pack(_COLUMN_WIRE_FMT,
                                   col.col_id,
                                   _pack_str(col.col_name, NAME_MAX),
                                   int(col.data_type), storage))
        return bytes(buf)


@dataclass(frozen=True)
class Metric:
    """A logical measured quantity: source column, function and chart type."""

    name: str
    y_axis: ColumnProfile
    function: MetricFunction = MetricFunction.COUNT
    chart_type: ChartType = ChartType.STACKED

    @property
    def is_categorical(self) -> bool:
        return self.chart_type != ChartType.LINEAR


@dataclass(frozen=True)
class QueryKey:
    """Identity of a running collection task."""

    profile_id: int
    task_id: int
    query_id: int = 0

    def __str__(self) -> str:
        return f"profile={self.profile_id}/task={self.task_id}/query={self.query_id}"


@dataclass(frozen=True)
class TimeWindow:
    """``[begin, end)`` in epoch milliseconds; ``begin > end`` is degenerate."""

    begin: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.begin

    @property
    def is_degenerate(self) -> bool:
        return self.begin > self.end

    @property
    def is_empty(self) -> bool:
        return self.begin >= self.end


@dataclass(frozen=True)
class ChartInfo:
    range_realtime: RangeRealTime = RangeRealTime.TEN_MIN
    range_history: RangeHistory = RangeHistory.DAY
    custom_begin: int | None = None
    custom_end: int | None = None
    pull_timeout_s: int = 3

    def realtime_range_ms(self) -> int:
        return self.range_realtime.millis

    def history_window(self, now_ms: int) -> TimeWindow:
        if self.range_history == RangeHistory.CUSTOM:
            if self.custom_begin is None or self.custom_end is None:
                raise ValueError("Custom history range requires custom_begin and custom_end")
            return TimeWindow(self.custom_begin, self.custom_end)
        return TimeWindow(now_ms - self.range_history.millis, now_ms)

    def display_range_ms(self, process: ProcessType, now_ms: int = 0) -> int:
        if process == ProcessType.REAL_TIME:
            return self.realtime_range_ms()
        return self.history_window(now_ms).duration


class PlotPoint(NamedTuple):
    timestamp: int
    series: str
    value: float
