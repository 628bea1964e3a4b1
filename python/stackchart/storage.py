"""Columnar sample store and on-disk sample log with footer index.

The chart pipeline only sees the :class:`StorageAdapter` contract;
:class:`LocalStore` is the in-process implementation used by the CLI,
the viewer and the tests.

File format:
  [magic: "SCHL" 4 bytes]
  [version: uint16 LE]
  [profile_len: uint32 LE]
  [profile blob]
  [block 0]
  [block 1]
  ...
  [block N]
  [index_entry × (N+1)]        28 bytes each, fixed stride
  [index_footer]                16 bytes at EOF

Each block is:
  [record_count u32][payload_size u32][record × record_count]
  record = [col_id u16][timestamp u64][value f64][label_len u16][label]

The footer index enables skipping blocks outside a time range.  If the
footer is missing (crash before close), the reader falls back to
sequential scanning.
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, NamedTuple, Protocol

import numpy as np

from .ranges import round_half_up
from .schema import ColumnProfile, Profile, TimeWindow

MAGIC = b"SCHL"
VERSION = 1
FILE_HEADER_FMT = "<4sHI"
FILE_HEADER_SIZE = struct.calcsize(FILE_HEADER_FMT)  # 10

BLOCK_HEADER_FMT = "<II"
BLOCK_HEADER_SIZE = struct.calcsize(BLOCK_HEADER_FMT)  # 8
RECORD_FMT = "<HQdH"
RECORD_SIZE = struct.calcsize(RECORD_FMT)  # 20

INDEX_MAGIC = 0x494C4353  # "SCLI"
INDEX_ENTRY_FMT = "<QQQI"
INDEX_ENTRY_SIZE = struct.calcsize(INDEX_ENTRY_FMT)  # 28
INDEX_FOOTER_FMT = "<QII"
INDEX_FOOTER_SIZE = struct.calcsize(INDEX_FOOTER_FMT)  # 16

_BLOCK_RECORDS = 4096


# ---------------------------------------------------------------------------
# Data carriers
# ---------------------------------------------------------------------------

@dataclass
class SampleBatch:
    """Raw rows for one column, sorted by timestamp."""

    timestamps: np.ndarray  # int64, epoch ms
    series: np.ndarray  # object, series label per sample
    values: np.ndarray  # float64

    @classmethod
    def empty(cls) -> SampleBatch:
        return cls(np.array([], dtype=np.int64),
                   np.array([], dtype=object),
                   np.array([], dtype=np.float64))

    def __len__(self) -> int:
        return len(self.timestamps)

    def slice(self, lo: int, hi: int) -> SampleBatch:
        return SampleBatch(self.timestamps[lo:hi], self.series[lo:hi],
                           self.values[lo:hi])


@dataclass
class Bucket:
    """One fetched time bucket ``[key, tail)`` with its raw samples."""

    key: int
    tail: int
    samples: SampleBatch

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0


@dataclass
class StackedColumn:
    """Aggregated bucket: series name -> value."""

    key: int
    tail: int
    values: dict[str, float] = field(default_factory=dict)


class Record(NamedTuple):
    col_id: int
    timestamp: int
    series: str
    value: float


class StorageAdapter(Protocol):
    """What the chart pipeline requires from a time-series store.

    Implementations must tolerate concurrent ``query`` calls from
    independent charts.
    """

    def query(self, column: ColumnProfile, window: TimeWindow,
              bucket_width: float) -> list[Bucket]: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class _ColumnData:
    def __init__(self) -> None:
        self.ts: list[int] = []
        self.series: list[str] = []
        self.values: list[float] = []
        self._cache: SampleBatch | None = None

    def append(self, ts: int, series: str, value: float) -> None:
        self.ts.append(ts)
        self.series.append(series)
        self.values.append(value)
        self._cache = None

    def batch(self) -> SampleBatch:
        if self._cache is None:
            ts = np.asarray(self.ts, dtype=np.int64)
            order = np.argsort(ts, kind="stable")
            self._cache = SampleBatch(
                ts[order],
                np.asarray(self.series, dtype=object)[order],
                np.asarray(self.values, dtype=np.float64)[order],
            )
        return self._cache


class LocalStore:
    """Thread-safe in-memory columnar store implementing StorageAdapter."""

    def __init__(self, profile: Profile | None = None) -> None:
        self._lock = threading.RLock()
        self._profile = Profile("local")
        self._columns: dict[int, _ColumnData] = {}
        if profile is not None:
            self.register(profile)

    @property
    def profile(self) -> Profile:
        return self._profile

    def register(self, profile: Profile) -> None:
        with self._lock:
            if not self._columns:
                self._profile = Profile(profile.name)
            for col in profile.columns:
                if col.col_id not in self._columns:
                    self._profile.columns.append(col)
                    self._columns[col.col_id] = _ColumnData()

    def _data(self, column: ColumnProfile) -> _ColumnData:
        try:
            return self._columns[column.col_id]
        except KeyError:
            raise KeyError(f"Column not registered: {column.col_name!r}") from None

    def append(self, column: ColumnProfile, ts: int, series: str,
               value: float = 1.0) -> None:
        with self._lock:
            self._data(column).append(int(ts), str(series), float(value))

    def extend(self, column: ColumnProfile,
               rows: Iterable[tuple[int, str, float]]) -> None:
        with self._lock:
            data = self._data(column)
            for ts, series, value in rows:
                data.append(int(ts), str(series), float(value))

    def last_timestamp(self, column: ColumnProfile) -> int | None:
        with self._lock:
            batch = self._data(column).batch()
        if len(batch) == 0:
            return None
        return int(batch.timestamps[-1])

    def samples(self, column: ColumnProfile, window: TimeWindow) -> SampleBatch:
        """Raw rows with ``window.begin <= ts < window.end``."""
        with self._lock:
            batch = self._data(column).batch()
        if window.is_empty or len(batch) == 0:
            return SampleBatch.empty()
        lo = int(np.searchsorted(batch.timestamps, window.begin, side="left"))
        hi = int(np.searchsorted(batch.timestamps, window.end, side="left"))
        return batch.slice(lo, hi)

    def query(self, column: ColumnProfile, window: TimeWindow,
              bucket_width: float) -> list[Bucket]:
        """One bucket per stride step of *window*, empty buckets included."""
        stride = round_half_up(bucket_width)
        if stride < 1:
            raise ValueError(f"bucket width too small: {bucket_width}")
        if window.is_empty:
            return []

        batch = self.samples(column, window)
        keys = np.arange(window.begin, window.end, stride, dtype=np.int64)
        bounds = np.searchsorted(batch.timestamps, keys, side="left")
        bounds = np.append(bounds, len(batch))

        buckets: list[Bucket] = []
        for i, key in enumerate(keys):
            key = int(key)
            buckets.append(Bucket(key, min(key + stride, window.end),
                                  batch.slice(int(bounds[i]), int(bounds[i + 1]))))
        return buckets

    def records(self) -> Iterator[Record]:
        with self._lock:
            snapshot = [(cid, data.batch()) for cid, data in self._columns.items()]
        for cid, batch in snapshot:
            for ts, series, value in zip(batch.timestamps, batch.series, batch.values):
                yield Record(cid, int(ts), str(series), float(value))

    def save(self, path: str | Path) -> int:
        """Write every sample to a log file.  Return the record count."""
        count = 0
        with LogWriter(path, self._profile) as w:
            block: list[Record] = []
            for rec in self.records():
                block.append(rec)
                if len(block) >= _BLOCK_RECORDS:
                    w.write_records(block)
                    count += len(block)
                    block = []
            if block:
                w.write_records(block)
                count += len(block)
        return count

    @classmethod
    def load(cls, path: str | Path) -> LocalStore:
        with LogReader(path) as reader:
            store = cls(reader.profile)
            with store._lock:
                for rec in reader.records():
                    store._columns[rec.col_id].append(rec.timestamp, rec.series, rec.value)
        return store


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass
class IndexEntry:
    offset: int
    ts_min: int
    ts_max: int
    record_count: int


def build_block(records: list[Record]) -> bytes:
    """Build a block from a list of records."""
    parts: list[bytes] = []
    for rec in records:
        label = rec.series.encode("utf-8")
        parts.append(struct.pack(RECORD_FMT, rec.col_id, rec.timestamp,
                                 rec.value, len(label)))
        parts.append(label)
    payload = b"".join(parts)
    return struct.pack(BLOCK_HEADER_FMT, len(records), len(payload)) + payload


def _parse_block(payload: bytes, record_count: int) -> list[Record]:
    records: list[Record] = []
    pos = 0
    for _ in range(record_count):
        col_id, ts, value, label_len = struct.unpack_from(RECORD_FMT, payload, pos)
        pos += RECORD_SIZE
        label = payload[pos:pos + label_len].decode("utf-8")
        pos += label_len
        records.append(Record(col_id, ts, label, value))
    return records


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

class LogWriter:
    """Writes sample blocks to a log file.  Appends footer index on close."""

    def __init__(self, path: str | Path, profile: Profile):
        self._f: BinaryIO = open(path, "wb")
        self._profile = profile
        self._index: list[IndexEntry] = []

        blob = profile.to_bytes()
        self._f.write(struct.pack(FILE_HEADER_FMT, MAGIC, VERSION, len(blob)))
        self._f.write(blob)

    def write_records(self, records: list[Record]) -> None:
        """Write a list of records as a single block."""
        if not records:
            return
        offset = self._f.tell()
        ts_min = min(r.timestamp for r in records)
        ts_max = max(r.timestamp for r in records)
        self._f.write(build_block(records))
        self._index.append(IndexEntry(offset, ts_min, ts_max, len(records)))

    def flush(self) -> None:
        self._f.flush()

    def close(self) -> None:
        self._write_index()
        self._f.close()

    def _write_index(self) -> None:
        index_offset = self._f.tell()
        for ie in self._index:
            self._f.write(struct.pack(
                INDEX_ENTRY_FMT,
                ie.offset, ie.ts_min, ie.ts_max, ie.record_count,
            ))
        self._f.write(struct.pack(
            INDEX_FOOTER_FMT,
            index_offset, len(self._index), INDEX_MAGIC,
        ))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

class LogReader:
    """Reads a sample log.  Uses footer index for fast seeking when available."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._f: BinaryIO | None = None
        self._profile: Profile | None = None
        self._index: list[IndexEntry] | None = None
        self._data_start: int = 0
        self._data_end: int | None = None  # file offset where blocks end (index starts)

    def open(self) -> Profile:
        """Open the file, parse profile and index."""
        self._f = open(self._path, "rb")

        header = self._f.read(FILE_HEADER_SIZE)
        if len(header) < FILE_HEADER_SIZE:
            raise ValueError("Truncated file header")

        magic, version, profile_len = struct.unpack(FILE_HEADER_FMT, header)
        if magic != MAGIC:
            raise ValueError(f"Bad magic: {magic!r}")
        if version != VERSION:
            raise ValueError(f"Unsupported version: {version}")

        blob = self._f.read(profile_len)
        if len(blob) < profile_len:
            raise ValueError("Truncated profile")

        self._profile = Profile.from_bytes(blob)
        self._data_start = self._f.tell()
        self._index = self._try_load_index()
        return self._profile

    @property
    def profile(self) -> Profile:
        if self._profile is None:
            raise RuntimeError("Call open() first")
        return self._profile

    @property
    def index(self) -> list[IndexEntry] | None:
        return self._index

    def records(self, ts_min: int | None = None, ts_max: int | None = None,
                col_ids: set[int] | None = None) -> Iterator[Record]:
        """Iterate over records, optionally filtered by time range and column ids."""
        if self._f is None:
            self.open()
        assert self._f is not None

        if self._index is not None:
            blocks = self._blocks_indexed(ts_min, ts_max)
        else:
            self._f.seek(self._data_start)
            blocks = self._blocks_sequential()

        for block in blocks:
            for rec in block:
                if col_ids is not None and rec.col_id not in col_ids:
                    continue
                if ts_min is not None and rec.timestamp < ts_min:
                    continue
                if ts_max is not None and rec.timestamp > ts_max:
                    continue
                yield rec

    def _read_block(self) -> list[Record] | None:
        assert self._f is not None
        hdr = self._f.read(BLOCK_HEADER_SIZE)
        if len(hdr) < BLOCK_HEADER_SIZE:
            return None
        record_count, payload_size = struct.unpack(BLOCK_HEADER_FMT, hdr)
        payload = self._f.read(payload_size)
        if len(payload) < payload_size:
            return None
        return _parse_block(payload, record_count)

    def _blocks_sequential(self) -> Iterator[list[Record]]:
        """Read blocks sequentially until end of data section."""
        assert self._f is not None
        while True:
            if self._data_end is not None and self._f.tell() >= self._data_end:
                break
            block = self._read_block()
            if block is None:
                break
            yield block

    def _blocks_indexed(self, ts_min: int | None,
                        ts_max: int | None) -> Iterator[list[Record]]:
        assert self._f is not None
        assert self._index is not None
        for ie in self._index:
            if ts_max is not None and ie.ts_min > ts_max:
                continue
            if ts_min is not None and ie.ts_max < ts_min:
                continue
            self._f.seek(ie.offset)
            block = self._read_block()
            if block is not None:
                yield block

    def _try_load_index(self) -> list[IndexEntry] | None:
        """Read the footer index if present.  Returns None if absent."""
        assert self._f is not None

        self._f.seek(0, 2)  # EOF
        file_size = self._f.tell()
        if file_size < self._data_start + INDEX_FOOTER_SIZE:
            return None

        self._f.seek(file_size - INDEX_FOOTER_SIZE)
        footer = self._f.read(INDEX_FOOTER_SIZE)
        index_offset, index_count, magic = struct.unpack(INDEX_FOOTER_FMT, footer)
        if magic != INDEX_MAGIC:
            return None

        expected = index_count * INDEX_ENTRY_SIZE + INDEX_FOOTER_SIZE
        if index_offset + expected != file_size:
            return None

        self._f.seek(index_offset)
        index: list[IndexEntry] = []
        for _ in range(index_count):
            data = self._f.read(INDEX_ENTRY_SIZE)
            if len(data) < INDEX_ENTRY_SIZE:
                return None
            index.append(IndexEntry(*struct.unpack(INDEX_ENTRY_FMT, data)))

        self._data_end = index_offset
        return index

    def close(self) -> None:
        if self._f:
            self._f.close()
            self._f = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()
