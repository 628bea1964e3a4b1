"""Test the in-memory store, bucket queries and the on-disk sample log.

    python3 tests/test_storage.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import struct
import tempfile

import numpy as np

from stackchart.schema import (
    ColumnProfile, DataType, Profile, StorageType, TimeWindow,
)
from stackchart.storage import (
    FILE_HEADER_FMT, MAGIC, VERSION, LocalStore, LogReader, LogWriter,
    Record, build_block,
)

HOST = ColumnProfile(0, "host", DataType.STRING, StorageType.ENUM)
LATENCY = ColumnProfile(1, "latency_ms", DataType.FLOAT64, StorageType.RAW)
UNTYPED = ColumnProfile(2, "note", DataType.STRING, None)
PROFILE = Profile("test", [HOST, LATENCY, UNTYPED])


def _tmp_path() -> str:
    fd, path = tempfile.mkstemp(suffix=".schl")
    os.close(fd)
    return path


def test_query_dense_buckets():
    print("test_query_dense_buckets...", end="")

    store = LocalStore(PROFILE)
    # Out of order on purpose
    store.append(HOST, 7600, "b")
    store.append(HOST, 100, "a")
    store.append(HOST, 2400, "a")
    store.append(HOST, 2500, "b")

    buckets = store.query(HOST, TimeWindow(0, 9000), 2500.0)
    assert [b.key for b in buckets] == [0, 2500, 5000, 7500]
    assert [b.tail for b in buckets] == [2500, 5000, 7500, 9000]
    assert [len(b.samples) for b in buckets] == [2, 1, 0, 1]
    assert buckets[2].is_empty
    np.testing.assert_array_equal(buckets[0].samples.timestamps, [100, 2400])
    assert list(buckets[1].samples.series) == ["b"]

    assert store.query(HOST, TimeWindow(5000, 5000), 2500.0) == []
    assert store.query(HOST, TimeWindow(6000, 5000), 2500.0) == []

    print(" OK")


def test_samples_half_open():
    print("test_samples_half_open...", end="")

    store = LocalStore(PROFILE)
    store.extend(LATENCY, [(1000, "a", 1.5), (2000, "a", 2.5), (3000, "a", 3.5)])

    batch = store.samples(LATENCY, TimeWindow(1000, 3000))
    np.testing.assert_array_equal(batch.timestamps, [1000, 2000])
    np.testing.assert_array_equal(batch.values, [1.5, 2.5])
    assert store.last_timestamp(LATENCY) == 3000
    assert store.last_timestamp(HOST) is None

    print(" OK")


def test_query_errors():
    print("test_query_errors...", end="")

    store = LocalStore(Profile("small", [HOST]))
    try:
        store.query(HOST, TimeWindow(0, 1000), 0.4)
        assert False, "sub-millisecond bucket should be rejected"
    except ValueError:
        pass

    try:
        store.append(LATENCY, 0, "a")
        assert False, "unregistered column should be rejected"
    except KeyError as e:
        assert "latency_ms" in str(e)

    print(" OK")


def test_save_load_roundtrip():
    print("test_save_load_roundtrip...", end="")

    store = LocalStore(PROFILE)
    for i in range(5000):
        store.append(HOST, i * 10, f"h{i % 3}")
        store.append(LATENCY, i * 10, f"h{i % 3}", float(i) / 4)

    path = _tmp_path()
    try:
        assert store.save(path) == 10_000

        loaded = LocalStore.load(path)
        assert loaded.profile.name == "test"
        assert [c.col_name for c in loaded.profile.columns] == ["host", "latency_ms", "note"]
        assert loaded.profile.column("note").storage is None
        assert loaded.profile.column("host").storage == StorageType.ENUM

        a = store.samples(LATENCY, TimeWindow(0, 50_000))
        b = loaded.samples(loaded.profile.column("latency_ms"), TimeWindow(0, 50_000))
        np.testing.assert_array_equal(a.timestamps, b.timestamps)
        np.testing.assert_array_equal(a.values, b.values)
        assert list(a.series) == list(b.series)

        with LogReader(path) as reader:
            assert reader.index is not None
            # 10000 records at 4096 per block
            assert len(reader.index) == 3
    finally:
        os.unlink(path)

    print(" OK")


def test_reader_time_range_uses_index():
    print("test_reader_time_range_uses_index...", end="")

    path = _tmp_path()
    try:
        with LogWriter(path, PROFILE) as w:
            w.write_records([Record(0, ts, "a", 1.0) for ts in range(0, 100)])
            w.write_records([Record(1, ts, "b", 2.0) for ts in range(100, 200)])

        with LogReader(path) as reader:
            assert len(reader.index) == 2
            assert reader.index[1].ts_min == 100
            recs = list(reader.records(150, 160))
            assert [r.timestamp for r in recs] == list(range(150, 161))
            assert all(r.series == "b" and r.value == 2.0 for r in recs)

            only_host = list(reader.records(col_ids={0}))
            assert len(only_host) == 100
    finally:
        os.unlink(path)

    print(" OK")


def test_reader_without_footer():
    print("test_reader_without_footer...", end="")

    path = _tmp_path()
    try:
        blob = PROFILE.to_bytes()
        with open(path, "wb") as f:
            f.write(struct.pack(FILE_HEADER_FMT, MAGIC, VERSION, len(blob)))
            f.write(blob)
            f.write(build_block([Record(0, 10, "x", 1.0), Record(0, 20, "y", 1.0)]))
            f.write(build_block([Record(1, 30, "x", 9.5)]))

        with LogReader(path) as reader:
            assert reader.index is None
            recs = list(reader.records())
        assert [(r.col_id, r.timestamp, r.series, r.value) for r in recs] == [
            (0, 10, "x", 1.0), (0, 20, "y", 1.0), (1, 30, "x", 9.5),
        ]
    finally:
        os.unlink(path)

    print(" OK")


def test_reader_rejects_bad_magic():
    print("test_reader_rejects_bad_magic...", end="")

    path = _tmp_path()
    try:
        with open(path, "wb") as f:
            f.write(struct.pack(FILE_HEADER_FMT, b"NOPE", VERSION, 0))
        reader = LogReader(path)
        try:
            reader.open()
            assert False, "bad magic should be rejected"
        except ValueError as e:
            assert "magic" in str(e)
        finally:
            reader.close()
    finally:
        os.unlink(path)

    print(" OK")


if __name__ == "__main__":
    print("stackchart storage tests")
    print("========================\n")

    test_query_dense_buckets()
    test_samples_half_open()
    test_query_errors()
    test_save_load_roundtrip()
    test_reader_time_range_uses_index()
    test_reader_without_footer()
    test_reader_rejects_bad_magic()

    print("\nAll storage tests passed.")
