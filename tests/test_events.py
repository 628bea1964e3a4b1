"""Test the collection lifecycle event bus.

    python3 tests/test_events.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import threading

from stackchart.events import EventBus
from stackchart.schema import ColumnProfile, QueryKey
from stackchart.state import QueryState

KEY = QueryKey(1, 2, 3)


class Listener:
    def __init__(self, fail=False):
        self.calls = []
        self.threads = set()
        self._fail = fail

    def fire_on_start_collect(self, key):
        self._record("start", key)

    def fire_on_stop_collect(self, key):
        self._record("stop", key)

    def fire_on_show_history(self, key, column, begin, end):
        self._record("history", key, column.col_name if column else None, begin, end)

    def _record(self, *call):
        self.threads.add(threading.current_thread().name)
        self.calls.append(call)
        if self._fail:
            raise RuntimeError("listener blew up")


def test_delivery_by_key():
    print("test_delivery_by_key...", end="")

    bus = EventBus()
    mine, other = Listener(), Listener()
    bus.add_collect_start_stop_listener(KEY, mine)
    bus.add_collect_start_stop_listener(QueryKey(9, 9), other)

    bus.fire_start_collect(KEY)
    bus.fire_stop_collect(KEY)
    assert mine.calls == [("start", KEY), ("stop", KEY)]
    assert other.calls == []

    print(" OK")


def test_history_broadcast():
    print("test_history_broadcast...", end="")

    bus = EventBus()
    a, b = Listener(), Listener()
    bus.add_show_local_history_listener(a)
    bus.add_show_local_history_listener(b)
    bus.fire_show_history(KEY, ColumnProfile(4, "latency_ms"), 10, 20)
    bus.fire_show_history()

    expected = [("history", KEY, "latency_ms", 10, 20), ("history", None, None, 0, 0)]
    assert a.calls == expected
    assert b.calls == expected

    print(" OK")


def test_failing_listener_isolated():
    print("test_failing_listener_isolated...", end="")

    bus = EventBus()
    bad, good = Listener(fail=True), Listener()
    bus.add_collect_start_stop_listener(KEY, bad)
    bus.add_collect_start_stop_listener(KEY, good)

    bus.fire_start_collect(KEY)
    assert bad.calls == [("start", KEY)]
    assert good.calls == [("start", KEY)]

    print(" OK")


def test_subscription_release_idempotent():
    print("test_subscription_release_idempotent...", end="")

    bus = EventBus()
    listener = Listener()
    sub = bus.add_collect_start_stop_listener(KEY, listener)
    assert sub.active
    assert "active" in repr(sub)
    assert bus.listener_count(KEY) == 1

    sub.release()
    sub.release()
    assert not sub.active
    assert "released" in repr(sub)
    assert bus.listener_count(KEY) == 0

    bus.fire_start_collect(KEY)
    assert listener.calls == []

    with bus.add_show_local_history_listener(listener):
        assert bus.listener_count() == 1
    assert bus.listener_count() == 0

    print(" OK")


def test_async_delivery_is_serial():
    print("test_async_delivery_is_serial...", end="")

    bus = EventBus(asynchronous=True)
    listener = Listener()
    bus.add_collect_start_stop_listener(KEY, listener)
    for _ in range(50):
        bus.fire_start_collect(KEY)
        bus.fire_stop_collect(KEY)
    bus.flush(timeout=5)

    assert listener.calls == [("start", KEY), ("stop", KEY)] * 50
    assert len(listener.threads) == 1
    assert next(iter(listener.threads)).startswith("stackchart-events")
    bus.close()

    print(" OK")


def test_query_state():
    print("test_query_state...", end="")

    state = QueryState()
    assert state.get_last_timestamp(KEY) == 0
    state.set_last_timestamp(KEY, 1234)
    assert state.get_last_timestamp(KEY) == 1234
    assert state.get_last_timestamp(QueryKey(1, 2)) == 0
    state.clear(KEY)
    assert state.get_last_timestamp(KEY) == 0
    assert str(KEY) == "profile=1/task=2/query=3"

    print(" OK")


if __name__ == "__main__":
    print("stackchart event bus tests")
    print("==========================\n")

    test_delivery_by_key()
    test_history_broadcast()
    test_failing_listener_isolated()
    test_subscription_release_idempotent()
    test_async_delivery_is_serial()
    test_query_state()

    print("\nAll event bus tests passed.")
