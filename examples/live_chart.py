#!/usr/bin/env python3
"""Chart a synthetic collection task in real time and print the latest column.

    pip install -e .
    python examples/live_chart.py
"""

import logging
import time

from stackchart import (
    ChartInfo, EventBus, Metric, MetricFunction, ProcessType, QueryKey,
    QueryState, RangeRealTime, StackChart,
)
from stackchart.demo import DemoCollector, demo_profile
from stackchart.storage import LocalStore

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

key = QueryKey(0, 1)
store = LocalStore(demo_profile())
bus = EventBus(asynchronous=True)
state = QueryState()

host = store.profile.column("host")
chart = StackChart(Metric("hosts", host, MetricFunction.COUNT),
                   ChartInfo(range_realtime=RangeRealTime.FIVE_MIN),
                   ProcessType.REAL_TIME, key, store, bus, state)
collector = DemoCollector(store, bus, state, key, cycle_ms=2000)
collector.start()

try:
    seen = -1
    while True:
        time.sleep(0.5)
        if chart.dataset.version == seen:
            continue
        seen = chart.dataset.version
        snap = chart.dataset.snapshot()
        if len(snap.timestamps) == 0:
            continue
        last = {s: snap.values[i, -1] for i, s in enumerate(snap.series)}
        print(f"{int(snap.timestamps[-1])}: " +
              "  ".join(f"{s}={v:g}" for s, v in last.items()))
except KeyboardInterrupt:
    pass
finally:
    collector.stop()
    chart.close()
    bus.close()
