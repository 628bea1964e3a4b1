"""Test metric function handlers over fetched buckets.

    python3 tests/test_functions.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

from stackchart.errors import ConfigurationError, UnknownFunctionError
from stackchart.functions import (
    AsIsMetricFunctionHandler, AverageMetricFunctionHandler,
    CountMetricFunctionHandler, SumMetricFunctionHandler, handler_for,
)
from stackchart.schema import (
    ChartType, ColumnProfile, DataType, Metric, MetricFunction, Profile,
    StorageType, TimeWindow,
)
from stackchart.storage import LocalStore

HOST = ColumnProfile(0, "host", DataType.STRING, StorageType.ENUM)


def _buckets():
    """Two 2 s buckets: [0, 2000) holds A@100=5, A@500=7, B@1500=3; [2000, 4000) is empty."""
    store = LocalStore(Profile("t", [HOST]))
    store.append(HOST, 100, "A", 5.0)
    store.append(HOST, 500, "A", 7.0)
    store.append(HOST, 1500, "B", 3.0)
    buckets = store.query(HOST, TimeWindow(0, 4000), 2000.0)
    assert [b.key for b in buckets] == [0, 2000]
    assert buckets[1].is_empty
    return buckets


def _metric(function, chart_type=ChartType.STACKED):
    return Metric("hosts", HOST, function, chart_type)


def test_handler_selection():
    print("test_handler_selection...", end="")

    assert isinstance(handler_for(_metric(MetricFunction.ASIS)), AsIsMetricFunctionHandler)
    assert isinstance(handler_for(_metric(MetricFunction.COUNT)), CountMetricFunctionHandler)
    assert isinstance(handler_for(_metric(MetricFunction.SUM)), SumMetricFunctionHandler)
    assert isinstance(handler_for(_metric(MetricFunction.AVERAGE)), AverageMetricFunctionHandler)

    print(" OK")


def test_unknown_function_rejected():
    print("test_unknown_function_rejected...", end="")

    try:
        handler_for(Metric("hosts", HOST, "median"))
        assert False, "unknown function should be rejected"
    except UnknownFunctionError as e:
        assert isinstance(e, ConfigurationError)
        assert e.hint is not None and "AVERAGE" in e.hint

    print(" OK")


def test_sum():
    print("test_sum...", end="")

    cols = handler_for(_metric(MetricFunction.SUM)).aggregate(_buckets())
    assert len(cols) == 2
    assert cols[0].key == 0 and cols[0].tail == 2000
    assert cols[0].values == {"A": 12.0, "B": 3.0}
    assert cols[1].values == {}

    print(" OK")


def test_count():
    print("test_count...", end="")

    cols = handler_for(_metric(MetricFunction.COUNT)).aggregate(_buckets())
    assert [c.key for c in cols] == [0, 2000]
    assert cols[0].values == {"A": 2.0, "B": 1.0}
    assert cols[1].values == {}

    print(" OK")


def test_asis():
    print("test_asis...", end="")

    cols = handler_for(_metric(MetricFunction.ASIS)).aggregate(_buckets())
    assert [(c.key, c.values) for c in cols] == [
        (100, {"A": 5.0}),
        (500, {"A": 7.0}),
        (1500, {"B": 3.0}),
    ]

    print(" OK")


def test_average_omits_empty_bucket():
    print("test_average_omits_empty_bucket...", end="")

    cols = handler_for(_metric(MetricFunction.AVERAGE)).aggregate(_buckets())
    assert len(cols) == 1
    assert cols[0].key == 0
    assert cols[0].values == {"A": 6.0, "B": 3.0}

    print(" OK")


def test_linear_folds_into_column_series():
    print("test_linear_folds_into_column_series...", end="")

    handler = handler_for(_metric(MetricFunction.COUNT, ChartType.LINEAR))
    buckets = _buckets()
    assert handler.series_names(buckets) == ["host"]
    cols = handler.aggregate(buckets)
    assert cols[0].values == {"host": 3.0}

    stacked = handler_for(_metric(MetricFunction.COUNT))
    assert stacked.series_names(buckets) == ["A", "B"]

    print(" OK")


if __name__ == "__main__":
    print("stackchart function handler tests")
    print("=================================\n")

    test_handler_selection()
    test_unknown_function_rejected()
    test_sum()
    test_count()
    test_asis()
    test_average_omits_empty_bucket()
    test_linear_folds_into_column_series()

    print("\nAll function handler tests passed.")
