"""Aggregation handlers: raw bucket samples -> stacked columns.

One handler per :class:`MetricFunction`, chosen once when the chart is
built.  Handlers hold no mutable state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from .errors import UnknownFunctionError
from .schema import Metric, MetricFunction
from .storage import Bucket, SampleBatch, StackedColumn


class MetricFunctionHandler(ABC):
    """Turns the fetched buckets of one metric into plot-ready columns."""

    function: MetricFunction

    def __init__(self, metric: Metric) -> None:
        self._metric = metric

    @property
    def metric(self) -> Metric:
        return self._metric

    def _labels(self, batch: SampleBatch) -> np.ndarray:
        # Linear charts fold every sample into the Y-axis column's series
        if not self._metric.is_categorical:
            return np.full(len(batch), self._metric.y_axis.col_name, dtype=object)
        return batch.series

    def _group(self, batch: SampleBatch) -> dict[str, np.ndarray]:
        labels = self._labels(batch)
        return {str(name): batch.values[labels == name]
                for name in dict.fromkeys(labels)}

    def series_names(self, buckets: list[Bucket]) -> list[str]:
        """Series this handler will emit for *buckets*, in first-seen order."""
        names: dict[str, None] = {}
        for bucket in buckets:
            for name in self._labels(bucket.samples):
                names.setdefault(str(name), None)
        return list(names)

    @abstractmethod
    def aggregate(self, buckets: list[Bucket]) -> list[StackedColumn]:
        """Aggregate *buckets* into stacked columns."""


class AsIsMetricFunctionHandler(MetricFunctionHandler):
    """One column per raw sample, value passed through."""

    function = MetricFunction.ASIS

    def aggregate(self, buckets: list[Bucket]) -> list[StackedColumn]:
        columns: list[StackedColumn] = []
        for bucket in buckets:
            labels = self._labels(bucket.samples)
            for ts, name, value in zip(bucket.samples.timestamps, labels,
                                       bucket.samples.values):
                columns.append(StackedColumn(int(ts), int(ts), {str(name): float(value)}))
        return columns


class CountMetricFunctionHandler(MetricFunctionHandler):
    function = MetricFunction.COUNT

    def aggregate(self, buckets: list[Bucket]) -> list[StackedColumn]:
        return [
            StackedColumn(b.key, b.tail,
                          {name: float(len(vals)) for name, vals in self._group(b.samples).items()})
            for b in buckets
        ]


class SumMetricFunctionHandler(MetricFunctionHandler):
    function = MetricFunction.SUM

    def aggregate(self, buckets: list[Bucket]) -> list[StackedColumn]:
        return [
            StackedColumn(b.key, b.tail,
                          {name: float(np.sum(vals)) for name, vals in self._group(b.samples).items()})
            for b in buckets
        ]


class AverageMetricFunctionHandler(MetricFunctionHandler):
    """Mean per bucket per series.  Buckets without samples are omitted."""

    function = MetricFunction.AVERAGE

    def aggregate(self, buckets: list[Bucket]) -> list[StackedColumn]:
        return [
            StackedColumn(b.key, b.tail,
                          {name: float(np.mean(vals)) for name, vals in self._group(b.samples).items()})
            for b in buckets
            if not b.is_empty
        ]


_HANDLERS: dict[MetricFunction, type[MetricFunctionHandler]] = {
    MetricFunction.ASIS: AsIsMetricFunctionHandler,
    MetricFunction.COUNT: CountMetricFunctionHandler,
    MetricFunction.SUM: SumMetricFunctionHandler,
    MetricFunction.AVERAGE: AverageMetricFunctionHandler,
}


def handler_for(metric: Metric) -> MetricFunctionHandler:
    """Select the handler for ``metric.function``."""
    try:
        cls = _HANDLERS[metric.function]
    except (KeyError, TypeError):
        raise UnknownFunctionError(
            f"No handler for metric function {metric.function!r}",
            hint=f"expected one of {', '.join(f.name for f in _HANDLERS)}",
        ) from None
    return cls(metric)
