"""One stacked chart: configuration, data pipeline and lifecycle wiring."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from .coordinator import ReloadCoordinator
from .dataset import AxisGranularity, ChartDataset
from .errors import ConfigurationError
from .events import EventBus
from .functions import handler_for
from .gapfill import GapFiller
from .pipeline import ChartDataPipeline, now_ms
from .ranges import MAX_POINT_PER_GRAPH, compute_range_parameters
from .schema import ChartInfo, Metric, ProcessType, QueryKey, RangeHistory
from .series import SeriesRegistry
from .state import QueryState
from .storage import StorageAdapter

logger = logging.getLogger(__name__)


class StackChart:
    """Owns the series registry, range parameters and handler of one chart.

    The storage adapter, event bus and query state are shared and
    injected.  Real-time charts listen for collection start/stop of their
    QueryKey until :meth:`close`.
    """

    def __init__(self, metric: Metric, chart_info: ChartInfo,
                 process_type: ProcessType, key: QueryKey,
                 storage: StorageAdapter, bus: EventBus, state: QueryState, *,
                 dataset: ChartDataset | None = None,
                 clock: Callable[[], int] | None = None) -> None:
        if metric.y_axis.storage is None:
            raise ConfigurationError(
                f"Column storage type is undefined for column profile: {metric.y_axis}")

        self.metric = metric
        self.chart_info = chart_info
        self.process_type = process_type
        self.key = key
        self._clock = clock or now_ms

        self.handler = handler_for(metric)

        history_window = None
        try:
            if process_type == ProcessType.HISTORY:
                history_window = chart_info.history_window(self._clock())
                display_range = history_window.duration
            else:
                display_range = chart_info.realtime_range_ms()
            self.params = compute_range_parameters(display_range, MAX_POINT_PER_GRAPH)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        self.registry = SeriesRegistry()
        self.dataset = dataset if dataset is not None else ChartDataset()
        self.gap_filler = GapFiller(metric.y_axis.col_name, self.dataset)
        self.pipeline = ChartDataPipeline(
            metric, storage, self.handler, self.registry, self.gap_filler,
            self.params, self.dataset, process_type,
            display_range_ms=display_range,
            history_window=history_window,
            clock=self._clock,
        )

        self.coordinator: ReloadCoordinator | None = None
        if process_type == ProcessType.REAL_TIME:
            self.coordinator = ReloadCoordinator(key, bus, state, self.pipeline)

        logger.info("chart %s: %s/%s, bucket %.1f ms, batch %d s",
                    metric.name, metric.function.name, metric.chart_type.name,
                    self.params.bucket_width_ms, self.params.batch_size_seconds)

    @property
    def series(self) -> tuple[str, ...]:
        return self.registry.current_series()

    def initialize(self) -> bool:
        """First load.  History load failures raise :class:`LoadError`."""
        if self.process_type == ProcessType.HISTORY:
            if self.chart_info.range_history in (RangeHistory.WEEK, RangeHistory.MONTH):
                self.dataset.axis_granularity = AxisGranularity.DAY
        return self.pipeline.load_data()

    def poll(self) -> bool:
        """Periodic real-time refresh."""
        return self.pipeline.load_data()

    def close(self) -> None:
        if self.coordinator is not None:
            self.coordinator.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def describe_clock_skew(duration_ms: int) -> str:
    """Describe the offset between local and server clocks."""
    if duration_ms < 0:
        return "Local time lagging behind than server one at: " + _duration_abs(-duration_ms)
    if duration_ms > 0:
        return "Local time ahead of server one at: " + _duration_abs(duration_ms)
    return "Local and server time are synchronous"


def _duration_abs(duration_ms: int) -> str:
    d = timedelta(milliseconds=duration_ms)
    hours, rem = divmod(int(d.total_seconds()), 3600)
    minutes, seconds = divmod(rem, 60)
    return (f"{hours:02d} hour {minutes:02d} minute {seconds:02d} seconds "
            f"{duration_ms % 1000:03d} milliseconds")
