"""stackchart - stacked time-series chart data pipeline."""

from .schema import (
    StorageType, DataType, ColumnProfile, Profile, MetricFunction, ChartType,
    Metric, QueryKey, TimeWindow, RangeRealTime, RangeHistory, ChartInfo,
    ProcessType, PlotPoint,
)
from .errors import ChartError, ConfigurationError, UnknownFunctionError, LoadError
from .storage import SampleBatch, Bucket, StackedColumn, LocalStore, LogWriter, LogReader
from .ranges import MAX_POINT_PER_GRAPH, RangeParameters, compute_range_parameters
from .series import SeriesRegistry
from .dataset import ChartDataset, AxisGranularity
from .gapfill import GapFiller
from .functions import handler_for
from .pipeline import ChartDataPipeline
from .events import EventBus, Subscription
from .state import QueryState
from .coordinator import ReloadCoordinator, CollectState
from .chart import StackChart, describe_clock_skew

__all__ = [
    "StorageType", "DataType", "ColumnProfile", "Profile", "MetricFunction",
    "ChartType", "Metric", "QueryKey", "TimeWindow", "RangeRealTime",
    "RangeHistory", "ChartInfo", "ProcessType", "PlotPoint",
    "ChartError", "ConfigurationError", "UnknownFunctionError", "LoadError",
    "SampleBatch", "Bucket", "StackedColumn", "LocalStore", "LogWriter", "LogReader",
    "MAX_POINT_PER_GRAPH", "RangeParameters", "compute_range_parameters",
    "SeriesRegistry", "ChartDataset", "AxisGranularity", "GapFiller",
    "handler_for", "ChartDataPipeline", "EventBus", "Subscription",
    "QueryState", "ReloadCoordinator", "CollectState", "StackChart",
    "describe_clock_skew",
]
