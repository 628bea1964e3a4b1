"""Chart data pipeline: fetch -> register series -> aggregate -> gap fill -> commit."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Iterator

from .dataset import ChartDataset, Frame
from .errors import LoadError
from .functions import MetricFunctionHandler
from .gapfill import GapFiller
from .ranges import RangeParameters
from .schema import Metric, ProcessType, TimeWindow
from .series import SeriesRegistry
from .storage import StorageAdapter

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def _batches(begin: int, end: int, size: int) -> Iterator[TimeWindow]:
    x = begin
    while x < end:
        yield TimeWindow(x, min(x + size, end))
        x += size


class ChartDataPipeline:
    """Loads one chart's dataset from storage.

    Real-time mode appends batch by batch from a cursor that only moves
    forward.  History mode loads one window and replaces the dataset.
    At most one load runs at a time; overlapping requests are dropped,
    since the running load already sees the latest stored data.
    """

    def __init__(self, metric: Metric, storage: StorageAdapter,
                 handler: MetricFunctionHandler, registry: SeriesRegistry,
                 gap_filler: GapFiller, params: RangeParameters,
                 dataset: ChartDataset, mode: ProcessType, *,
                 display_range_ms: int,
                 history_window: TimeWindow | None = None,
                 clock: Callable[[], int] | None = None) -> None:
        self._metric = metric
        self._storage = storage
        self._handler = handler
        self._registry = registry
        self._gap_filler = gap_filler
        self._params = params
        self._dataset = dataset
        self._mode = mode
        self._history_window = history_window
        self._clock = clock or now_ms
        self._loading = threading.Lock()
        self._cursor: int | None = None
        self.client_begin = self._clock() - display_range_ms
        self.last_error: Exception | None = None

    @property
    def mode(self) -> ProcessType:
        return self._mode

    @property
    def cursor(self) -> int | None:
        """End of the data already committed (real-time), or None."""
        return self._cursor

    @property
    def dataset(self) -> ChartDataset:
        return self._dataset

    def load_data(self, window: TimeWindow | None = None) -> bool:
        """Load *window* (or the mode's default).  False if coalesced or no-op."""
        if not self._loading.acquire(blocking=False):
            logger.debug("load for %s already in flight; request coalesced",
                         self._metric.name)
            return False
        try:
            if self._mode == ProcessType.REAL_TIME:
                return self._load_realtime(window)
            return self._load_history(window)
        finally:
            self._loading.release()

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _load_realtime(self, window: TimeWindow | None) -> bool:
        if window is None:
            # Periodic poll: whole batches only, so bucket keys stay on one grid
            begin = self._cursor if self._cursor is not None else self.client_begin
            size = self._params.batch_ms
            end = begin + ((self._clock() - begin) // size) * size
            window = TimeWindow(begin, end)
        elif window.is_empty:
            return self._load_instant(window.begin)

        # Append from the cursor; never reach back past the display range
        if self._cursor is not None:
            begin = self._cursor
        else:
            begin = max(window.begin, self.client_begin)
        if begin >= window.end:
            return False

        frame = Frame()
        loaded_to = self._fetch_batches(begin, window.end, frame)
        if loaded_to == begin:
            return False
        self._commit(frame, begin, loaded_to)
        return True

    def _load_instant(self, at: int) -> bool:
        """Bring the dataset up to *at* and mark its bucket as empty."""
        floor = self._cursor if self._cursor is not None else self.client_begin
        if at < floor:
            logger.debug("instant %d is behind %d; nothing to fill", at, floor)
            return False

        begin = self._cursor if self._cursor is not None else at
        frame = Frame()
        loaded_to = self._fetch_batches(begin, at, frame)
        if loaded_to < at:
            if loaded_to == begin:
                return False
            self._commit(frame, begin, loaded_to)
            return True

        stride = self._params.stride_ms
        self._fill_instant(begin + ((at - begin) // stride) * stride, frame)
        self._commit(frame, begin, loaded_to)
        return True

    def _fetch_batches(self, begin: int, end: int, frame: Frame) -> int:
        """Build ``[begin, end)`` batch by batch.  Return the end of the last good batch."""
        loaded_to = begin
        for batch in _batches(begin, end, self._params.batch_ms):
            try:
                self._build_frame(batch, frame)
            except Exception as e:
                self.last_error = e
                logger.exception("real-time fetch of %s failed for [%d, %d); retrying next cycle",
                                 self._metric.name, batch.begin, batch.end)
                break
            loaded_to = batch.end
        return loaded_to

    def _commit(self, frame: Frame, begin: int, loaded_to: int) -> None:
        # The cursor moves by whole batches; a trailing partial one is fetched again
        size = self._params.batch_ms
        self._dataset.apply(frame)
        self._cursor = begin + ((loaded_to - begin) // size) * size

    def _load_history(self, window: TimeWindow | None) -> bool:
        if window is None:
            window = self._history_window
        if window is None:
            raise LoadError(f"no history window configured for {self._metric.name}")

        frame = Frame()
        try:
            if window.is_empty:
                self._fill_instant(window.begin, frame)
            else:
                self._build_frame(window, frame)
        except Exception as e:
            self.last_error = e
            self._dataset.clear()
            raise LoadError(
                f"historical load of {self._metric.name} failed for "
                f"[{window.begin}, {window.end}): {e}"
            ) from e

        self._dataset.apply(frame, replace=True)
        self._cursor = window.end
        return True

    # ------------------------------------------------------------------
    # Frame building
    # ------------------------------------------------------------------

    def _fill_instant(self, at: int, frame: Frame) -> None:
        self._gap_filler.fill(at, at,
                              self._registry.current_series(),
                              self._params.bucket_width_ms,
                              self._metric.is_categorical, surface=frame)

    def _build_frame(self, window: TimeWindow, frame: Frame) -> None:
        """Add every bucket of *window* to *frame*: one value per known series."""
        buckets = self._storage.query(self._metric.y_axis, window,
                                      self._params.bucket_width_ms)
        self._registry.observe(self._handler.series_names(buckets))
        columns = self._handler.aggregate(buckets)

        series = self._registry.current_series()
        categorical = self._metric.is_categorical
        names = series if categorical else (self._metric.y_axis.col_name,)
        stride = self._params.stride_ms

        covered: set[int] = set()
        for col in columns:
            covered.add((col.key - window.begin) // stride)
            for name, value in col.values.items():
                try:
                    frame.put(col.key, name, value)
                except Exception as e:
                    logger.warning("dropped %r at %d: %s", name, col.key, e)
            for name in names:
                try:
                    frame.add_series_value(col.key, 0.0, name)
                except Exception as e:
                    logger.warning("dropped zero for %r at %d: %s", name, col.key, e)

        # Zero-fill runs of buckets with no column
        n_buckets = math.ceil(window.duration / stride)
        run_start: int | None = None
        for i in range(n_buckets + 1):
            if i < n_buckets and i not in covered:
                if run_start is None:
                    run_start = i
                continue
            if run_start is not None:
                self._gap_filler.fill(window.begin + run_start * stride,
                                      window.begin + (i - 1) * stride,
                                      series, self._params.bucket_width_ms,
                                      categorical, surface=frame)
                run_start = None
