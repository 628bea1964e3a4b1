"""Zero-filling of time ranges the store returned no data for."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from .dataset import RenderSurface
from .ranges import round_half_up
from .schema import PlotPoint

logger = logging.getLogger(__name__)


def format_epoch_ms(ms: int) -> str:
    """Format epoch milliseconds as local ISO date-time."""
    return datetime.fromtimestamp(ms / 1000).isoformat(timespec="milliseconds")


class GapFiller:
    """Writes zero-valued points at every bucket boundary of a range.

    Stacked areas cannot show "missing", so empty buckets are drawn as
    zero.  A point the surface rejects is logged and skipped; the rest of
    the range is still filled.
    """

    def __init__(self, column_name: str, surface: RenderSurface | None = None) -> None:
        self._column_name = column_name
        self._surface = surface

    def fill(self, begin_fill: int, end_fill: int, series: Iterable[str],
             bucket_width: float, categorical: bool,
             surface: RenderSurface | None = None) -> list[PlotPoint]:
        """Fill ``[begin_fill, end_fill]`` inclusive.  Return emitted points.

        ``begin_fill > end_fill`` emits a single point at ``begin_fill``.
        Linear charts fill only the metric column's own series.
        """
        target = surface if surface is not None else self._surface
        if target is None:
            raise ValueError("no render surface to fill")
        stride = round_half_up(bucket_width)
        if stride < 1:
            raise ValueError(f"bucket width too small to step: {bucket_width}")

        logger.info("fill empty %d .. %d", begin_fill, end_fill)

        names = list(series) if categorical else [self._column_name]
        if begin_fill > end_fill:
            xs: Iterable[int] = (begin_fill,)
        else:
            xs = range(begin_fill, end_fill + 1, stride)

        emitted: list[PlotPoint] = []
        for x in xs:
            for name in names:
                try:
                    target.add_series_value(x, 0.0, name)
                except Exception as e:
                    logger.warning("gap fill skipped %r at %d: %s", name, x, e)
                    continue
                emitted.append(PlotPoint(x, name, 0.0))
        return emitted
