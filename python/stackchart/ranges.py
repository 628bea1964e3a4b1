"""Bucket width and fetch batch size from a chart's display range."""

from __future__ import annotations

import math
from dataclasses import dataclass

MAX_POINT_PER_GRAPH = 300


def round_half_up(x: float) -> int:
    """Round to the nearest integer, ties away from zero for positives."""
    return int(math.floor(x + 0.5))


@dataclass(frozen=True)
class RangeParameters:
    point_cap: int
    bucket_width_ms: float
    batch_size_seconds: int

    @property
    def stride_ms(self) -> int:
        """Bucket step actually walked on the time axis."""
        return round_half_up(self.bucket_width_ms)

    @property
    def batch_ms(self) -> int:
        """Length of one real-time fetch batch, a whole number of buckets."""
        stride = self.stride_ms
        return max(math.ceil(self.batch_size_seconds * 1000 / stride), 1) * stride


def compute_range_parameters(display_range_ms: int,
                             point_cap: int = MAX_POINT_PER_GRAPH) -> RangeParameters:
    """Derive bucket width and batch size for a display range.

    ``bucket_width_ms = display_range_ms / point_cap`` and
    ``batch_size_seconds = round((display_range_ms // 1000) / point_cap)``.
    """
    if point_cap <= 0:
        raise ValueError(f"point_cap must be positive, got {point_cap}")
    if display_range_ms <= 0:
        raise ValueError(f"display range must be a positive duration, got {display_range_ms} ms")

    bucket_width = display_range_ms / point_cap
    batch_size = round_half_up((display_range_ms // 1000) / point_cap)
    return RangeParameters(point_cap, bucket_width, batch_size)
