"""stackchart command-line tool."""

from __future__ import annotations

import argparse
import logging
import sys

import numpy as np

from .chart import StackChart
from .demo import demo_profile, synthesize
from .errors import ChartError
from .events import EventBus
from .gapfill import format_epoch_ms
from .schema import (
    ChartInfo, ChartType, Metric, MetricFunction, ProcessType, QueryKey,
    RangeHistory, RangeRealTime,
)
from .state import QueryState
from .storage import LocalStore, LogReader


def _format_duration(ms: int) -> str:
    """Format a millisecond duration as a human-readable string."""
    if ms < 1_000:
        return f"{ms}ms"
    s = ms / 1_000
    if s < 60:
        return f"{s:.2f}s"
    if s < 3600:
        return f"{s / 60:.1f}m"
    if s < 86400:
        return f"{s / 3600:.1f}h"
    return f"{s / 86400:.1f}d"


def cmd_dump(args: argparse.Namespace) -> None:
    """Dump a sample log to stdout."""
    with LogReader(args.file) as reader:
        profile = reader.profile
        col_ids = {profile.column(args.column).col_id} if args.column else None
        names = {c.col_id: c.col_name for c in profile.columns}
        for rec in reader.records(args.begin, args.end, col_ids):
            print(f"[{format_epoch_ms(rec.timestamp)}] "
                  f"{names.get(rec.col_id, rec.col_id)}: {rec.series}={rec.value:g}")


def cmd_info(args: argparse.Namespace) -> None:
    """Print summary info about a sample log."""
    import os

    file_size = os.path.getsize(args.file)

    with LogReader(args.file) as reader:
        profile = reader.profile
        index = reader.index

        counts: dict[int, int] = {}
        labels: dict[int, set[str]] = {}
        ts_min: int | None = None
        ts_max: int | None = None
        total = 0

        for rec in reader.records():
            counts[rec.col_id] = counts.get(rec.col_id, 0) + 1
            labels.setdefault(rec.col_id, set()).add(rec.series)
            total += 1
            if ts_min is None or rec.timestamp < ts_min:
                ts_min = rec.timestamp
            if ts_max is None or rec.timestamp > ts_max:
                ts_max = rec.timestamp

        num_blocks = len(index) if index else "unknown"

        print(f"File:       {args.file}")
        print(f"Profile:    {profile.name}")
        print(f"Size:       {file_size:,} bytes")
        print(f"Blocks:     {num_blocks}")
        print(f"Samples:    {total:,}")

        if ts_min is not None and ts_max is not None:
            print(f"Time range: {format_epoch_ms(ts_min)} .. {format_epoch_ms(ts_max)}")
            print(f"Duration:   {_format_duration(ts_max - ts_min)}")
        else:
            print("Time range: (empty)")

        print(f"\nColumns ({len(profile.columns)}):")
        print(f"  {'ID':>4s}  {'Name':<24s}  {'Type':<8s}  {'Storage':<9s}  {'Samples':>8s}  Series")
        for c in profile.columns:
            storage = c.storage.name if c.storage is not None else "-"
            print(f"  {c.col_id:4d}  {c.col_name:<24s}  {c.data_type.name:<8s}  "
                  f"{storage:<9s}  {counts.get(c.col_id, 0):8,}  {len(labels.get(c.col_id, ()))}")


def cmd_render(args: argparse.Namespace) -> None:
    """Run a historical load over a sample log and print the stacked table."""
    store = LocalStore.load(args.file)
    column = store.profile.column(args.column)

    now = args.now
    if now is None:
        last = store.last_timestamp(column)
        now = (last + 1) if last is not None else 0

    metric = Metric(args.column, column, MetricFunction[args.function.upper()],
                    ChartType[args.chart.upper()])
    info = ChartInfo(range_history=RangeHistory[args.range.upper()],
                     custom_begin=args.begin, custom_end=args.end)
    bus = EventBus()

    with StackChart(metric, info, ProcessType.HISTORY, QueryKey(0, 0), store,
                    bus, QueryState(), clock=lambda: now) as chart:
        chart.initialize()
        snap = chart.dataset.snapshot()

    print(f"# {metric.name} {metric.function.name} bucket={chart.params.stride_ms}ms "
          f"series={len(snap.series)} rows={len(snap.timestamps)}")
    print("\t".join(["time", *snap.series]))
    for j, ts in enumerate(snap.timestamps):
        if args.skip_zero and not np.any(snap.values[:, j]):
            continue
        cells = [f"{v:g}" for v in snap.values[:, j]]
        print("\t".join([format_epoch_ms(int(ts)), *cells]))


def cmd_demo(args: argparse.Namespace) -> None:
    """Write a synthetic sample log."""
    store = LocalStore(demo_profile())
    end = args.end
    begin = end - RangeRealTime(args.minutes).millis if args.begin is None else args.begin
    n = synthesize(store, begin, end, args.step, seed=args.seed)
    store.save(args.file)
    print(f"wrote {n} samples per column to {args.file}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="stackchart", description="stackchart tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline activity")
    sub = parser.add_subparsers(dest="command")

    # dump
    p_dump = sub.add_parser("dump", help="Dump a sample log")
    p_dump.add_argument("file", help="Path to sample log")
    p_dump.add_argument("--column", help="Only this column")
    p_dump.add_argument("--begin", type=int, help="Epoch ms lower bound")
    p_dump.add_argument("--end", type=int, help="Epoch ms upper bound")

    # info
    p_info = sub.add_parser("info", help="Show summary info about a sample log")
    p_info.add_argument("file", help="Path to sample log")

    # render
    p_render = sub.add_parser("render", help="Aggregate a sample log as a stacked chart")
    p_render.add_argument("file", help="Path to sample log")
    p_render.add_argument("--column", required=True, help="Y-axis column")
    p_render.add_argument("--function", default="count",
                          choices=[f.value for f in MetricFunction])
    p_render.add_argument("--chart", default="stacked",
                          choices=[c.value for c in ChartType])
    p_render.add_argument("--range", default="day",
                          choices=[r.value for r in RangeHistory])
    p_render.add_argument("--begin", type=int, help="Custom range begin (epoch ms)")
    p_render.add_argument("--end", type=int, help="Custom range end (epoch ms)")
    p_render.add_argument("--now", type=int, help="Reference time (default: last sample)")
    p_render.add_argument("--skip-zero", action="store_true", help="Hide all-zero rows")

    # demo
    p_demo = sub.add_parser("demo", help="Write a synthetic sample log")
    p_demo.add_argument("file", help="Output path")
    p_demo.add_argument("--end", type=int, required=True, help="Epoch ms end")
    p_demo.add_argument("--begin", type=int, help="Epoch ms begin")
    p_demo.add_argument("--minutes", type=int, default=10,
                        choices=[int(r) for r in RangeRealTime])
    p_demo.add_argument("--step", type=int, default=1000, help="Sample step (ms)")
    p_demo.add_argument("--seed", type=int, default=0)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s: %(message)s")

    commands = {
        "dump": cmd_dump,
        "info": cmd_info,
        "render": cmd_render,
        "demo": cmd_demo,
    }
    cmd = commands.get(args.command)
    if cmd is None:
        parser.print_help()
        return
    try:
        cmd(args)
    except (ChartError, KeyError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
