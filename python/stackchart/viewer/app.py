"""DearPyGui application shell: menu bar, chart controls, main loop."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

import dearpygui.dearpygui as dpg

from ..chart import StackChart
from ..demo import DemoCollector, demo_profile
from ..errors import ChartError
from ..events import EventBus
from ..schema import (
    ChartInfo, ChartType, Metric, MetricFunction, ProcessType, QueryKey,
    RangeHistory, RangeRealTime,
)
from ..state import QueryState
from ..storage import LocalStore
from .plots import StackedPlot

logger = logging.getLogger(__name__)

_LIVE_KEY = QueryKey(0, 1)


class ViewerApp:
    """Top-level viewer application."""

    def __init__(self) -> None:
        self._store: LocalStore | None = None
        self._bus = EventBus()
        self._state = QueryState()
        self._collector: DemoCollector | None = None
        self._chart: StackChart | None = None
        self._plot: StackedPlot | None = None
        self._process = ProcessType.HISTORY
        self._last_poll = 0.0

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup(self) -> None:
        logging.basicConfig(level=logging.INFO,
                            format="%(name)s: %(message)s")

        dpg.create_context()
        dpg.configure_app(init_file=self._get_ini_path(), auto_save_init_file=True)
        dpg.create_viewport(title="stackchart viewer", width=1280, height=720)

        self._build_layout()
        self._build_file_dialog()

        dpg.setup_dearpygui()
        dpg.show_viewport()

    @staticmethod
    def _get_ini_path() -> str:
        config_dir = Path.home() / ".config" / "stackchart"
        config_dir.mkdir(parents=True, exist_ok=True)
        return str(config_dir / "layout.ini")

    def _build_layout(self) -> None:
        with dpg.viewport_menu_bar():
            with dpg.menu(label="File"):
                dpg.add_menu_item(label="Open File...",
                                  callback=lambda: dpg.show_item("file_dialog"))
                dpg.add_menu_item(label="Live Demo", callback=self._on_live_demo)
                dpg.add_separator()
                dpg.add_menu_item(label="Close Source",
                                  callback=self._close_source)
                dpg.add_separator()
                dpg.add_menu_item(label="Quit",
                                  callback=lambda: dpg.stop_dearpygui())

            with dpg.menu(label="View"):
                dpg.add_menu_item(label="Reset Layout",
                                  callback=self._on_reset_layout)

            dpg.add_text("Status: No source loaded.", tag="status_bar")

        with dpg.window(label="Chart", tag="chart_window", no_close=True,
                        width=1260, height=680, pos=[0, 25]):
            with dpg.group(horizontal=True):
                dpg.add_combo([], label="Column", tag="ctl_column", width=140,
                              callback=self._rebuild_chart)
                dpg.add_combo([f.value for f in MetricFunction], label="Function",
                              default_value=MetricFunction.COUNT.value,
                              tag="ctl_function", width=90,
                              callback=self._rebuild_chart)
                dpg.add_combo([c.value for c in ChartType], label="Chart",
                              default_value=ChartType.STACKED.value,
                              tag="ctl_chart", width=90,
                              callback=self._rebuild_chart)
                dpg.add_combo([r.value for r in RangeHistory if r != RangeHistory.CUSTOM],
                              label="History", default_value=RangeHistory.DAY.value,
                              tag="ctl_history", width=80,
                              callback=self._rebuild_chart)
                dpg.add_combo([str(int(r)) for r in RangeRealTime],
                              label="Live (min)", default_value=str(int(RangeRealTime.TEN_MIN)),
                              tag="ctl_realtime", width=60,
                              callback=self._rebuild_chart)
            dpg.add_group(tag="plot_container")

    def _build_file_dialog(self) -> None:
        with dpg.file_dialog(directory_selector=False, show=False,
                             callback=self._on_file_selected,
                             tag="file_dialog", width=600, height=400):
            dpg.add_file_extension(".schl", color=(0, 255, 0, 255))
            dpg.add_file_extension(".*")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _on_file_selected(self, sender: int, app_data: dict) -> None:
        path = app_data.get("file_path_name")
        if path:
            self.open_file(path)

    def _on_live_demo(self) -> None:
        self.open_demo()

    def open_file(self, path: str) -> None:
        """Open a sample log as a historical chart."""
        self._close_source()
        try:
            store = LocalStore.load(path)
        except (OSError, ValueError) as e:
            self._set_status(f"Error opening file: {e}")
            return
        self._store = store
        self._process = ProcessType.HISTORY
        self._set_columns()
        self._rebuild_chart()

    def open_demo(self) -> None:
        """Start a synthetic collector and chart it in real time."""
        self._close_source()
        self._store = LocalStore(demo_profile())
        self._process = ProcessType.REAL_TIME
        self._set_columns()
        self._rebuild_chart()
        self._collector = DemoCollector(self._store, self._bus, self._state, _LIVE_KEY)
        self._collector.start()
        self._set_status(f"Live demo  |  {_LIVE_KEY}")

    def _set_columns(self) -> None:
        assert self._store is not None
        names = [c.col_name for c in self._store.profile.columns
                 if c.storage is not None]
        dpg.configure_item("ctl_column", items=names)
        if names:
            dpg.set_value("ctl_column", names[0])

    def _close_source(self) -> None:
        if self._collector is not None:
            self._collector.stop()
            self._collector = None
        self._drop_chart()
        self._store = None
        self._set_status("No source loaded.")

    def _on_reset_layout(self) -> None:
        try:
            os.remove(self._get_ini_path())
        except FileNotFoundError:
            pass
        self._set_status("Layout reset. Restart to apply.")

    # ------------------------------------------------------------------
    # Chart
    # ------------------------------------------------------------------

    def _drop_chart(self) -> None:
        if self._plot is not None:
            self._plot.destroy_widgets()
            self._plot = None
        if self._chart is not None:
            self._chart.close()
            self._chart = None

    def _rebuild_chart(self, *_args) -> None:
        if self._store is None:
            return
        self._drop_chart()

        column_name = dpg.get_value("ctl_column")
        try:
            column = self._store.profile.column(column_name)
        except KeyError as e:
            self._set_status(str(e))
            return

        metric = Metric(column_name, column,
                        MetricFunction(dpg.get_value("ctl_function")),
                        ChartType(dpg.get_value("ctl_chart")))
        info = ChartInfo(range_realtime=RangeRealTime(int(dpg.get_value("ctl_realtime"))),
                         range_history=RangeHistory(dpg.get_value("ctl_history")))

        clock = None
        if self._process == ProcessType.HISTORY:
            last = self._store.last_timestamp(column)
            now = (last + 1) if last is not None else 0
            clock = lambda: now  # noqa: E731

        try:
            chart = StackChart(metric, info, self._process, _LIVE_KEY, self._store,
                               self._bus, self._state, clock=clock)
            chart.initialize()
        except ChartError as e:
            self._set_status(f"Error: {e}")
            return

        self._chart = chart
        self._plot = StackedPlot(chart.dataset, f"{metric.name} ({metric.function.value})")
        self._plot.create_widgets("plot_container")
        self._plot.push_data()
        self._set_status(f"{metric.name}  |  {len(chart.series)} series  |  "
                         f"bucket {chart.params.stride_ms} ms")

    # ------------------------------------------------------------------
    # Status bar
    # ------------------------------------------------------------------

    def _set_status(self, text: str) -> None:
        if dpg.does_item_exist("status_bar"):
            dpg.set_value("status_bar", f"Status: {text}")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        while dpg.is_dearpygui_running():
            chart = self._chart
            if chart is not None and self._process == ProcessType.REAL_TIME:
                now = time.monotonic()
                if now - self._last_poll >= chart.chart_info.pull_timeout_s:
                    self._last_poll = now
                    chart.poll()

            if self._plot is not None:
                self._plot.push_data()

            dpg.render_dearpygui_frame()

        self._cleanup()

    def _cleanup(self) -> None:
        self._close_source()
        self._bus.close()
        dpg.destroy_context()
