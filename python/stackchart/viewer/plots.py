"""Stacked area plot drawn from a ChartDataset snapshot."""

from __future__ import annotations

import itertools
import logging
from datetime import datetime

import numpy as np
import dearpygui.dearpygui as dpg

from ..dataset import AxisGranularity, ChartDataset

logger = logging.getLogger(__name__)

_id_counter = itertools.count()

# ImPlot "Deep" colormap
_PALETTE = [
    (76, 114, 176, 255),
    (221, 132, 82, 255),
    (85, 168, 104, 255),
    (196, 78, 82, 255),
    (129, 114, 179, 255),
    (147, 120, 96, 255),
    (218, 139, 195, 255),
    (140, 140, 140, 255),
    (204, 185, 116, 255),
    (100, 182, 205, 255),
]

_TICKS = 6


def _tick_label(seconds: float, granularity: AxisGranularity) -> str:
    t = datetime.fromtimestamp(seconds)
    if granularity == AxisGranularity.DAY:
        return t.strftime("%m-%d")
    return t.strftime("%H:%M:%S")


class StackedPlot:
    """One plot with a shaded layer per series, bottom to top."""

    def __init__(self, dataset: ChartDataset, title: str) -> None:
        self.id = next(_id_counter)
        self._dataset = dataset
        self._title = title
        self._version = -1
        # series name -> (shade tag, theme tag)
        self._layers: dict[str, tuple[int | str, int | str]] = {}
        self.plot_tag: int | str | None = None
        self.x_axis_tag: int | str | None = None
        self.y_axis_tag: int | str | None = None

    def create_widgets(self, parent: int | str) -> None:
        self.plot_tag = dpg.add_plot(label=self._title, parent=parent,
                                     width=-1, height=-1, anti_aliased=True)
        dpg.add_plot_legend(parent=self.plot_tag)
        self.x_axis_tag = dpg.add_plot_axis(dpg.mvXAxis, label="Time",
                                             parent=self.plot_tag)
        self.y_axis_tag = dpg.add_plot_axis(dpg.mvYAxis, label="Value",
                                             parent=self.plot_tag)

    def _create_layer(self, series: str) -> None:
        color = _PALETTE[len(self._layers) % len(_PALETTE)]
        shade = dpg.add_shade_series([], [], y2=[], label=series,
                                     parent=self.y_axis_tag)
        with dpg.theme() as theme:
            with dpg.theme_component(dpg.mvShadeSeries):
                dpg.add_theme_color(dpg.mvPlotCol_Fill, color,
                                    category=dpg.mvThemeCat_Plots)
        dpg.bind_item_theme(shade, theme)
        self._layers[series] = (shade, theme)

    def destroy_widgets(self) -> None:
        for shade, theme in self._layers.values():
            for tag in (shade, theme):
                if dpg.does_item_exist(tag):
                    dpg.delete_item(tag)
        self._layers.clear()
        if self.plot_tag is not None and dpg.does_item_exist(self.plot_tag):
            dpg.delete_item(self.plot_tag)
        self.plot_tag = self.x_axis_tag = self.y_axis_tag = None
        self._version = -1

    @property
    def dirty(self) -> bool:
        return self._dataset.version != self._version

    def push_data(self) -> None:
        """Redraw if the dataset changed since the last push."""
        if self.y_axis_tag is None or not self.dirty:
            return
        self._version = self._dataset.version
        x_ms, series, layers = self._dataset.stacked()
        if len(x_ms) == 0:
            return

        x = (x_ms / 1000.0).tolist()
        bottom = np.zeros(len(x_ms))
        for i, name in enumerate(series):
            if name not in self._layers:
                self._create_layer(name)
            shade, _ = self._layers[name]
            dpg.configure_item(shade, x=x, y1=layers[i].tolist(), y2=bottom.tolist())
            bottom = layers[i]

        self._update_ticks(x[0], x[-1])
        dpg.fit_axis_data(self.x_axis_tag)
        dpg.fit_axis_data(self.y_axis_tag)

    def _update_ticks(self, x_min: float, x_max: float) -> None:
        granularity = self._dataset.axis_granularity
        if x_max <= x_min:
            ticks = ((_tick_label(x_min, granularity), x_min),)
        else:
            ticks = tuple((_tick_label(v, granularity), float(v))
                          for v in np.linspace(x_min, x_max, _TICKS))
        dpg.set_axis_ticks(self.x_axis_tag, ticks)
