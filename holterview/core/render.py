"""Pure frame building: samples + view transform -> draw primitives.

The Qt side (:mod:`holterview.ui.painter`) only strokes what a :class:`Frame` lists,
so everything here runs headless and is cheap enough to call on every input event.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from holterview.core.interaction import Tooltip
from holterview.core.samples import SampleSet
from holterview.core.transform import CoordinateMapper, Palette, ViewTransform

__all__ = [
    "GRID_STEP_X",
    "GRID_STEP_Y",
    "PLACEHOLDER_TEXT",
    "FrameColors",
    "Frame",
    "build_frame",
    "split_paths",
    "zoom_label",
]

GRID_STEP_X = 50
GRID_STEP_Y = 25
PLACEHOLDER_TEXT = "No data"
LABEL_POS = (8.0, 14.0)


@dataclass(frozen=True)
class FrameColors:
    background: str = "#111111"
    grid: str = "#0dffffff"
    label: str = "#ffffff"
    placeholder: str = "#808080"
    tooltip_background: str = "#cc000000"
    tooltip_text: str = "#ffffff"
    wave_normal: str = "#cc81e6d9"
    wave_accessible: str = "#e60078b4"

    def wave(self, palette: Palette) -> str:
        return self.wave_accessible if palette is Palette.ACCESSIBLE else self.wave_normal


@dataclass
class Frame:
    width: int
    height: int
    background: str
    grid_color: str
    wave_color: str
    label_color: str
    grid: list[tuple[float, float, float, float]] = field(default_factory=list)
    paths: list[np.ndarray] = field(default_factory=list)
    label: str = ""
    label_pos: tuple[float, float] = LABEL_POS
    tooltip: Tooltip | None = None
    tooltip_colors: tuple[str, str] = ("#cc000000", "#ffffff")
    placeholder: str | None = None
    placeholder_color: str = "#808080"

    @property
    def vertex_count(self) -> int:
        return int(sum(len(p) for p in self.paths))


def zoom_label(label: str, scale: float) -> str:
    return f"{label} (zoom x{scale:.1f})"


def grid_lines(width: int, height: int) -> list[tuple[float, float, float, float]]:
    lines: list[tuple[float, float, float, float]] = []
    for y in range(0, int(height), GRID_STEP_Y):
        lines.append((0.0, float(y), float(width), float(y)))
    for x in range(0, int(width), GRID_STEP_X):
        lines.append((float(x), 0.0, float(x), float(height)))
    return lines


def split_paths(x: np.ndarray, y: np.ndarray, keep: np.ndarray) -> list[np.ndarray]:
    """Group consecutive kept points into separate (k, 2) polylines."""
    idx = np.flatnonzero(keep)
    if idx.size == 0:
        return []
    breaks = np.flatnonzero(np.diff(idx) != 1) + 1
    return [np.column_stack((x[run], y[run])) for run in np.split(idx, breaks)]


def build_frame(
    samples: SampleSet,
    transform: ViewTransform,
    width: int,
    height: int,
    *,
    theme_colors: FrameColors | None = None,
    label: str = "",
    hover: Tooltip | None = None,
    window: tuple[int, int] | None = None,
    scale: float | None = None,
    offset_px: float | None = None,
) -> Frame:
    """Describe one redraw of a lead plot.

    ``window`` is the loaded ``(start_ms, end_ms)`` and defaults to the span of the
    samples. ``scale``/``offset_px`` override the transform's horizontal state when a
    shared owner holds it. Samples outside ``[0, width]`` are culled and the path breaks
    wherever the active lead is off.
    """
    colors = theme_colors or FrameColors()
    scale = transform.scale if scale is None else float(scale)
    offset_px = transform.offset_px if offset_px is None else float(offset_px)
    frame = Frame(
        width=int(width),
        height=int(height),
        background=colors.background,
        grid_color=colors.grid,
        wave_color=colors.wave(transform.palette),
        label_color=colors.label,
        grid=grid_lines(width, height),
        tooltip_colors=(colors.tooltip_background, colors.tooltip_text),
        placeholder_color=colors.placeholder,
    )
    if not len(samples) or width <= 0 or height <= 0:
        frame.placeholder = PLACEHOLDER_TEXT
        return frame

    if window is None:
        window = (samples.start_ms, samples.end_ms)
    mapper = CoordinateMapper(window[0], window[1], width, height)
    x = mapper.time_to_x(samples.t_ms, scale, offset_px)
    y = mapper.value_to_y(samples.channel(transform.channel), transform.y_min, transform.y_max)
    keep = mapper.visible(x) & samples.lead_on(transform.channel) & np.isfinite(y)
    frame.paths = split_paths(x, y, keep)
    frame.label = zoom_label(label, scale)
    frame.tooltip = hover
    return frame
