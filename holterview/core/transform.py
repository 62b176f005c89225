"""Zoom/pan/amplitude state for a waveform plot and the time <-> pixel mapping."""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from holterview.core.samples import Channel

LOG = logging.getLogger(__name__)

__all__ = [
    "SCALE_MIN",
    "SCALE_MAX",
    "Palette",
    "ViewTransform",
    "zoom_scale",
    "compress_range",
    "expand_range",
    "fit_range",
    "CoordinateMapper",
    "TransformOwner",
]

SCALE_MIN = 0.5
SCALE_MAX = 10.0
ZOOM_IN_STEP = 1.1
ZOOM_OUT_STEP = 0.9
COMPRESS_STEP = 0.8
EXPAND_STEP = 1.2
FIT_MAX_SAMPLES = 5000
FIT_PADDING = 0.1

DEFAULT_Y_MIN = -50.0
DEFAULT_Y_MAX = 50.0


class Palette(str, enum.Enum):
    NORMAL = "normal"
    ACCESSIBLE = "accessible"

    def toggled(self) -> "Palette":
        return Palette.ACCESSIBLE if self is Palette.NORMAL else Palette.NORMAL


def clamp_scale(scale: float) -> float:
    return max(SCALE_MIN, min(float(scale), SCALE_MAX))


@dataclass
class ViewTransform:
    scale: float = 1.0
    offset_px: float = 0.0
    y_min: float = DEFAULT_Y_MIN
    y_max: float = DEFAULT_Y_MAX
    channel: Channel = Channel.LEAD_1
    palette: Palette = Palette.NORMAL

    def __post_init__(self) -> None:
        self.scale = clamp_scale(self.scale)
        self.channel = Channel.coerce(self.channel)
        self.palette = Palette(self.palette)
        if not self.y_min < self.y_max:
            raise ValueError(f"y_min must be below y_max (got {self.y_min}, {self.y_max})")

    @property
    def y_range(self) -> tuple[float, float]:
        return self.y_min, self.y_max


def zoom_scale(scale: float, zoom_in: bool) -> float:
    """One wheel tick. Not an exact inverse: 1.0 -> 1.1 -> 0.99."""
    step = ZOOM_IN_STEP if zoom_in else ZOOM_OUT_STEP
    return clamp_scale(scale * step)


def _scale_range(y_min: float, y_max: float, factor: float) -> tuple[float, float]:
    centre = (y_min + y_max) / 2.0
    half = (y_max - y_min) / 2.0 * factor
    return centre - half, centre + half


def compress_range(y_min: float, y_max: float) -> tuple[float, float]:
    return _scale_range(y_min, y_max, COMPRESS_STEP)


def expand_range(y_min: float, y_max: float) -> tuple[float, float]:
    return _scale_range(y_min, y_max, EXPAND_STEP)


def fit_range(values: np.ndarray) -> tuple[float, float] | None:
    """Amplitude window covering ``values`` with 10% padding on each side.

    Large inputs are strided down to about 5000 points first. Returns ``None`` when
    there is nothing finite to fit.
    """
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    n = arr.size
    if n == 0:
        return None
    if n > FIT_MAX_SAMPLES:
        arr = arr[:: n // FIT_MAX_SAMPLES]
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return None
    lo = float(arr.min())
    hi = float(arr.max())
    span = hi - lo
    if span > 0:
        pad = span * FIT_PADDING
    else:
        pad = max(abs(lo) * FIT_PADDING, 1.0)
    return lo - pad, hi + pad


class CoordinateMapper:
    """Time/amplitude to pixel mapping for one loaded window and surface size.

    ``ms_in_view = total_ms / scale`` and ``pan_ms = -(offset_px / width) * ms_in_view``;
    a sample at ``t`` lands at ``x = (t - start - pan_ms) / ms_in_view * width``.
    All mapping methods accept scalars or numpy arrays.
    """

    def __init__(self, start_ms: int, end_ms: int, width_px: float, height_px: float):
        if width_px <= 0 or height_px <= 0:
            raise ValueError("surface size must be positive")
        self.start_ms = int(start_ms)
        self.end_ms = int(end_ms)
        self.width_px = float(width_px)
        self.height_px = float(height_px)
        self.total_ms = float(max(1, self.end_ms - self.start_ms))

    def ms_in_view(self, scale: float) -> float:
        return self.total_ms / float(scale)

    def pan_ms(self, offset_px: float, scale: float) -> float:
        return -(float(offset_px) / self.width_px) * self.ms_in_view(scale)

    def time_to_x(self, t_ms, scale: float, offset_px: float):
        in_view = self.ms_in_view(scale)
        pan = self.pan_ms(offset_px, scale)
        local = np.asarray(t_ms, dtype=np.float64) - self.start_ms
        x = (local - pan) / in_view * self.width_px
        return float(x) if np.ndim(x) == 0 else x

    def x_to_time(self, x_px, scale: float, offset_px: float):
        in_view = self.ms_in_view(scale)
        pan = self.pan_ms(offset_px, scale)
        t = self.start_ms + pan + np.asarray(x_px, dtype=np.float64) / self.width_px * in_view
        return float(t) if np.ndim(t) == 0 else t

    def value_to_y(self, value, y_min: float, y_max: float):
        y = self.height_px - (np.asarray(value, dtype=np.float64) - y_min) / (y_max - y_min) * self.height_px
        return float(y) if np.ndim(y) == 0 else y

    def visible(self, x_px: np.ndarray) -> np.ndarray:
        return (x_px >= 0.0) & (x_px <= self.width_px)


OwnerListener = Callable[[float, float], None]


@dataclass
class _Subscription:
    listener: OwnerListener
    token: object = field(default_factory=object)


class TransformOwner:
    """Canonical horizontal scale/offset shared by several plots moving in lockstep."""

    def __init__(self, scale: float = 1.0, offset_px: float = 0.0):
        self._scale = clamp_scale(scale)
        self._offset_px = float(offset_px)
        self._subs: list[_Subscription] = []
        self._lock = threading.RLock()

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def offset_px(self) -> float:
        return self._offset_px

    def attach(self, listener: OwnerListener) -> object:
        """Register ``listener(scale, offset_px)``; returns a token for publish/detach."""
        sub = _Subscription(listener)
        with self._lock:
            self._subs.append(sub)
        return sub.token

    def detach(self, token: object) -> None:
        with self._lock:
            self._subs = [s for s in self._subs if s.token is not token]

    def publish(
        self,
        *,
        scale: float | None = None,
        offset_px: float | None = None,
        source: object | None = None,
    ) -> None:
        """Update the canonical values and notify every subscriber except ``source``."""
        with self._lock:
            new_scale = self._scale if scale is None else clamp_scale(scale)
            new_offset = self._offset_px if offset_px is None else float(offset_px)
            if new_scale == self._scale and new_offset == self._offset_px:
                return
            self._scale = new_scale
            self._offset_px = new_offset
            targets = [s for s in self._subs if s.token is not source]
        for sub in targets:
            try:
                sub.listener(new_scale, new_offset)
            except Exception:
                LOG.exception("Transform listener failed")

    def reset(self) -> None:
        self.publish(scale=1.0, offset_px=0.0)
