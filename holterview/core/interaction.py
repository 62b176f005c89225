"""Per-plot input handling: pointer pan, wheel zoom, keyboard, touch and hover tooltip."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

from holterview.core.samples import Channel, SampleSet
from holterview.core.timebase import format_clock
from holterview.core.transform import (
    CoordinateMapper,
    TransformOwner,
    ViewTransform,
    clamp_scale,
    compress_range,
    expand_range,
    fit_range,
    zoom_scale,
)

LOG = logging.getLogger(__name__)

__all__ = ["Tooltip", "PlotInteraction", "KEY_ACTIONS"]

KEY_ACTIONS = ("left", "right", "+", "-", "f", "c")


@dataclass(frozen=True)
class Tooltip:
    x: float
    y: float
    text: str
    index: int


ChangeListener = Callable[["PlotInteraction"], None]


class PlotInteraction:
    """Interaction state for a single lead plot.

    Horizontal ``scale``/``offset_px`` live on the :class:`TransformOwner` when one is
    given and on the local :class:`ViewTransform` otherwise. Amplitude range, channel and
    palette are always local. Every mutation notifies ``on_change`` listeners.
    """

    def __init__(
        self,
        transform: ViewTransform | None = None,
        owner: TransformOwner | None = None,
        *,
        keyboard_pan_px: float = 20.0,
        width: float = 800.0,
        height: float = 250.0,
    ):
        self.transform = transform or ViewTransform()
        self.keyboard_pan_px = float(keyboard_pan_px)
        self.width = float(width)
        self.height = float(height)
        self.samples = SampleSet.empty()
        self.window: tuple[int, int] | None = None
        self.hover: Tooltip | None = None
        self._listeners: list[ChangeListener] = []
        self._active_pointer: int | None = None
        self._last_x = 0.0
        self._owner: TransformOwner | None = None
        self._owner_token: object | None = None
        if owner is not None:
            self.set_owner(owner)

    # ------------------------------------------------------------------
    # observers / ownership

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def owner(self) -> TransformOwner | None:
        return self._owner

    def set_owner(self, owner: TransformOwner | None) -> None:
        if self._owner is not None and self._owner_token is not None:
            self._owner.detach(self._owner_token)
        self._owner = owner
        self._owner_token = None
        if owner is not None:
            self._owner_token = owner.attach(self._on_owner_update)
            self.transform.scale = owner.scale
            self.transform.offset_px = owner.offset_px
        self._notify()

    def _on_owner_update(self, scale: float, offset_px: float) -> None:
        self.transform.scale = scale
        self.transform.offset_px = offset_px
        self._notify()

    @property
    def scale(self) -> float:
        if self._owner is not None:
            return self._owner.scale
        return self.transform.scale

    @property
    def offset_px(self) -> float:
        if self._owner is not None:
            return self._owner.offset_px
        return self.transform.offset_px

    def _set_horizontal(self, *, scale: float | None = None, offset_px: float | None = None) -> None:
        if scale is not None:
            self.transform.scale = clamp_scale(scale)
        if offset_px is not None:
            self.transform.offset_px = float(offset_px)
        if self._owner is not None:
            self._owner.publish(
                scale=self.transform.scale if scale is not None else None,
                offset_px=self.transform.offset_px if offset_px is not None else None,
                source=self._owner_token,
            )
        self._notify()

    # ------------------------------------------------------------------
    # data

    def set_size(self, width: float, height: float) -> None:
        if width <= 0 or height <= 0:
            return
        self.width = float(width)
        self.height = float(height)
        self._notify()

    def set_samples(self, samples: SampleSet, start_ms: int | None = None, end_ms: int | None = None) -> None:
        self.samples = samples
        if start_ms is not None and end_ms is not None:
            self.window = (int(start_ms), int(end_ms))
        elif len(samples):
            self.window = (samples.start_ms, samples.end_ms)
        else:
            self.window = None
        self.hover = None
        if len(samples):
            self._fit_quietly()
        self._notify()

    def set_channel(self, channel: Channel | int) -> None:
        self.transform.channel = Channel.coerce(channel)
        self._fit_quietly()
        self._notify()

    def mapper(self) -> CoordinateMapper | None:
        if self.window is None:
            return None
        return CoordinateMapper(self.window[0], self.window[1], self.width, self.height)

    # ------------------------------------------------------------------
    # zoom / pan

    def zoom(self, zoom_in: bool) -> None:
        self._set_horizontal(scale=zoom_scale(self.scale, zoom_in))

    def pan(self, delta_px: float) -> None:
        self._set_horizontal(offset_px=self.offset_px + float(delta_px))

    def wheel(self, delta_y: float) -> None:
        if delta_y == 0:
            return
        self.zoom(delta_y < 0)

    def pointer_down(self, x: float, pointer_id: int = 0) -> None:
        if self._active_pointer is not None:
            return
        self._active_pointer = pointer_id
        self._last_x = float(x)
        if self.hover is not None:
            self.hover = None
            self._notify()

    def pointer_move(self, x: float, y: float = 0.0, pointer_id: int = 0) -> None:
        if self._active_pointer is not None:
            if pointer_id != self._active_pointer:
                return
            dx = float(x) - self._last_x
            self._last_x = float(x)
            if dx:
                self.pan(dx)
            return
        self.hover = self.tooltip(x, y)
        self._notify()

    def pointer_up(self, pointer_id: int = 0) -> None:
        if self._active_pointer == pointer_id:
            self._active_pointer = None

    def pointer_leave(self) -> None:
        self._active_pointer = None
        if self.hover is not None:
            self.hover = None
            self._notify()

    @property
    def panning(self) -> bool:
        return self._active_pointer is not None

    def touch_start(self, touches: list[float]) -> None:
        if len(touches) != 1:
            return
        self.pointer_down(touches[0], pointer_id=-1)

    def touch_move(self, touches: list[float]) -> None:
        if self._active_pointer != -1 or len(touches) != 1:
            return
        self.pointer_move(touches[0], pointer_id=-1)

    def touch_end(self) -> None:
        self.pointer_up(pointer_id=-1)

    # ------------------------------------------------------------------
    # amplitude / palette

    def compress(self) -> None:
        t = self.transform
        t.y_min, t.y_max = compress_range(t.y_min, t.y_max)
        self._notify()

    def expand(self) -> None:
        t = self.transform
        t.y_min, t.y_max = expand_range(t.y_min, t.y_max)
        self._notify()

    def fit(self) -> bool:
        if not self._fit_quietly():
            return False
        self._notify()
        return True

    def _fit_quietly(self) -> bool:
        if not len(self.samples):
            return False
        fitted = fit_range(self.samples.channel(self.transform.channel))
        if fitted is None:
            return False
        self.transform.y_min, self.transform.y_max = fitted
        return True

    def toggle_palette(self) -> None:
        self.transform.palette = self.transform.palette.toggled()
        self._notify()

    def key(self, name: str) -> bool:
        """Apply a keyboard shortcut; returns False for keys this plot ignores."""
        if name == "left":
            self.pan(-self.keyboard_pan_px)
        elif name == "right":
            self.pan(self.keyboard_pan_px)
        elif name == "+":
            self.compress()
        elif name == "-":
            self.expand()
        elif name == "f":
            self.fit()
        elif name == "c":
            self.toggle_palette()
        else:
            return False
        return True

    # ------------------------------------------------------------------
    # hover

    def tooltip(self, x: float, y: float | None = None) -> Tooltip | None:
        count = len(self.samples)
        if count == 0 or self.width <= 0:
            return None
        index = min(int(math.floor(float(x) / self.width * count)), count - 1)
        if index < 0:
            return None
        sample = self.samples.sample(index)
        value = sample.value(self.transform.channel)
        text = f"Time: {format_clock(sample.time_ms)}, Value: {value:.2f}"
        return Tooltip(float(x), float(y) if y is not None else 0.0, text, index)

    def close(self) -> None:
        if self._owner is not None and self._owner_token is not None:
            self._owner.detach(self._owner_token)
        self._owner = None
        self._owner_token = None
        self._listeners.clear()
