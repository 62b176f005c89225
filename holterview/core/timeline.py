"""Compressed quality timeline: bucket colours, drag-to-select and debounced emission."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from holterview.core.samples import N_LEADS
from holterview.core.timebase import parse_instant

LOG = logging.getLogger(__name__)

__all__ = [
    "AggregateBucket",
    "QUALITY_COLORS",
    "quality_color",
    "TimelineBar",
    "TimelineModel",
    "resolve_selection",
    "DragSelection",
    "Debouncer",
    "TimelineOverview",
    "bucket_range_to_window",
]

# (exclusive upper bound, color); anything >= 80 is green.
QUALITY_COLORS: tuple[tuple[float, str], ...] = (
    (20.0, "#ef4444"),  # red
    (40.0, "#f97316"),  # orange
    (60.0, "#f59e0b"),  # amber
    (80.0, "#eab308"),  # yellow
)
QUALITY_GOOD_COLOR = "#4ade80"


@dataclass(frozen=True)
class AggregateBucket:
    start_ms: int
    quality_percent: tuple[float, float, float]

    @property
    def average(self) -> float:
        return sum(self.quality_percent) / N_LEADS

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AggregateBucket":
        start = row.get("time_bucket")
        if start is None:
            start = row.get("bucket_start")
        if start is None:
            raise ValueError("aggregate row missing 'time_bucket'")
        return cls(
            start_ms=parse_instant(start),
            quality_percent=tuple(
                float(row.get(f"quality_{lead}_percent") or 0.0) for lead in range(1, N_LEADS + 1)
            ),
        )

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> list["AggregateBucket"]:
        buckets = [cls.from_row(row) for row in rows]
        buckets.sort(key=lambda b: b.start_ms)
        return buckets


def quality_color(quality: float) -> str:
    q = max(0.0, min(float(quality), 100.0)) if math.isfinite(quality) else 0.0
    for upper, color in QUALITY_COLORS:
        if q < upper:
            return color
    return QUALITY_GOOD_COLOR


@dataclass(frozen=True)
class TimelineBar:
    index: int
    x: float
    width: float
    color: str
    quality: float


class TimelineModel:
    """Geometry for one bar per bucket across a fixed pixel width."""

    def __init__(self, buckets: Sequence[AggregateBucket], width: float):
        if width <= 0:
            raise ValueError("width must be positive")
        self.buckets = list(buckets)
        self.width = float(width)

    def __len__(self) -> int:
        return len(self.buckets)

    def averages(self) -> list[float]:
        return [b.average for b in self.buckets]

    def colors(self) -> list[str]:
        return [quality_color(q) for q in self.averages()]

    def bars(self) -> list[TimelineBar]:
        count = len(self.buckets)
        if count == 0:
            return []
        seg = self.width / count
        return [
            TimelineBar(idx, idx * seg, seg, quality_color(avg), avg)
            for idx, avg in enumerate(self.averages())
        ]

    def selection_rect(self, start_idx: int, end_idx: int) -> tuple[float, float]:
        """Return ``(x, width)`` covering buckets ``start_idx..end_idx`` inclusive."""
        count = len(self.buckets)
        if count == 0:
            return 0.0, 0.0
        seg = self.width / count
        lo, hi = sorted((start_idx, end_idx))
        return lo * seg, (hi - lo + 1) * seg


def resolve_selection(x1: float, x2: float, width: float, count: int) -> tuple[int, int] | None:
    """Map a drag between two pixels onto an inclusive bucket index range."""
    if count <= 0 or width <= 0:
        return None
    lo = min(x1, x2)
    hi = max(x1, x2)
    start_idx = int(math.floor(lo * count / width))
    end_idx = int(math.floor(hi * count / width))
    last = count - 1
    start_idx = max(0, min(start_idx, last))
    end_idx = max(0, min(end_idx, last))
    return start_idx, end_idx


class DragSelection:
    """Transient pointer-drag state on the timeline."""

    def __init__(self) -> None:
        self.start_px: float | None = None
        self.end_px: float | None = None

    @property
    def active(self) -> bool:
        return self.start_px is not None

    def press(self, x: float) -> None:
        self.start_px = float(x)
        self.end_px = float(x)

    def move(self, x: float) -> None:
        if self.start_px is None:
            return
        self.end_px = float(x)

    def span(self) -> tuple[float, float] | None:
        if self.start_px is None or self.end_px is None:
            return None
        return min(self.start_px, self.end_px), max(self.start_px, self.end_px)

    def release(self) -> tuple[float, float] | None:
        span = self.span()
        self.start_px = None
        self.end_px = None
        return span


class _Cancellable(Protocol):
    def cancel(self) -> Any:
        ...


CallLater = Callable[[float, Callable[[], None]], _Cancellable]


class Debouncer:
    """Trailing-edge debounce: only the last call within ``delay_s`` fires."""

    def __init__(self, callback: Callable[..., None], delay_s: float, call_later: CallLater):
        if delay_s < 0:
            raise ValueError("delay_s must be non-negative")
        self._callback = callback
        self._delay_s = float(delay_s)
        self._call_later = call_later
        self._handle: _Cancellable | None = None
        self._pending: tuple | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args) -> None:
        self.cancel()
        self._pending = args
        self._handle = self._call_later(self._delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = None

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._fire()

    def _fire(self) -> None:
        args = self._pending
        self._handle = None
        self._pending = None
        if args is not None:
            self._callback(*args)


class TimelineOverview:
    """Timeline model, drag state and debounced range emission wired together."""

    def __init__(
        self,
        buckets: Sequence[AggregateBucket],
        width: float,
        *,
        on_select: Callable[[int, int], None],
        call_later: CallLater,
        debounce_s: float = 0.15,
    ):
        self.model = TimelineModel(buckets, width)
        self.drag = DragSelection()
        self.selected: tuple[int, int] | None = None
        self._emit = Debouncer(on_select, debounce_s, call_later)

    def set_buckets(self, buckets: Sequence[AggregateBucket]) -> None:
        self.model = TimelineModel(buckets, self.model.width)
        self.selected = None

    def resize(self, width: float) -> None:
        self.model = TimelineModel(self.model.buckets, width)

    def pointer_down(self, x: float) -> None:
        self.drag.press(x)

    def pointer_move(self, x: float) -> None:
        self.drag.move(x)

    def pointer_up(self) -> tuple[int, int] | None:
        span = self.drag.release()
        if span is None:
            return None
        selection = resolve_selection(span[0], span[1], self.model.width, len(self.model))
        if selection is None:
            return None
        self.selected = selection
        LOG.debug("Timeline selection %s from pixels %s", selection, span)
        self._emit(*selection)
        return selection

    def close(self) -> None:
        self._emit.cancel()


def bucket_range_to_window(
    buckets: Sequence[AggregateBucket],
    start_idx: int,
    end_idx: int,
    bucket_ms: int,
) -> tuple[int, int]:
    """Convert an inclusive bucket selection into a ``(start_ms, end_ms)`` window."""
    if not buckets:
        raise ValueError("no buckets to select from")
    lo, hi = sorted((int(start_idx), int(end_idx)))
    lo = max(0, min(lo, len(buckets) - 1))
    hi = max(0, min(hi, len(buckets) - 1))
    return buckets[lo].start_ms, buckets[hi].start_ms + int(bucket_ms)
