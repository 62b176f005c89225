"""Validated, immutable window requests for the downsampling service."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from holterview.core.errors import InvalidParametersError
from holterview.core.timebase import format_instant, parse_instant

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE


@dataclass(frozen=True)
class WindowLimits:
    max_duration_s: float = 24 * 3600.0

    @property
    def max_duration_ms(self) -> int:
        return int(round(self.max_duration_s * MS_PER_SECOND))


@dataclass(frozen=True)
class WindowRequest:
    device_id: str
    start_ms: int
    end_ms: int
    factor: int
    max_points: int

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def cache_key(self) -> tuple[str, int, int, int]:
        return (self.device_id, self.start_ms, self.end_ms, self.factor)

    @property
    def time_start(self) -> str:
        return format_instant(self.start_ms)

    @property
    def time_end(self) -> str:
        return format_instant(self.end_ms)

    def to_wire(self) -> dict[str, object]:
        return {
            "device_id": self.device_id,
            "time_start": self.time_start,
            "time_end": self.time_end,
            "factor": int(self.factor),
            "max_points": int(self.max_points),
        }


def validate_window(device_id, start, end, *, limits: WindowLimits | None = None) -> tuple[str, int, int]:
    """Check a requested window without touching the network.

    Returns ``(device_id, start_ms, end_ms)``; raises :class:`InvalidParametersError`.
    Without ``limits`` the duration is not capped (whole-recording overviews).
    """
    if not isinstance(device_id, str) or not device_id.strip():
        raise InvalidParametersError("Pod ID is required.")
    if start is None or end is None or start == "" or end == "":
        raise InvalidParametersError("Start and end times are required.")
    try:
        start_ms = parse_instant(start)
    except (TypeError, ValueError):
        raise InvalidParametersError("Invalid start time format.") from None
    try:
        end_ms = parse_instant(end)
    except (TypeError, ValueError):
        raise InvalidParametersError("Invalid end time format.") from None
    if start_ms >= end_ms:
        raise InvalidParametersError("Start time must be before end time.")
    duration_ms = end_ms - start_ms
    if limits is not None and duration_ms > limits.max_duration_ms:
        hours = duration_ms / MS_PER_HOUR
        max_hours = limits.max_duration_s / 3600.0
        raise InvalidParametersError(
            f"Time range too large ({hours:.0f} hours). Maximum is {max_hours:g} hours."
        )
    return device_id.strip(), start_ms, end_ms


class WorklistSelection(Protocol):
    """What the worklist hands over when a study is opened."""

    device_id: str
    start: Any
    end: Any


@dataclass(frozen=True)
class Selection:
    device_id: str
    start: Any
    end: Any

    def validate(self, limits: WindowLimits | None = None) -> tuple[str, int, int]:
        return validate_window(self.device_id, self.start, self.end, limits=limits)
