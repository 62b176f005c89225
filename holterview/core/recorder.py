"""Bounded history of recent service queries for the diagnostics panel."""
from __future__ import annotations

import enum
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

LOG = logging.getLogger(__name__)

__all__ = ["Outcome", "QueryKind", "QueryRecord", "QueryRecorder", "RecorderSummary"]


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    CACHE_HIT = "cache_hit"
    ERROR = "error"


class QueryKind(str, enum.Enum):
    WINDOW = "window"
    CHUNK = "chunk"
    DIAGNOSTICS = "diagnostics"
    AGGREGATES = "aggregates"


@dataclass(frozen=True)
class QueryRecord:
    device_id: str
    time_start: str
    time_end: str
    factor: int | None
    points: int
    duration_ms: float
    outcome: Outcome
    recorded_at: float
    kind: QueryKind = QueryKind.WINDOW
    error: str | None = None


@dataclass(frozen=True)
class RecorderSummary:
    total: int
    average_duration_ms: float
    max_duration_ms: float
    average_points: float
    max_points: int
    cache_hits: int
    errors: int


Listener = Callable[[QueryRecord], None]


class QueryRecorder:
    """Ring buffer of the most recent queries, created and closed with its loader."""

    def __init__(self, capacity: int = 10, *, clock: Callable[[], float] = time.time):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._records: deque[QueryRecord] = deque(maxlen=int(capacity))
        self._listeners: list[Listener] = []
        self._clock = clock
        self._lock = threading.RLock()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    @property
    def closed(self) -> bool:
        return self._closed

    def record(
        self,
        *,
        device_id: str,
        time_start: str,
        time_end: str,
        factor: int | None,
        points: int,
        duration_ms: float,
        outcome: Outcome,
        kind: QueryKind = QueryKind.WINDOW,
        error: str | None = None,
    ) -> QueryRecord | None:
        if self._closed:
            return None
        entry = QueryRecord(
            device_id=device_id,
            time_start=time_start,
            time_end=time_end,
            factor=factor,
            points=int(points),
            duration_ms=float(duration_ms),
            outcome=outcome,
            recorded_at=self._clock(),
            kind=kind,
            error=error,
        )
        with self._lock:
            self._records.append(entry)
            listeners = list(self._listeners)
        LOG.debug(
            "%s query %s %s..%s: %s in %.0f ms (%d points)",
            kind.value,
            device_id,
            time_start,
            time_end,
            outcome.value,
            entry.duration_ms,
            entry.points,
        )
        for listener in listeners:
            try:
                listener(entry)
            except Exception:
                LOG.exception("Query recorder listener failed")
        return entry

    def records(self) -> list[QueryRecord]:
        """Most recent first."""
        with self._lock:
            return list(reversed(self._records))

    def summary(self) -> RecorderSummary:
        with self._lock:
            items = list(self._records)
        if not items:
            return RecorderSummary(0, 0.0, 0.0, 0.0, 0, 0, 0)
        durations = [r.duration_ms for r in items]
        points = [r.points for r in items]
        return RecorderSummary(
            total=len(items),
            average_duration_ms=sum(durations) / len(items),
            max_duration_ms=max(durations),
            average_points=sum(points) / len(items),
            max_points=max(points),
            cache_hits=sum(1 for r in items if r.outcome is Outcome.CACHE_HIT),
            errors=sum(1 for r in items if r.outcome is Outcome.ERROR),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._records.clear()
            self._listeners.clear()
