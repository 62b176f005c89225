"""Column store for 3-lead downsampled ECG samples and wire-format normalisation."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from holterview.core.timebase import format_instant, parse_instant

__all__ = [
    "N_LEADS",
    "Channel",
    "Sample",
    "SampleSet",
]

N_LEADS = 3

_CHANNEL_FIELDS = ("channel_1", "channel_2", "channel_3")
_LEGACY_CHANNEL_FIELDS = (
    "downsampled_channel_1",
    "downsampled_channel_2",
    "downsampled_channel_3",
)
_LEAD_P_FIELDS = ("lead_on_p_1", "lead_on_p_2", "lead_on_p_3")
_LEAD_N_FIELDS = ("lead_on_n_1", "lead_on_n_2", "lead_on_n_3")
_QUALITY_FIELDS = ("quality_1", "quality_2", "quality_3")
_TIME_FIELDS = ("time", "sample_time", "timestamp")


class Channel(enum.IntEnum):
    LEAD_1 = 1
    LEAD_2 = 2
    LEAD_3 = 3

    @property
    def index(self) -> int:
        return int(self) - 1

    @classmethod
    def coerce(cls, value: "Channel | int") -> "Channel":
        try:
            return cls(int(value))
        except ValueError:
            raise ValueError(f"channel must be 1, 2 or 3, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class Sample:
    time_ms: int
    channels: tuple[float, float, float]
    lead_on_p: tuple[bool, bool, bool]
    lead_on_n: tuple[bool, bool, bool]
    quality: tuple[bool, bool, bool]

    def lead_on(self, channel: Channel | int) -> bool:
        idx = Channel.coerce(channel).index
        return self.lead_on_p[idx] and self.lead_on_n[idx]

    def value(self, channel: Channel | int) -> float:
        return self.channels[Channel.coerce(channel).index]

    @property
    def time_iso(self) -> str:
        return format_instant(self.time_ms)


@dataclass(frozen=True)
class SampleSet:
    """Immutable, time-ordered set of samples stored column-wise.

    ``t_ms`` is int64 epoch milliseconds, ``channels`` float64 (N, 3) and the three flag
    arrays bool (N, 3). Timestamps are non-decreasing.
    """

    t_ms: np.ndarray
    channels: np.ndarray
    lead_on_p: np.ndarray
    lead_on_n: np.ndarray
    quality: np.ndarray

    def __post_init__(self) -> None:
        n = self.t_ms.shape[0]
        for name in ("channels", "lead_on_p", "lead_on_n", "quality"):
            arr = getattr(self, name)
            if arr.shape != (n, N_LEADS):
                raise ValueError(f"{name} must have shape ({n}, {N_LEADS}), got {arr.shape}")
        if n > 1 and np.any(np.diff(self.t_ms) < 0):
            raise ValueError("sample timestamps must be non-decreasing")

    # ------------------------------------------------------------------
    # construction

    @classmethod
    def empty(cls) -> "SampleSet":
        return cls(
            np.zeros(0, dtype=np.int64),
            np.zeros((0, N_LEADS), dtype=np.float64),
            np.zeros((0, N_LEADS), dtype=bool),
            np.zeros((0, N_LEADS), dtype=bool),
            np.zeros((0, N_LEADS), dtype=bool),
        )

    @classmethod
    def from_arrays(
        cls,
        t_ms: Sequence[int] | np.ndarray,
        channels: Sequence[Sequence[float]] | np.ndarray,
        lead_on_p: Sequence[Sequence[bool]] | np.ndarray | None = None,
        lead_on_n: Sequence[Sequence[bool]] | np.ndarray | None = None,
        quality: Sequence[Sequence[bool]] | np.ndarray | None = None,
    ) -> "SampleSet":
        """Build a set from arrays in any order; rows are stably sorted by time."""
        t = np.asarray(t_ms, dtype=np.int64).reshape(-1)
        n = t.size
        ch = np.asarray(channels, dtype=np.float64).reshape(n, N_LEADS)

        def _flags(values) -> np.ndarray:
            if values is None:
                return np.ones((n, N_LEADS), dtype=bool)
            return np.asarray(values, dtype=bool).reshape(n, N_LEADS)

        p = _flags(lead_on_p)
        m = _flags(lead_on_n)
        q = _flags(quality)
        if n > 1 and np.any(np.diff(t) < 0):
            order = np.argsort(t, kind="mergesort")
            t, ch, p, m, q = t[order], ch[order], p[order], m[order], q[order]
        return cls(t, ch, p, m, q)

    @classmethod
    def from_records(cls, rows: Iterable[Mapping[str, Any]]) -> "SampleSet":
        """Normalise the one-object-per-sample wire encoding."""
        rows = list(rows)
        n = len(rows)
        if n == 0:
            return cls.empty()
        t = np.empty(n, dtype=np.int64)
        ch = np.zeros((n, N_LEADS), dtype=np.float64)
        p = np.zeros((n, N_LEADS), dtype=bool)
        m = np.zeros((n, N_LEADS), dtype=bool)
        q = np.zeros((n, N_LEADS), dtype=bool)
        for i, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise ValueError(f"sample record {i} is not an object")
            t[i] = parse_instant(_first_present(row, _TIME_FIELDS))
            nested = row.get("channels")
            for lead in range(N_LEADS):
                if nested is not None:
                    ch[i, lead] = _as_float(nested[lead])
                    p[i, lead] = bool(row["lead_on_p"][lead])
                    m[i, lead] = bool(row["lead_on_n"][lead])
                    q[i, lead] = bool(row["quality"][lead])
                    continue
                value = row.get(_CHANNEL_FIELDS[lead])
                if value is None:
                    value = row.get(_LEGACY_CHANNEL_FIELDS[lead])
                ch[i, lead] = _as_float(value)
                p[i, lead] = bool(row.get(_LEAD_P_FIELDS[lead]) or False)
                m[i, lead] = bool(row.get(_LEAD_N_FIELDS[lead]) or False)
                q[i, lead] = bool(row.get(_QUALITY_FIELDS[lead]) or False)
        return cls.from_arrays(t, ch, p, m, q)

    @classmethod
    def from_columns(cls, columns: Mapping[str, Sequence[Any]]) -> "SampleSet":
        """Normalise the parallel-array wire encoding (index-aligned arrays)."""
        times = columns.get("timestamps")
        if times is None:
            raise ValueError("parallel-array payload requires 'timestamps'")
        n = len(times)
        lengths = {"timestamps": n}
        for name in _CHANNEL_FIELDS + _LEAD_P_FIELDS + _LEAD_N_FIELDS + _QUALITY_FIELDS:
            values = columns.get(name)
            if values is not None:
                lengths[name] = len(values)
        mismatched = sorted(name for name, size in lengths.items() if size != n)
        if mismatched:
            raise ValueError(f"parallel arrays differ in length: {', '.join(mismatched)}")
        if n == 0:
            return cls.empty()

        t = np.fromiter((parse_instant(v) for v in times), dtype=np.int64, count=n)

        def _column(fields: Sequence[str], dtype, default) -> np.ndarray:
            out = np.full((n, N_LEADS), default, dtype=dtype)
            for lead, name in enumerate(fields):
                values = columns.get(name)
                if values is None:
                    continue
                if dtype is bool:
                    out[:, lead] = [bool(v) for v in values]
                else:
                    out[:, lead] = [_as_float(v) for v in values]
            return out

        return cls.from_arrays(
            t,
            _column(_CHANNEL_FIELDS, np.float64, 0.0),
            _column(_LEAD_P_FIELDS, bool, False),
            _column(_LEAD_N_FIELDS, bool, False),
            _column(_QUALITY_FIELDS, bool, False),
        )

    @classmethod
    def from_payload(cls, payload: Any) -> "SampleSet":
        """Accept either service encoding (optionally wrapped in ``{"data": ...}``)."""
        if payload is None:
            return cls.empty()
        if isinstance(payload, Mapping):
            if "timestamps" in payload:
                return cls.from_columns(payload)
            if "data" in payload:
                return cls.from_payload(payload["data"])
            if "samples" in payload:
                return cls.from_payload(payload["samples"])
            raise ValueError("unrecognised ECG payload object")
        if isinstance(payload, (list, tuple)):
            return cls.from_records(payload)
        raise ValueError(f"unrecognised ECG payload type: {type(payload).__name__}")

    @classmethod
    def concat(cls, sets: Iterable["SampleSet"]) -> "SampleSet":
        parts = [s for s in sets if len(s)]
        if not parts:
            return cls.empty()
        if len(parts) == 1:
            return parts[0]
        return cls.from_arrays(
            np.concatenate([s.t_ms for s in parts]),
            np.concatenate([s.channels for s in parts]),
            np.concatenate([s.lead_on_p for s in parts]),
            np.concatenate([s.lead_on_n for s in parts]),
            np.concatenate([s.quality for s in parts]),
        )

    # ------------------------------------------------------------------
    # access

    def __len__(self) -> int:
        return int(self.t_ms.shape[0])

    def __iter__(self):
        for i in range(len(self)):
            yield self.sample(i)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def start_ms(self) -> int | None:
        return int(self.t_ms[0]) if len(self) else None

    @property
    def end_ms(self) -> int | None:
        return int(self.t_ms[-1]) if len(self) else None

    def channel(self, channel: Channel | int) -> np.ndarray:
        return self.channels[:, Channel.coerce(channel).index]

    def lead_on(self, channel: Channel | int) -> np.ndarray:
        idx = Channel.coerce(channel).index
        return self.lead_on_p[:, idx] & self.lead_on_n[:, idx]

    def quality_flags(self, channel: Channel | int) -> np.ndarray:
        return self.quality[:, Channel.coerce(channel).index]

    def sample(self, index: int) -> Sample:
        i = int(index)
        return Sample(
            time_ms=int(self.t_ms[i]),
            channels=tuple(float(v) for v in self.channels[i]),
            lead_on_p=tuple(bool(v) for v in self.lead_on_p[i]),
            lead_on_n=tuple(bool(v) for v in self.lead_on_n[i]),
            quality=tuple(bool(v) for v in self.quality[i]),
        )

    def slice_time(self, start_ms: int, end_ms: int) -> "SampleSet":
        lo = int(np.searchsorted(self.t_ms, start_ms, side="left"))
        hi = int(np.searchsorted(self.t_ms, end_ms, side="right"))
        return SampleSet(
            self.t_ms[lo:hi],
            self.channels[lo:hi],
            self.lead_on_p[lo:hi],
            self.lead_on_n[lo:hi],
            self.quality[lo:hi],
        )

    @property
    def nbytes(self) -> int:
        return int(
            self.t_ms.nbytes
            + self.channels.nbytes
            + self.lead_on_p.nbytes
            + self.lead_on_n.nbytes
            + self.quality.nbytes
        )


def _first_present(row: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    raise ValueError(f"sample record missing time field (expected one of {', '.join(names)})")


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)
