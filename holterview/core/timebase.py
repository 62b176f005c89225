from __future__ import annotations
from datetime import datetime, timedelta, timezone
import numpy as np


def parse_instant(value) -> int:
    """
    Convert an ISO-8601 string, datetime or epoch-milliseconds number to epoch ms (UTC).
    Naive datetimes are treated as UTC. Raises ValueError on unparsable input.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid instant: {value!r}")
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if not np.isfinite(value):
            raise ValueError(f"invalid instant: {value!r}")
        return int(round(float(value)))
    if isinstance(value, np.datetime64):
        return int(value.astype("datetime64[ms]").astype(np.int64))
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty instant")
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid instant: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000.0))


def format_instant(ms: int) -> str:
    """Format epoch ms as ISO-8601 UTC with millisecond precision and a Z suffix."""
    dt = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=int(ms))
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def to_datetime(ms: int) -> datetime:
    return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=int(ms))


def format_clock(ms: int) -> str:
    """HH:MM:SS wall-clock label (UTC) for an absolute instant."""
    return to_datetime(ms).strftime("%H:%M:%S")
