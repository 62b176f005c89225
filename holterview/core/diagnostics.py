"""Connection statistics and per-channel quality scores from the diagnostics service."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from holterview.core.samples import N_LEADS


@dataclass(frozen=True)
class DiagnosticsReport:
    sampling_frequency: float
    total_samples: int
    missing_samples: int
    connection_drops: int
    noise_levels: tuple[float, float, float]
    quality_scores: tuple[float, float, float]

    @property
    def missing_percent(self) -> float:
        if self.total_samples <= 0:
            return 0.0
        return self.missing_samples / self.total_samples * 100.0

    @classmethod
    def empty(cls) -> "DiagnosticsReport":
        return cls(0.0, 0, 0, 0, (0.0,) * N_LEADS, (0.0,) * N_LEADS)

    @classmethod
    def from_payload(cls, payload: Any) -> "DiagnosticsReport":
        """Parse a flat metrics object or a list of ``{chunk_start, chunk_end, metrics}``."""
        if payload is None:
            return cls.empty()
        if isinstance(payload, Mapping) and "data" in payload:
            return cls.from_payload(payload["data"])
        if isinstance(payload, Mapping):
            return cls._from_metrics(payload.get("metrics", payload))
        if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
            reports = [cls._from_metrics(item.get("metrics", item)) for item in payload]
            return cls.combine(reports)
        raise ValueError(f"unrecognised diagnostics payload: {type(payload).__name__}")

    @classmethod
    def combine(cls, reports: Sequence["DiagnosticsReport"]) -> "DiagnosticsReport":
        if not reports:
            return cls.empty()
        n = len(reports)
        return cls(
            sampling_frequency=max(r.sampling_frequency for r in reports),
            total_samples=sum(r.total_samples for r in reports),
            missing_samples=sum(r.missing_samples for r in reports),
            connection_drops=sum(r.connection_drops for r in reports),
            noise_levels=tuple(sum(r.noise_levels[i] for r in reports) / n for i in range(N_LEADS)),
            quality_scores=tuple(sum(r.quality_scores[i] for r in reports) / n for i in range(N_LEADS)),
        )

    @classmethod
    def _from_metrics(cls, metrics: Mapping[str, Any]) -> "DiagnosticsReport":
        stats = metrics.get("connection_stats") or {}
        quality = metrics.get("signal_quality") or {}
        noise = quality.get("noise_levels") or {}
        scores = quality.get("quality_scores") or {}
        return cls(
            sampling_frequency=float(stats.get("sampling_frequency") or 0.0),
            total_samples=int(stats.get("total_samples") or 0),
            missing_samples=int(stats.get("missing_samples") or 0),
            connection_drops=int(stats.get("connection_drops") or 0),
            noise_levels=tuple(float(noise.get(f"channel_{i + 1}") or 0.0) for i in range(N_LEADS)),
            quality_scores=tuple(float(scores.get(f"channel_{i + 1}") or 0.0) for i in range(N_LEADS)),
        )
