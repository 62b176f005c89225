"""Per-lead signal quality summary of a loaded sample set."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from holterview.core.samples import N_LEADS, Channel, SampleSet

__all__ = ["LeadQuality", "QualitySummary", "summarize_quality", "status_for"]

GOOD_THRESHOLD = 80.0
FAIR_THRESHOLD = 50.0


@dataclass(frozen=True)
class LeadQuality:
    good_percent: float
    lead_off_percent: float


@dataclass(frozen=True)
class QualitySummary:
    leads: tuple[LeadQuality, LeadQuality, LeadQuality]
    total: int

    def lead(self, channel: Channel | int) -> LeadQuality:
        return self.leads[Channel.coerce(channel).index]

    def worst_lead(self) -> Channel:
        idx = min(range(N_LEADS), key=lambda i: self.leads[i].good_percent)
        return Channel(idx + 1)


def summarize_quality(samples: SampleSet) -> QualitySummary:
    total = len(samples)
    if total == 0:
        zero = LeadQuality(0.0, 0.0)
        return QualitySummary((zero, zero, zero), 0)
    lead_on = samples.lead_on_p & samples.lead_on_n
    good = np.count_nonzero(lead_on & samples.quality, axis=0)
    off = np.count_nonzero(~lead_on, axis=0)
    leads = tuple(
        LeadQuality(
            good_percent=float(good[i]) / total * 100.0,
            lead_off_percent=float(off[i]) / total * 100.0,
        )
        for i in range(N_LEADS)
    )
    return QualitySummary(leads, total)


def status_for(percent: float) -> str:
    if percent >= GOOD_THRESHOLD:
        return "good"
    if percent >= FAIR_THRESHOLD:
        return "fair"
    return "poor"
