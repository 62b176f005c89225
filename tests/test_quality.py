import numpy as np
import pytest

from holterview.core.quality import status_for, summarize_quality
from holterview.core.samples import Channel, SampleSet


def test_good_requires_lead_on_and_quality():
    samples = SampleSet.from_arrays(
        [0, 1, 2, 3],
        np.zeros((4, 3)),
        lead_on_p=[[True, True, False], [True, True, False], [True, False, False], [True, True, False]],
        lead_on_n=[[True, True, True], [True, True, True], [True, True, True], [True, True, True]],
        quality=[[True, False, True], [True, True, True], [False, True, True], [True, True, True]],
    )
    summary = summarize_quality(samples)
    assert summary.total == 4
    assert summary.lead(Channel.LEAD_1).good_percent == pytest.approx(75.0)
    assert summary.lead(1).lead_off_percent == 0.0
    assert summary.lead(2).good_percent == pytest.approx(50.0)
    assert summary.lead(2).lead_off_percent == pytest.approx(25.0)
    assert summary.lead(3).good_percent == 0.0
    assert summary.lead(3).lead_off_percent == pytest.approx(100.0)
    assert summary.worst_lead() is Channel.LEAD_3


def test_empty_set_reports_zero():
    summary = summarize_quality(SampleSet.empty())
    assert summary.total == 0
    for channel in Channel:
        assert summary.lead(channel).good_percent == 0.0
        assert summary.lead(channel).lead_off_percent == 0.0


@pytest.mark.parametrize(
    "percent, status",
    [(100.0, "good"), (80.0, "good"), (79.9, "fair"), (50.0, "fair"), (49.9, "poor"), (0.0, "poor")],
)
def test_status_thresholds(percent, status):
    assert status_for(percent) == status
