import numpy as np
import pytest

from holterview.core.samples import Channel, SampleSet
from holterview.core.timebase import format_instant, parse_instant


def _record(t, values=(1.0, 2.0, 3.0), lead_on=(True, True, True), quality=(True, True, True)):
    row = {"time": t}
    for i in range(3):
        row[f"channel_{i + 1}"] = values[i]
        row[f"lead_on_p_{i + 1}"] = lead_on[i]
        row[f"lead_on_n_{i + 1}"] = lead_on[i]
        row[f"quality_{i + 1}"] = quality[i]
    return row


def test_from_records_sorts_by_time():
    rows = [
        _record("2024-03-01T10:00:02Z", values=(3.0, 0.0, 0.0)),
        _record("2024-03-01T10:00:00Z", values=(1.0, 0.0, 0.0)),
        _record("2024-03-01T10:00:01Z", values=(2.0, 0.0, 0.0)),
    ]
    samples = SampleSet.from_records(rows)
    assert len(samples) == 3
    assert np.all(np.diff(samples.t_ms) >= 0)
    np.testing.assert_allclose(samples.channel(Channel.LEAD_1), [1.0, 2.0, 3.0])


def test_from_records_accepts_legacy_channel_names():
    row = {
        "sample_time": "2024-03-01T10:00:00Z",
        "downsampled_channel_1": 4.5,
        "downsampled_channel_2": -1.0,
        "downsampled_channel_3": 0.25,
        "lead_on_p_1": True,
        "lead_on_n_1": True,
    }
    samples = SampleSet.from_records([row])
    sample = samples.sample(0)
    assert sample.channels == (4.5, -1.0, 0.25)
    assert sample.lead_on(1) is True
    assert sample.lead_on(2) is False


def test_from_columns_matches_record_encoding():
    times = ["2024-03-01T10:00:00Z", "2024-03-01T10:00:01Z"]
    columns = {
        "timestamps": times,
        "channel_1": [1.0, 2.0],
        "channel_2": [3.0, 4.0],
        "channel_3": [5.0, 6.0],
        "lead_on_p_1": [True, False],
        "lead_on_n_1": [True, True],
        "quality_1": [True, True],
    }
    samples = SampleSet.from_columns(columns)
    assert samples.t_ms.tolist() == [parse_instant(t) for t in times]
    assert samples.lead_on(Channel.LEAD_1).tolist() == [True, False]
    assert samples.lead_on(Channel.LEAD_2).tolist() == [False, False]


def test_from_columns_rejects_mismatched_lengths():
    with pytest.raises(ValueError, match="channel_1"):
        SampleSet.from_columns({"timestamps": ["2024-03-01T10:00:00Z"], "channel_1": [1.0, 2.0]})


def test_from_payload_unwraps_data_envelope():
    payload = {"data": [_record("2024-03-01T10:00:00Z")]}
    samples = SampleSet.from_payload(payload)
    assert len(samples) == 1
    assert SampleSet.from_payload(None).is_empty
    with pytest.raises(ValueError):
        SampleSet.from_payload("not a payload")


def test_lead_on_requires_both_electrodes():
    samples = SampleSet.from_arrays(
        [0, 1],
        [[0.0] * 3, [0.0] * 3],
        lead_on_p=[[True, True, False], [True, True, True]],
        lead_on_n=[[True, False, True], [True, True, True]],
    )
    assert samples.lead_on(1).tolist() == [True, True]
    assert samples.lead_on(2).tolist() == [False, True]
    assert samples.lead_on(3).tolist() == [False, True]


def test_concat_orders_across_sets():
    a = SampleSet.from_arrays([10, 20], [[1.0] * 3, [2.0] * 3])
    b = SampleSet.from_arrays([5, 15], [[0.5] * 3, [1.5] * 3])
    merged = SampleSet.concat([a, SampleSet.empty(), b])
    assert merged.t_ms.tolist() == [5, 10, 15, 20]
    np.testing.assert_allclose(merged.channel(1), [0.5, 1.0, 1.5, 2.0])


def test_slice_time_inclusive_bounds():
    samples = SampleSet.from_arrays([0, 10, 20, 30], np.zeros((4, 3)))
    sliced = samples.slice_time(10, 20)
    assert sliced.t_ms.tolist() == [10, 20]
    assert samples.start_ms == 0
    assert samples.end_ms == 30
    assert SampleSet.empty().start_ms is None


def test_channel_coerce_rejects_unknown_lead():
    assert Channel.coerce(2) is Channel.LEAD_2
    assert Channel.LEAD_3.index == 2
    with pytest.raises(ValueError):
        Channel.coerce(4)


def test_instant_round_trip_keeps_milliseconds():
    ms = parse_instant("2024-03-01T10:00:00.250Z")
    assert format_instant(ms) == "2024-03-01T10:00:00.250Z"
    assert parse_instant("2024-03-01T10:00:00") == parse_instant("2024-03-01T10:00:00+00:00")
