import pytest

from holterview.core.downsample import FactorPolicy, factor_for_duration, resolve_factor
from holterview.core.errors import InvalidParametersError
from holterview.core.timebase import parse_instant
from holterview.core.window import (
    MS_PER_HOUR,
    Selection,
    WindowLimits,
    WindowRequest,
    validate_window,
)

START = "2024-03-01T00:00:00Z"


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (5, 1),
        (10, 1),
        (11, 2),
        (30, 2),
        (31, 3),
        (60, 3),
        (61, 5),
        (180, 5),
        (181, 8),
        (360, 8),
        (361, 10),
        (720, 10),
        (721, 15),
        (1440, 15),
    ],
)
def test_factor_steps_are_half_open(minutes, expected):
    assert factor_for_duration(minutes * 60.0) == expected


def test_factor_is_monotonic_in_duration():
    factors = [factor_for_duration(m * 60.0) for m in range(1, 24 * 60 + 1, 7)]
    assert factors == sorted(factors)


def test_factor_ceiling_clamps():
    policy = FactorPolicy(ceiling=3)
    assert factor_for_duration(24 * 3600.0, policy) == 3
    assert resolve_factor(10, 60.0, policy) == 3


def test_resolve_factor_rejects_non_positive():
    with pytest.raises(InvalidParametersError):
        resolve_factor(0, 60.0)
    with pytest.raises(InvalidParametersError):
        resolve_factor(True, 60.0)
    assert resolve_factor(None, 45 * 60.0) == 3


def test_validate_window_happy_path():
    device, start_ms, end_ms = validate_window(" pod-1 ", START, "2024-03-01T01:00:00Z")
    assert device == "pod-1"
    assert end_ms - start_ms == MS_PER_HOUR


@pytest.mark.parametrize(
    "device, start, end, message",
    [
        ("", START, "2024-03-01T01:00:00Z", "Pod ID"),
        ("pod", None, "2024-03-01T01:00:00Z", "required"),
        ("pod", "yesterday", "2024-03-01T01:00:00Z", "start time"),
        ("pod", START, "later", "end time"),
        ("pod", "2024-03-01T01:00:00Z", START, "before"),
        ("pod", START, START, "before"),
    ],
)
def test_validate_window_rejects_bad_input(device, start, end, message):
    with pytest.raises(InvalidParametersError, match=message):
        validate_window(device, start, end)


def test_validate_window_caps_duration_only_with_limits():
    end = "2024-03-02T01:00:00Z"
    with pytest.raises(InvalidParametersError, match="too large"):
        validate_window("pod", START, end, limits=WindowLimits())
    _, start_ms, end_ms = validate_window("pod", START, end)
    assert end_ms - start_ms == 25 * MS_PER_HOUR


def test_exactly_max_duration_is_allowed():
    validate_window("pod", START, "2024-03-02T00:00:00Z", limits=WindowLimits())


def test_request_wire_format_and_cache_key():
    start_ms = parse_instant(START)
    request = WindowRequest("pod", start_ms, start_ms + MS_PER_HOUR, factor=3, max_points=2000)
    assert request.cache_key == ("pod", start_ms, start_ms + MS_PER_HOUR, 3)
    assert request.to_wire() == {
        "device_id": "pod",
        "time_start": "2024-03-01T00:00:00.000Z",
        "time_end": "2024-03-01T01:00:00.000Z",
        "factor": 3,
        "max_points": 2000,
    }


def test_selection_validates_like_window():
    selection = Selection("pod", START, "2024-03-01T00:10:00Z")
    assert selection.validate()[0] == "pod"
    with pytest.raises(InvalidParametersError):
        Selection("", START, "2024-03-01T00:10:00Z").validate()
