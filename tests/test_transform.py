import numpy as np
import pytest

from holterview.core.interaction import PlotInteraction
from holterview.core.samples import Channel, SampleSet
from holterview.core.timebase import parse_instant
from holterview.core.transform import (
    SCALE_MAX,
    SCALE_MIN,
    CoordinateMapper,
    Palette,
    TransformOwner,
    ViewTransform,
    compress_range,
    expand_range,
    fit_range,
    zoom_scale,
)

T0 = parse_instant("2024-03-01T10:00:00Z")


def make_samples(values, step_ms=1000):
    n = len(values)
    channels = np.zeros((n, 3))
    channels[:, 0] = values
    channels[:, 1] = np.asarray(values) * 2
    return SampleSet.from_arrays(T0 + np.arange(n) * step_ms, channels)


def test_zoom_is_clamped_and_not_exactly_inverse():
    assert zoom_scale(1.0, True) == pytest.approx(1.1)
    assert zoom_scale(zoom_scale(1.0, True), False) == pytest.approx(0.99)
    assert zoom_scale(SCALE_MAX, True) == SCALE_MAX
    assert zoom_scale(SCALE_MIN, False) == SCALE_MIN


def test_repeated_zoom_stays_in_bounds():
    scale = 1.0
    for _ in range(100):
        scale = zoom_scale(scale, True)
    assert scale == SCALE_MAX
    for _ in range(100):
        scale = zoom_scale(scale, False)
    assert scale == SCALE_MIN


def test_compress_and_expand_scale_around_centre():
    assert compress_range(-50.0, 50.0) == pytest.approx((-40.0, 40.0))
    assert expand_range(-50.0, 50.0) == pytest.approx((-60.0, 60.0))
    assert compress_range(0.0, 100.0) == pytest.approx((10.0, 90.0))


def test_fit_range_pads_span():
    assert fit_range(np.array([0.0, 10.0])) == pytest.approx((-1.0, 11.0))
    assert fit_range(np.array([5.0, 5.0])) == pytest.approx((4.0, 6.0))
    assert fit_range(np.array([50.0])) == pytest.approx((45.0, 55.0))
    assert fit_range(np.array([])) is None
    assert fit_range(np.array([np.nan, np.nan])) is None


def test_fit_range_strides_large_inputs():
    values = np.zeros(20_000)
    values[1] = 1000.0  # skipped by the stride of 4
    lo, hi = fit_range(values)
    assert (lo, hi) == pytest.approx((-1.0, 1.0))


def test_transform_validates_range_and_channel():
    with pytest.raises(ValueError):
        ViewTransform(y_min=10.0, y_max=10.0)
    with pytest.raises(ValueError):
        ViewTransform(channel=4)
    t = ViewTransform(scale=50.0, channel=2, palette="accessible")
    assert t.scale == SCALE_MAX
    assert t.channel is Channel.LEAD_2
    assert t.palette is Palette.ACCESSIBLE


def test_mapper_formulas():
    mapper = CoordinateMapper(0, 60_000, 600, 200)
    assert mapper.ms_in_view(2.0) == 30_000
    assert mapper.pan_ms(60.0, 2.0) == pytest.approx(-3000.0)
    assert mapper.time_to_x(30_000, 1.0, 0.0) == pytest.approx(300.0)
    assert mapper.time_to_x(15_000, 2.0, 0.0) == pytest.approx(300.0)
    # A positive offset moves the trace right.
    assert mapper.time_to_x(0, 1.0, 50.0) == pytest.approx(50.0)
    assert mapper.x_to_time(mapper.time_to_x(12_345, 1.7, -40.0), 1.7, -40.0) == pytest.approx(12_345)
    assert mapper.value_to_y(0.0, -50.0, 50.0) == pytest.approx(100.0)
    assert mapper.value_to_y(50.0, -50.0, 50.0) == pytest.approx(0.0)
    xs = mapper.time_to_x(np.array([0, 60_000]), 1.0, 0.0)
    np.testing.assert_allclose(xs, [0.0, 600.0])


def test_mapper_treats_degenerate_window_as_one_ms():
    mapper = CoordinateMapper(1000, 1000, 100, 100)
    assert mapper.total_ms == 1.0
    with pytest.raises(ValueError):
        CoordinateMapper(0, 10, 0, 100)


def test_keyboard_pan_steps():
    inter = PlotInteraction()
    assert inter.key("left")
    assert inter.offset_px == -20.0
    inter.key("right")
    inter.key("right")
    assert inter.offset_px == 20.0
    assert not inter.key("q")


def test_keyboard_amplitude_and_palette():
    inter = PlotInteraction()
    inter.key("+")
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-40.0, 40.0))
    inter.key("-")
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-48.0, 48.0))
    inter.key("c")
    assert inter.transform.palette is Palette.ACCESSIBLE
    inter.key("c")
    assert inter.transform.palette is Palette.NORMAL


def test_wheel_direction():
    inter = PlotInteraction()
    inter.wheel(-120)
    assert inter.scale == pytest.approx(1.1)
    inter.wheel(120)
    assert inter.scale == pytest.approx(0.99)
    inter.wheel(0)
    assert inter.scale == pytest.approx(0.99)


def test_pointer_drag_pans_by_delta():
    inter = PlotInteraction()
    inter.pointer_down(100.0)
    assert inter.panning
    inter.pointer_move(130.0)
    inter.pointer_move(120.0)
    inter.pointer_up()
    assert not inter.panning
    assert inter.offset_px == pytest.approx(20.0)


def test_pan_there_and_back_restores_offset():
    inter = PlotInteraction()
    inter.pointer_down(0.0)
    inter.pointer_move(50.0)
    inter.pointer_move(0.0)
    inter.pointer_up()
    assert inter.offset_px == pytest.approx(0.0)

    inter.pan(50.0)
    inter.pan(-50.0)
    assert inter.offset_px == pytest.approx(0.0)


def test_second_pointer_is_ignored_while_panning():
    inter = PlotInteraction()
    inter.pointer_down(100.0, pointer_id=1)
    inter.pointer_down(300.0, pointer_id=2)
    inter.pointer_move(500.0, pointer_id=2)
    inter.pointer_move(110.0, pointer_id=1)
    inter.pointer_up(pointer_id=2)
    assert inter.panning
    inter.pointer_up(pointer_id=1)
    assert inter.offset_px == pytest.approx(10.0)


def test_single_touch_pans_and_multi_touch_is_ignored():
    inter = PlotInteraction()
    inter.touch_start([10.0, 50.0])
    assert not inter.panning
    inter.touch_start([10.0])
    inter.touch_move([40.0])
    inter.touch_move([40.0, 90.0])
    inter.touch_end()
    assert inter.offset_px == pytest.approx(30.0)
    assert not inter.panning


def test_set_samples_fits_and_set_channel_refits():
    inter = PlotInteraction()
    inter.set_samples(make_samples([0.0, 10.0, 5.0]))
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-1.0, 11.0))
    assert inter.window == (T0, T0 + 2000)
    inter.set_channel(2)
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-2.0, 22.0))


def test_fit_on_empty_keeps_range():
    inter = PlotInteraction()
    assert not inter.fit()
    assert (inter.transform.y_min, inter.transform.y_max) == (-50.0, 50.0)


def test_tooltip_index_and_text():
    inter = PlotInteraction(width=800.0)
    inter.set_samples(make_samples([1.234, 2.5, 3.0, 4.0]))
    tip = inter.tooltip(0.0)
    assert tip.index == 0
    assert tip.text == "Time: 10:00:00, Value: 1.23"
    assert inter.tooltip(399.0).index == 1
    assert inter.tooltip(800.0).index == 3
    assert inter.tooltip(-5.0) is None
    assert PlotInteraction().tooltip(10.0) is None


def test_hover_clears_when_pointer_leaves():
    inter = PlotInteraction()
    inter.set_samples(make_samples([1.0, 2.0]))
    inter.pointer_move(10.0, 20.0)
    assert inter.hover is not None
    assert inter.hover.y == 20.0
    inter.pointer_leave()
    assert inter.hover is None


def test_change_listeners_fire_on_mutation():
    inter = PlotInteraction()
    calls = []
    remove = inter.on_change(calls.append)
    inter.zoom(True)
    inter.compress()
    remove()
    inter.expand()
    assert calls == [inter, inter]


def test_owner_keeps_plots_in_lockstep():
    owner = TransformOwner()
    a = PlotInteraction(ViewTransform(channel=1), owner)
    b = PlotInteraction(ViewTransform(channel=2), owner)
    a.zoom(True)
    a.pan(25.0)
    assert b.scale == pytest.approx(1.1)
    assert b.offset_px == pytest.approx(25.0)
    assert b.transform.scale == pytest.approx(1.1)
    b.compress()
    assert a.transform.y_range == (-50.0, 50.0)


def test_publisher_is_not_notified_of_its_own_update():
    owner = TransformOwner()
    seen = []
    token = owner.attach(lambda scale, offset: seen.append(("a", scale, offset)))
    owner.attach(lambda scale, offset: seen.append(("b", scale, offset)))
    owner.publish(scale=2.0, source=token)
    assert seen == [("b", 2.0, 0.0)]
    owner.publish(scale=2.0, source=token)
    assert len(seen) == 1
    owner.reset()
    assert owner.scale == 1.0
    assert len(seen) == 3


def test_detached_plot_keeps_local_state():
    owner = TransformOwner()
    a = PlotInteraction(owner=owner)
    b = PlotInteraction(owner=owner)
    b.set_owner(None)
    a.pan(40.0)
    assert b.offset_px == 0.0
    b.pan(-5.0)
    assert a.offset_px == 40.0
    assert b.offset_px == -5.0
