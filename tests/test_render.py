import numpy as np

from holterview.core.interaction import Tooltip
from holterview.core.render import (
    GRID_STEP_X,
    GRID_STEP_Y,
    PLACEHOLDER_TEXT,
    FrameColors,
    build_frame,
    split_paths,
    zoom_label,
)
from holterview.core.samples import SampleSet
from holterview.core.transform import Palette, ViewTransform


def make_samples(n=11, lead_on=None, values=None):
    t = np.arange(n) * 100
    channels = np.zeros((n, 3))
    channels[:, 0] = np.linspace(-10, 10, n) if values is None else values
    flags = np.ones((n, 3), dtype=bool)
    if lead_on is not None:
        flags[:, 0] = lead_on
    return SampleSet.from_arrays(t, channels, flags, np.ones((n, 3), dtype=bool))


def test_empty_set_draws_placeholder_and_grid_only():
    frame = build_frame(SampleSet.empty(), ViewTransform(), 800, 250, label="Lead 1")
    assert frame.placeholder == PLACEHOLDER_TEXT
    assert frame.paths == []
    assert frame.label == ""
    assert frame.vertex_count == 0
    assert len(frame.grid) == len(range(0, 250, GRID_STEP_Y)) + len(range(0, 800, GRID_STEP_X))


def test_all_visible_samples_form_one_path():
    frame = build_frame(make_samples(), ViewTransform(), 1000, 200, label="Lead 1")
    assert frame.placeholder is None
    assert len(frame.paths) == 1
    path = frame.paths[0]
    assert path.shape == (11, 2)
    np.testing.assert_allclose(path[:, 0], np.arange(11) * 100.0)
    assert frame.label == "Lead 1 (zoom x1.0)"


def test_lead_off_samples_break_the_path():
    lead_on = np.ones(11, dtype=bool)
    lead_on[4:6] = False
    frame = build_frame(make_samples(lead_on=lead_on), ViewTransform(), 1000, 200)
    assert [len(p) for p in frame.paths] == [4, 5]
    assert frame.vertex_count == 9


def test_samples_outside_surface_are_culled():
    transform = ViewTransform(scale=2.0)
    frame = build_frame(make_samples(), transform, 1000, 200)
    # Zoomed 2x from the left edge: only the first half of the window fits.
    assert frame.vertex_count == 6
    assert frame.paths[0][:, 0].max() <= 1000.0


def test_owner_scale_overrides_transform():
    frame = build_frame(make_samples(), ViewTransform(), 1000, 200, scale=2.0, offset_px=500.0, label="L")
    xs = np.concatenate([p[:, 0] for p in frame.paths])
    assert xs.min() >= 500.0
    assert frame.label == "L (zoom x2.0)"


def test_non_finite_values_are_skipped():
    values = np.linspace(-10, 10, 11)
    values[3] = np.nan
    frame = build_frame(make_samples(values=values), ViewTransform(), 1000, 200)
    assert [len(p) for p in frame.paths] == [3, 7]


def test_values_map_through_amplitude_range():
    frame = build_frame(make_samples(values=np.zeros(11)), ViewTransform(y_min=-50, y_max=50), 1000, 200)
    np.testing.assert_allclose(frame.paths[0][:, 1], 100.0)


def test_palette_selects_wave_color_and_tooltip_passthrough():
    colors = FrameColors(wave_normal="#ff000000", wave_accessible="#ff0000ff")
    tip = Tooltip(10.0, 10.0, "Time: 00:00:00, Value: 0.00", 0)
    frame = build_frame(
        make_samples(),
        ViewTransform(palette=Palette.ACCESSIBLE),
        1000,
        200,
        theme_colors=colors,
        hover=tip,
    )
    assert frame.wave_color == "#ff0000ff"
    assert frame.tooltip is tip


def test_explicit_window_positions_samples():
    frame = build_frame(make_samples(n=2), ViewTransform(), 1000, 200, window=(0, 1000))
    np.testing.assert_allclose(frame.paths[0][:, 0], [0.0, 100.0])


def test_split_paths_runs():
    x = np.arange(6, dtype=float)
    keep = np.array([True, True, False, True, False, True])
    runs = split_paths(x, x, keep)
    assert [r[:, 0].tolist() for r in runs] == [[0.0, 1.0], [3.0], [5.0]]
    assert split_paths(x, x, np.zeros(6, dtype=bool)) == []


def test_zoom_label_format():
    assert zoom_label("Lead 2", 1.1) == "Lead 2 (zoom x1.1)"
    assert zoom_label("Lead 2", 10.0) == "Lead 2 (zoom x10.0)"
