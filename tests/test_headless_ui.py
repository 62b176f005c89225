"""Headless smoke tests for the PySide6 viewer widgets."""

from __future__ import annotations

import asyncio
import os
import time

import numpy as np
import pytest
import requests

# Ensure the tests run with Qt's offscreen platform.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

try:  # pragma: no cover - environment-dependent import guard
    from PySide6 import QtCore, QtGui, QtWidgets
except ImportError as exc:  # pragma: no cover - skip when Qt dependencies missing
    pytest.skip(f"PySide6 import failed: {exc}", allow_module_level=True)

from holterview.config import ViewerConfig
from holterview.core.interaction import PlotInteraction
from holterview.core.loader import WindowedLoader
from holterview.core.quality import summarize_quality
from holterview.core.recorder import Outcome, QueryRecorder
from holterview.core.render import build_frame
from holterview.core.samples import SampleSet
from holterview.core.timebase import format_instant, parse_instant
from holterview.core.timeline import AggregateBucket
from holterview.core.transform import Palette, ViewTransform
from holterview.core.window import MS_PER_HOUR, Selection
from holterview.ui.diagnostics_panel import DiagnosticsPanel, format_record
from holterview.ui.loader_bridge import LoaderBridge
from holterview.ui.main_window import MainWindow
from holterview.ui.painter import render_frame_image
from holterview.ui.quality_panel import QualityPanel
from holterview.ui.themes import THEMES
from holterview.ui.timeline_widget import TimelineBar
from holterview.ui.waveform_widget import LeadPlot, WaveformPlot

START = "2024-03-01T10:00:00Z"
END = "2024-03-01T10:20:00Z"


@pytest.fixture(scope="session")
def qt_app():
    """Provide a global QApplication for headless UI tests."""

    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app
    app.quit()


def _wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        QtCore.QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    QtCore.QCoreApplication.processEvents()
    return predicate()


def _pump(seconds: float) -> None:
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        QtCore.QCoreApplication.processEvents()
        time.sleep(0.01)


def _samples(n: int = 50) -> SampleSet:
    t = parse_instant(START) + np.arange(n) * 1000
    channels = np.column_stack([np.sin(np.arange(n) / 5.0) * 20.0] * 3)
    return SampleSet.from_arrays(t, channels)


class _UiTransport:
    def __init__(self):
        self.errors: list[BaseException] = []

    async def fetch_window(self, request):
        if self.errors:
            raise self.errors.pop(0)
        rows = [
            {
                "time": request.start_ms + i * 1000,
                "channel_1": float(i),
                "channel_2": float(i),
                "channel_3": float(i),
                "lead_on_p_1": True,
                "lead_on_n_1": True,
                "quality_1": True,
            }
            for i in range(20)
        ]
        return {"data": rows}

    async def fetch_chunks(self, request, *, offset, limit, chunk_minutes):
        return []

    async def fetch_diagnostics(self, device_id, start_ms, end_ms, *, chunk_minutes=None):
        return {"connection_stats": {"sampling_frequency": 250, "total_samples": 100}}

    async def fetch_aggregates(self, device_id, start_ms, end_ms, *, bucket_seconds):
        return [
            {"time_bucket": format_instant(start_ms + i * bucket_seconds * 1000), "quality_1_percent": 90}
            for i in range(max(1, (end_ms - start_ms) // (bucket_seconds * 1000)))
        ]

    async def fetch_time_bounds(self, device_id):
        return {"earliest_time": START, "latest_time": END}

    def close(self):
        pass


class _SlowPodTransport(_UiTransport):
    """Answers overview requests for ``pod-slow`` late, with distinguishable values."""

    async def fetch_aggregates(self, device_id, start_ms, end_ms, *, bucket_seconds):
        if device_id == "pod-slow":
            await asyncio.sleep(0.3)
            return [{"time_bucket": START, "quality_1_percent": 10}]
        return await super().fetch_aggregates(device_id, start_ms, end_ms, bucket_seconds=bucket_seconds)

    async def fetch_diagnostics(self, device_id, start_ms, end_ms, *, chunk_minutes=None):
        if device_id == "pod-slow":
            await asyncio.sleep(0.3)
            return {"connection_stats": {"sampling_frequency": 500, "total_samples": 100}}
        return await super().fetch_diagnostics(device_id, start_ms, end_ms, chunk_minutes=chunk_minutes)


def test_render_frame_image_matches_surface(qt_app):
    frame = build_frame(_samples(), ViewTransform(), 320, 120, label="Lead 1")
    image = render_frame_image(frame)
    assert image.width() == 320
    assert image.height() == 120
    assert not image.isNull()


def test_waveform_plot_routes_keys(qt_app):
    inter = PlotInteraction(width=400, height=150)
    plot = WaveformPlot(inter, label="Lead 1")
    plot.resize(400, 150)
    inter.set_samples(_samples())

    QtWidgets.QApplication.sendEvent(
        plot, QtGui.QKeyEvent(QtCore.QEvent.KeyPress, QtCore.Qt.Key_Left, QtCore.Qt.NoModifier)
    )
    assert inter.offset_px == -20.0
    QtWidgets.QApplication.sendEvent(
        plot, QtGui.QKeyEvent(QtCore.QEvent.KeyPress, QtCore.Qt.Key_C, QtCore.Qt.NoModifier)
    )
    assert inter.transform.palette is Palette.ACCESSIBLE

    frame = plot.current_frame()
    assert frame.label.startswith("Lead 1 (zoom x1.0)")
    assert frame.paths
    plot.close()


def test_lead_plot_buttons_drive_interaction(qt_app):
    inter = PlotInteraction()
    lead = LeadPlot(inter, label="Lead 2")
    lead.compress_button.click()
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-40.0, 40.0))
    lead.expand_button.click()
    assert (inter.transform.y_min, inter.transform.y_max) == pytest.approx((-48.0, 48.0))
    lead.palette_button.click()
    assert inter.transform.palette is Palette.ACCESSIBLE
    assert lead.palette_button.isChecked()
    lead.set_theme(THEMES["Dawn"])


def test_quality_panel_shows_percentages(qt_app):
    panel = QualityPanel()
    panel.set_summary(summarize_quality(_samples()))
    bar = panel._bars[0]
    assert bar.format() == "100.0% good"
    assert bar.property("status") == "good"
    panel.set_summary(None)
    assert bar.format() == "n/a"


def test_timeline_bar_emits_debounced_range(qt_app):
    bar = TimelineBar(debounce_ms=10)
    bar.resize(600, 40)
    t0 = parse_instant(START)
    bar.set_buckets([AggregateBucket(t0 + i * MS_PER_HOUR, (50.0, 50.0, 50.0)) for i in range(60)])
    bar.overview.resize(600)
    received = []
    bar.rangeSelected.connect(lambda s, e: received.append((s, e)))

    bar.overview.pointer_down(100)
    bar.overview.pointer_move(50)
    bar.overview.pointer_up()

    assert _wait_until(lambda: received == [(5, 10)])
    bar.close()


def test_diagnostics_panel_tracks_recorder(qt_app):
    recorder = QueryRecorder()
    panel = DiagnosticsPanel(recorder)
    entry = recorder.record(
        device_id="pod-1",
        time_start=START,
        time_end=END,
        factor=2,
        points=1200,
        duration_ms=85.0,
        outcome=Outcome.SUCCESS,
    )
    assert _wait_until(lambda: panel.history.count() == 1)
    assert "1200 pts" in format_record(entry)
    assert "1 queries" in panel.summary_label.text()
    panel.close()


def _make_window(transport=None):
    loader = WindowedLoader(transport or _UiTransport())
    bridge = LoaderBridge(loader)
    window = MainWindow(bridge, config=ViewerConfig())
    return window, bridge


def test_main_window_opens_selection(qt_app):
    window, bridge = _make_window()
    try:
        window.open_selection(Selection("pod-1", START, END))
        assert _wait_until(lambda: len(window.interactions[0].samples) == 20)
        assert _wait_until(lambda: window.quality_panel.summary is not None)
        assert all(len(inter.samples) == 20 for inter in window.interactions)
        assert window.interactions[0].window == (parse_instant(START), parse_instant(END))
        assert window.error_banner.isHidden()
        assert _wait_until(lambda: bool(window.timeline.buckets))
        assert window.refresh_button.isEnabled()
    finally:
        window.close()
        bridge.close()


def test_main_window_looks_up_bounds_without_range(qt_app):
    window, bridge = _make_window()
    try:
        window.open_selection(Selection("pod-1", None, None))
        assert _wait_until(lambda: len(window.interactions[0].samples) == 20)
    finally:
        window.close()
        bridge.close()


def test_main_window_shows_retryable_error(qt_app):
    transport = _UiTransport()
    transport.errors.append(requests.ConnectionError("offline"))
    window, bridge = _make_window(transport)
    try:
        window.open_selection(Selection("pod-1", START, END))
        assert _wait_until(lambda: not window.error_banner.isHidden())
        assert "Network error" in window.error_label.text()
        assert not window.retry_button.isHidden()

        window.retry_button.click()
        assert _wait_until(lambda: len(window.interactions[0].samples) == 20)
        assert _wait_until(lambda: window.error_banner.isHidden())
    finally:
        window.close()
        bridge.close()


def test_main_window_sync_toggle(qt_app):
    window, bridge = _make_window()
    try:
        first, second = window.interactions[0], window.interactions[1]
        first.pan(30.0)
        assert second.offset_px == 30.0
        window.sync_check.setChecked(False)
        first.pan(30.0)
        assert second.offset_px == 30.0
        assert first.offset_px == 60.0
    finally:
        window.close()
        bridge.close()


def test_bridge_delivers_only_latest_aggregates(qt_app):
    bridge = LoaderBridge(WindowedLoader(_SlowPodTransport()))
    received = []
    bridge.aggregatesReady.connect(received.append)
    try:
        bridge.request_aggregates("pod-slow", START, END, bucket_seconds=300)
        bridge.request_aggregates("pod-1", START, END, bucket_seconds=300)
        assert _wait_until(lambda: len(received) == 1)
        _pump(0.5)
        assert len(received) == 1
        assert all(bucket.quality_percent[0] == 90 for bucket in received[0])
    finally:
        bridge.close()


def test_main_window_ignores_overview_of_previous_pod(qt_app):
    window, bridge = _make_window(_SlowPodTransport())
    try:
        window.open_selection(Selection("pod-slow", START, END))
        window.open_selection(Selection("pod-1", START, END))
        assert _wait_until(lambda: bool(window.timeline.buckets))
        assert _wait_until(lambda: "250 Hz" in window.diagnostics_panel.report_label.text())
        _pump(0.5)
        assert all(bucket.quality_percent[0] == 90 for bucket in window.timeline.buckets)
        assert "250 Hz" in window.diagnostics_panel.report_label.text()
    finally:
        window.close()
        bridge.close()
