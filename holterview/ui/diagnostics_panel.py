from __future__ import annotations

import logging
from datetime import datetime

import numpy as np
import pyqtgraph as pg
from PySide6 import QtCore, QtWidgets

from holterview.core.diagnostics import DiagnosticsReport
from holterview.core.recorder import Outcome, QueryRecord, QueryRecorder
from holterview.ui.themes import DEFAULT_THEME, THEMES, ThemeDefinition

LOG = logging.getLogger(__name__)

_OUTCOME_BRUSH = {
    Outcome.SUCCESS: None,
    Outcome.CACHE_HIT: "#4ade80",
    Outcome.ERROR: "#ef4444",
}


def format_record(record: QueryRecord) -> str:
    when = datetime.fromtimestamp(record.recorded_at).strftime("%H:%M:%S")
    factor = "-" if record.factor is None else f"x{record.factor}"
    text = (
        f"{when}  {record.kind.value:<11} {record.outcome.value:<9} "
        f"{record.duration_ms:7.0f} ms  {record.points:6d} pts  {factor}"
    )
    if record.error:
        text += f"  ({record.error})"
    return text


class DiagnosticsPanel(QtWidgets.QFrame):
    """Recent-query history, timing chart and service connection diagnostics.

    Recorder listeners run on the loader thread, so new records are forwarded through
    a queued signal before any widget is touched.
    """

    _recordAdded = QtCore.Signal(object)

    def __init__(
        self,
        recorder: QueryRecorder | None = None,
        *,
        theme: ThemeDefinition | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("diagnosticsPanel")
        self._theme = theme or THEMES[DEFAULT_THEME]
        self._recorder: QueryRecorder | None = None
        self._unsubscribe = None

        self.summary_label = QtWidgets.QLabel("No queries yet")
        self.summary_label.setWordWrap(True)
        self.history = QtWidgets.QListWidget()
        self.history.setMinimumHeight(120)
        self.report_label = QtWidgets.QLabel("No diagnostics loaded")
        self.report_label.setWordWrap(True)

        self.chart = pg.PlotWidget()
        self.chart.setMinimumHeight(120)
        self.chart.setMenuEnabled(False)
        self.chart.setMouseEnabled(x=False, y=False)
        self.chart.hideButtons()
        self.chart.getPlotItem().setLabel("left", "ms")
        self.chart.getPlotItem().showGrid(y=True, alpha=0.2)
        self._bars: pg.BarGraphItem | None = None

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(12, 10, 12, 10)
        layout.setSpacing(8)
        title = QtWidgets.QLabel("Diagnostics")
        title.setStyleSheet("font-weight: 600;")
        layout.addWidget(title)
        layout.addWidget(self.summary_label)
        layout.addWidget(self.chart)
        layout.addWidget(self.history, 1)
        layout.addWidget(self.report_label)

        self._recordAdded.connect(self._on_record_added, QtCore.Qt.QueuedConnection)
        self.set_theme(self._theme)
        if recorder is not None:
            self.set_recorder(recorder)

    def set_recorder(self, recorder: QueryRecorder | None) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._recorder = recorder
        if recorder is not None:
            self._unsubscribe = recorder.subscribe(self._recordAdded.emit)
        self.refresh()

    def set_theme(self, theme: ThemeDefinition) -> None:
        self._theme = theme
        self.chart.setBackground(theme.pg_background)
        axis_pen = pg.mkPen(theme.pg_foreground)
        plot_item = self.chart.getPlotItem()
        for name in ("left", "bottom"):
            axis = plot_item.getAxis(name)
            axis.setPen(axis_pen)
            axis.setTextPen(axis_pen)
        self.refresh()

    def _on_record_added(self, _record: QueryRecord) -> None:
        self.refresh()

    def refresh(self) -> None:
        recorder = self._recorder
        if recorder is None or recorder.closed:
            self.summary_label.setText("No queries yet")
            self.history.clear()
            self._update_chart([])
            return
        records = recorder.records()
        summary = recorder.summary()
        if summary.total:
            self.summary_label.setText(
                f"{summary.total} queries · avg {summary.average_duration_ms:.0f} ms "
                f"(max {summary.max_duration_ms:.0f}) · avg {summary.average_points:.0f} pts "
                f"(max {summary.max_points}) · {summary.cache_hits} cached · {summary.errors} errors"
            )
        else:
            self.summary_label.setText("No queries yet")
        self.history.clear()
        for record in records:
            self.history.addItem(format_record(record))
        self._update_chart(list(reversed(records)))

    def _update_chart(self, records: list[QueryRecord]) -> None:
        plot_item = self.chart.getPlotItem()
        if self._bars is not None:
            plot_item.removeItem(self._bars)
            self._bars = None
        if not records:
            return
        x = np.arange(len(records), dtype=float)
        heights = np.array([r.duration_ms for r in records], dtype=float)
        brushes = [
            pg.mkBrush(_OUTCOME_BRUSH[r.outcome] or self._theme.chart_bar) for r in records
        ]
        self._bars = pg.BarGraphItem(x=x, height=heights, width=0.7, brushes=brushes)
        plot_item.addItem(self._bars)

    def set_report(self, report: DiagnosticsReport | None) -> None:
        if report is None:
            self.report_label.setText("No diagnostics loaded")
            return
        noise = ", ".join(f"{v:.2f}" for v in report.noise_levels)
        scores = ", ".join(f"{v:.1f}" for v in report.quality_scores)
        self.report_label.setText(
            f"Sampling {report.sampling_frequency:g} Hz · {report.total_samples} samples · "
            f"{report.missing_samples} missing ({report.missing_percent:.1f}%) · "
            f"{report.connection_drops} drops\nNoise: {noise}\nQuality: {scores}"
        )

    def closeEvent(self, event) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        super().closeEvent(event)
