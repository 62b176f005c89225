from __future__ import annotations

import logging
from typing import Callable, Sequence

from PySide6 import QtCore, QtGui, QtWidgets

from holterview.core.timebase import format_instant
from holterview.core.timeline import AggregateBucket, TimelineOverview
from holterview.ui.themes import DEFAULT_THEME, THEMES, ThemeDefinition

LOG = logging.getLogger(__name__)


class _TimerHandle:
    """Single-shot QTimer exposed through the ``cancel()`` interface the debouncer expects."""

    def __init__(self, parent: QtCore.QObject, delay_s: float, callback: Callable[[], None]):
        self._timer = QtCore.QTimer(parent)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(callback)
        self._timer.timeout.connect(self._timer.deleteLater)
        self._timer.start(max(0, int(round(delay_s * 1000))))

    def cancel(self) -> None:
        self._timer.stop()
        self._timer.deleteLater()


class TimelineBar(QtWidgets.QWidget):
    """Bucketed quality heatmap with drag-to-select.

    ``rangeSelected(start_idx, end_idx)`` fires once the drag has been released and
    the debounce interval elapsed without another selection.
    """

    rangeSelected = QtCore.Signal(int, int)

    def __init__(
        self,
        *,
        debounce_ms: int = 150,
        theme: ThemeDefinition | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._theme = theme or THEMES[DEFAULT_THEME]
        self.overview = TimelineOverview(
            [],
            max(1, self.width()),
            on_select=self.rangeSelected.emit,
            call_later=self._call_later,
            debounce_s=debounce_ms / 1000.0,
        )
        self.setMinimumHeight(32)
        self.setMouseTracking(True)
        self.setSizePolicy(QtWidgets.QSizePolicy.Expanding, QtWidgets.QSizePolicy.Fixed)
        self.setCursor(QtCore.Qt.CrossCursor)

    def sizeHint(self) -> QtCore.QSize:
        return QtCore.QSize(800, 40)

    def _call_later(self, delay_s: float, callback: Callable[[], None]) -> _TimerHandle:
        return _TimerHandle(self, delay_s, callback)

    @property
    def buckets(self) -> list[AggregateBucket]:
        return self.overview.model.buckets

    def set_buckets(self, buckets: Sequence[AggregateBucket]) -> None:
        self.overview.set_buckets(buckets)
        self.update()

    def set_theme(self, theme: ThemeDefinition) -> None:
        self._theme = theme
        self.update()

    # ------------------------------------------------------------------
    # Qt events

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:  # pragma: no cover - GUI only
        painter = QtGui.QPainter(self)
        try:
            height = float(self.height())
            painter.fillRect(self.rect(), QtGui.QColor(self._theme.plot_background))
            bars = self.overview.model.bars()
            if not bars:
                painter.setPen(QtGui.QColor(self._theme.plot_placeholder))
                painter.drawText(self.rect(), QtCore.Qt.AlignCenter, "No timeline data")
                return
            for bar in bars:
                painter.fillRect(QtCore.QRectF(bar.x, 0.0, bar.width, height), QtGui.QColor(bar.color))
            highlight = None
            span = self.overview.drag.span()
            if span is not None:
                highlight = QtCore.QRectF(span[0], 0.0, span[1] - span[0], height)
            elif self.overview.selected is not None:
                x, width = self.overview.model.selection_rect(*self.overview.selected)
                highlight = QtCore.QRectF(x, 0.0, width, height)
            if highlight is not None:
                painter.fillRect(highlight, QtGui.QColor(self._theme.selection_fill))
                painter.setPen(QtGui.QColor(self._theme.plot_label))
                painter.drawRect(highlight.adjusted(0.5, 0.5, -0.5, -0.5))
        finally:
            painter.end()

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:
        self.overview.resize(max(1, event.size().width()))
        super().resizeEvent(event)

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() != QtCore.Qt.LeftButton or not self.buckets:
            super().mousePressEvent(event)
            return
        self.overview.pointer_down(event.position().x())
        self.update()
        event.accept()

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:
        x = event.position().x()
        if self.overview.drag.active:
            self.overview.pointer_move(x)
            self.update()
        else:
            self._update_hover_tooltip(x)
        event.accept()

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.LeftButton and self.overview.drag.active:
            self.overview.pointer_move(event.position().x())
            self.overview.pointer_up()
            self.update()
        event.accept()

    def _update_hover_tooltip(self, x: float) -> None:
        buckets = self.buckets
        if not buckets or self.width() <= 0:
            self.setToolTip("")
            return
        idx = min(max(int(x * len(buckets) / self.width()), 0), len(buckets) - 1)
        bucket = buckets[idx]
        self.setToolTip(f"{format_instant(bucket.start_ms)}\nQuality: {bucket.average:.1f}%")

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self.overview.close()
        super().closeEvent(event)
