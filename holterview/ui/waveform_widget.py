from __future__ import annotations

import logging

from PySide6 import QtCore, QtGui, QtWidgets

from holterview.core.interaction import PlotInteraction
from holterview.core.render import Frame, build_frame
from holterview.ui.painter import paint_frame
from holterview.ui.themes import DEFAULT_THEME, THEMES, ThemeDefinition

LOG = logging.getLogger(__name__)

_KEY_NAMES = {
    QtCore.Qt.Key_Left: "left",
    QtCore.Qt.Key_Right: "right",
    QtCore.Qt.Key_Plus: "+",
    QtCore.Qt.Key_Equal: "+",
    QtCore.Qt.Key_Minus: "-",
    QtCore.Qt.Key_Underscore: "-",
    QtCore.Qt.Key_F: "f",
    QtCore.Qt.Key_C: "c",
}


class WaveformPlot(QtWidgets.QWidget):
    """Raster surface for one lead.

    Input events are forwarded to the :class:`PlotInteraction`; any state change calls
    ``update()`` and Qt folds pending updates into the next paint.
    """

    def __init__(
        self,
        interaction: PlotInteraction,
        *,
        label: str = "",
        theme: ThemeDefinition | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.interaction = interaction
        self.label = label
        self._theme = theme or THEMES[DEFAULT_THEME]
        self._colors = self._theme.frame_colors()
        self.setFocusPolicy(QtCore.Qt.StrongFocus)
        self.setMouseTracking(True)
        self.setAttribute(QtCore.Qt.WA_AcceptTouchEvents, True)
        self.setAttribute(QtCore.Qt.WA_OpaquePaintEvent, True)
        self.setMinimumSize(240, 120)
        self.setSizePolicy(QtWidgets.QSizePolicy.Expanding, QtWidgets.QSizePolicy.Expanding)
        self.setAccessibleName(label or "ECG wave chart")
        self._remove_listener = interaction.on_change(self._on_state_changed)

    def sizeHint(self) -> QtCore.QSize:
        return QtCore.QSize(int(self.interaction.width), int(self.interaction.height))

    def set_theme(self, theme: ThemeDefinition) -> None:
        self._theme = theme
        self._colors = theme.frame_colors()
        self.update()

    def current_frame(self) -> Frame:
        inter = self.interaction
        return build_frame(
            inter.samples,
            inter.transform,
            max(1, self.width()),
            max(1, self.height()),
            theme_colors=self._colors,
            label=self.label,
            hover=inter.hover,
            window=inter.window,
            scale=inter.scale,
            offset_px=inter.offset_px,
        )

    def _on_state_changed(self, _interaction: PlotInteraction) -> None:
        palette = _interaction.transform.palette.value
        self.setAccessibleDescription(f"palette: {palette}")
        self.update()

    # ------------------------------------------------------------------
    # Qt events

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:  # pragma: no cover - GUI only
        painter = QtGui.QPainter(self)
        try:
            paint_frame(painter, self.current_frame())
        finally:
            painter.end()

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:
        size = event.size()
        self.interaction.set_size(size.width(), size.height())
        super().resizeEvent(event)

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() != QtCore.Qt.LeftButton:
            super().mousePressEvent(event)
            return
        self.setFocus(QtCore.Qt.MouseFocusReason)
        self.interaction.pointer_down(event.position().x())
        event.accept()

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:
        pos = event.position()
        self.interaction.pointer_move(pos.x(), pos.y())
        event.accept()

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.LeftButton:
            self.interaction.pointer_up()
        event.accept()

    def leaveEvent(self, event: QtCore.QEvent) -> None:
        self.interaction.pointer_leave()
        super().leaveEvent(event)

    def wheelEvent(self, event: QtGui.QWheelEvent) -> None:
        # Qt reports positive angles when scrolling away from the user.
        self.interaction.wheel(-event.angleDelta().y())
        event.accept()

    def keyPressEvent(self, event: QtGui.QKeyEvent) -> None:
        name = _KEY_NAMES.get(event.key())
        if name is not None and self.interaction.key(name):
            event.accept()
            return
        super().keyPressEvent(event)

    def event(self, event: QtCore.QEvent) -> bool:
        kind = event.type()
        if kind in (QtCore.QEvent.TouchBegin, QtCore.QEvent.TouchUpdate, QtCore.QEvent.TouchEnd):
            xs = [point.position().x() for point in event.points()]
            if kind == QtCore.QEvent.TouchBegin:
                self.interaction.touch_start(xs)
            elif kind == QtCore.QEvent.TouchUpdate:
                self.interaction.touch_move(xs)
            else:
                self.interaction.touch_end()
            event.accept()
            return True
        if kind == QtCore.QEvent.TouchCancel:
            self.interaction.touch_end()
            event.accept()
            return True
        return super().event(event)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self._remove_listener()
        super().closeEvent(event)


class LeadPlot(QtWidgets.QFrame):
    """A :class:`WaveformPlot` with its amplitude and palette buttons."""

    def __init__(
        self,
        interaction: PlotInteraction,
        *,
        label: str,
        theme: ThemeDefinition | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("leadPlot")
        self.plot = WaveformPlot(interaction, label=label, theme=theme, parent=self)

        self.expand_button = QtWidgets.QPushButton("Expand Y")
        self.expand_button.setToolTip("Expand Y-range")
        self.compress_button = QtWidgets.QPushButton("Compress Y")
        self.compress_button.setToolTip("Compress Y-range")
        self.fit_button = QtWidgets.QPushButton("Fit")
        self.fit_button.setToolTip("Fit Y-range to data")
        self.palette_button = QtWidgets.QPushButton("Accessible")
        self.palette_button.setCheckable(True)
        self.palette_button.setToolTip("Toggle color-blind-friendly palette")

        self.expand_button.clicked.connect(interaction.expand)
        self.compress_button.clicked.connect(interaction.compress)
        self.fit_button.clicked.connect(interaction.fit)
        self.palette_button.clicked.connect(lambda _checked: interaction.toggle_palette())
        interaction.on_change(self._sync_palette_button)

        toolbar = QtWidgets.QHBoxLayout()
        toolbar.setContentsMargins(0, 0, 0, 0)
        toolbar.setSpacing(6)
        for button in (self.expand_button, self.compress_button, self.fit_button, self.palette_button):
            button.setFocusPolicy(QtCore.Qt.NoFocus)
            toolbar.addWidget(button)
        toolbar.addStretch(1)

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)
        layout.setSpacing(4)
        layout.addLayout(toolbar)
        layout.addWidget(self.plot, 1)

    def _sync_palette_button(self, interaction: PlotInteraction) -> None:
        accessible = interaction.transform.palette.value == "accessible"
        if self.palette_button.isChecked() != accessible:
            self.palette_button.setChecked(accessible)

    def set_theme(self, theme: ThemeDefinition) -> None:
        self.plot.set_theme(theme)
