"""QPainter rendition of core :class:`~holterview.core.render.Frame` objects."""
from __future__ import annotations

import numpy as np
from PySide6 import QtCore, QtGui

from holterview.core.render import Frame

WAVE_WIDTH = 1.4
TOOLTIP_OFFSET = 8.0
TOOLTIP_PADDING = 4.0


def _polygon(points: np.ndarray) -> QtGui.QPolygonF:
    return QtGui.QPolygonF([QtCore.QPointF(float(x), float(y)) for x, y in points])


def paint_frame(painter: QtGui.QPainter, frame: Frame) -> None:
    painter.save()
    try:
        painter.setRenderHint(QtGui.QPainter.Antialiasing, True)
        painter.fillRect(QtCore.QRectF(0, 0, frame.width, frame.height), QtGui.QColor(frame.background))

        grid_pen = QtGui.QPen(QtGui.QColor(frame.grid_color))
        grid_pen.setWidthF(1.0)
        painter.setPen(grid_pen)
        for x1, y1, x2, y2 in frame.grid:
            painter.drawLine(QtCore.QLineF(x1, y1, x2, y2))

        font = QtGui.QFont(painter.font())
        font.setPixelSize(12)
        painter.setFont(font)

        if frame.placeholder is not None:
            painter.setPen(QtGui.QColor(frame.placeholder_color))
            painter.drawText(QtCore.QPointF(10.0, frame.height / 2.0), frame.placeholder)
            return

        pen = QtGui.QPen(QtGui.QColor(frame.wave_color))
        pen.setWidthF(WAVE_WIDTH)
        pen.setJoinStyle(QtCore.Qt.RoundJoin)
        painter.setPen(pen)
        for path in frame.paths:
            if len(path) == 1:
                painter.drawPoint(QtCore.QPointF(float(path[0, 0]), float(path[0, 1])))
            else:
                painter.drawPolyline(_polygon(path))

        painter.setPen(QtGui.QColor(frame.label_color))
        painter.drawText(QtCore.QPointF(*frame.label_pos), frame.label)

        tip = frame.tooltip
        if tip is not None:
            metrics = QtGui.QFontMetricsF(font)
            text_rect = metrics.boundingRect(tip.text)
            box = QtCore.QRectF(
                tip.x + TOOLTIP_OFFSET,
                tip.y + TOOLTIP_OFFSET,
                text_rect.width() + 2 * TOOLTIP_PADDING,
                text_rect.height() + 2 * TOOLTIP_PADDING,
            )
            # Keep the box on the surface near the right/bottom edges.
            if box.right() > frame.width:
                box.moveRight(tip.x - TOOLTIP_OFFSET)
            if box.bottom() > frame.height:
                box.moveBottom(tip.y - TOOLTIP_OFFSET)
            background, text = frame.tooltip_colors
            painter.setPen(QtCore.Qt.NoPen)
            painter.setBrush(QtGui.QColor(background))
            painter.drawRoundedRect(box, 3.0, 3.0)
            painter.setPen(QtGui.QColor(text))
            painter.drawText(box, QtCore.Qt.AlignCenter, tip.text)
    finally:
        painter.restore()


def render_frame_image(frame: Frame) -> QtGui.QImage:
    """Rasterise a frame off-screen (used for export and headless checks)."""
    image = QtGui.QImage(max(1, frame.width), max(1, frame.height), QtGui.QImage.Format_ARGB32_Premultiplied)
    image.fill(QtGui.QColor(frame.background))
    painter = QtGui.QPainter(image)
    try:
        paint_frame(painter, frame)
    finally:
        painter.end()
    return image
