from __future__ import annotations

from PySide6 import QtCore, QtWidgets

from holterview.core.quality import QualitySummary, status_for
from holterview.core.samples import Channel


class QualityPanel(QtWidgets.QFrame):
    """Per-lead good-signal bars with lead-off percentages."""

    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("qualityPanel")
        self._bars: list[QtWidgets.QProgressBar] = []
        self._off_labels: list[QtWidgets.QLabel] = []

        grid = QtWidgets.QGridLayout(self)
        grid.setContentsMargins(12, 10, 12, 10)
        grid.setHorizontalSpacing(10)
        title = QtWidgets.QLabel("Signal quality")
        title.setStyleSheet("font-weight: 600;")
        grid.addWidget(title, 0, 0, 1, 3)
        for row, channel in enumerate(Channel, start=1):
            grid.addWidget(QtWidgets.QLabel(f"Lead {int(channel)}"), row, 0)
            bar = QtWidgets.QProgressBar()
            bar.setRange(0, 1000)
            bar.setFormat("n/a")
            bar.setProperty("status", "poor")
            grid.addWidget(bar, row, 1)
            off = QtWidgets.QLabel("lead-off n/a")
            off.setAlignment(QtCore.Qt.AlignRight | QtCore.Qt.AlignVCenter)
            grid.addWidget(off, row, 2)
            self._bars.append(bar)
            self._off_labels.append(off)
        grid.setColumnStretch(1, 1)
        self._summary: QualitySummary | None = None

    @property
    def summary(self) -> QualitySummary | None:
        return self._summary

    def set_summary(self, summary: QualitySummary | None) -> None:
        self._summary = summary
        for channel in Channel:
            bar = self._bars[channel.index]
            off = self._off_labels[channel.index]
            if summary is None or summary.total == 0:
                bar.setValue(0)
                bar.setFormat("n/a")
                off.setText("lead-off n/a")
                status = "poor"
            else:
                lead = summary.lead(channel)
                bar.setValue(int(round(lead.good_percent * 10)))
                bar.setFormat(f"{lead.good_percent:.1f}% good")
                off.setText(f"lead-off {lead.lead_off_percent:.1f}%")
                status = status_for(lead.good_percent)
            if bar.property("status") != status:
                bar.setProperty("status", status)
                # Re-polish so the [status=...] stylesheet selector applies.
                bar.style().unpolish(bar)
                bar.style().polish(bar)
