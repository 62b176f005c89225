from __future__ import annotations

import logging

from PySide6 import QtWidgets

from holterview.config import ViewerConfig
from holterview.core.errors import InvalidParametersError, LoaderError
from holterview.core.interaction import PlotInteraction
from holterview.core.loader import DEFAULT_VIEW, ViewState, ViewStatus
from holterview.core.quality import summarize_quality
from holterview.core.samples import Channel, SampleSet
from holterview.core.timebase import format_instant
from holterview.core.timeline import bucket_range_to_window
from holterview.core.transform import Palette, TransformOwner, ViewTransform
from holterview.core.window import WindowRequest, WorklistSelection, validate_window
from holterview.ui.diagnostics_panel import DiagnosticsPanel
from holterview.ui.loader_bridge import LoaderBridge
from holterview.ui.quality_panel import QualityPanel
from holterview.ui.themes import DEFAULT_THEME, THEMES
from holterview.ui.timeline_widget import TimelineBar
from holterview.ui.waveform_widget import LeadPlot

LOG = logging.getLogger(__name__)

_STATUS_TEXT = {
    ViewStatus.IDLE: "Select a recording to begin.",
    ViewStatus.LOADING: "Loading ECG data…",
    ViewStatus.EMPTY: "No ECG data in this time range.",
}


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, bridge: LoaderBridge, *, config: ViewerConfig | None = None):
        super().__init__()
        self.bridge = bridge
        self._config = config or ViewerConfig()
        self._device_id: str | None = None
        self._recording: tuple[int, int] | None = None
        self._request: WindowRequest | None = None
        self._theme_key = self._config.theme if self._config.theme in THEMES else DEFAULT_THEME
        if self._theme_key != self._config.theme:
            LOG.warning("Unknown theme %r; using %s", self._config.theme, DEFAULT_THEME)

        self.owner = TransformOwner()
        try:
            palette = Palette(self._config.palette)
        except ValueError:
            palette = Palette.NORMAL
        self.interactions = [
            PlotInteraction(
                ViewTransform(
                    y_min=self._config.y_min,
                    y_max=self._config.y_max,
                    channel=channel,
                    palette=palette,
                ),
                self.owner if self._config.sync_plots else None,
                keyboard_pan_px=self._config.keyboard_pan_px,
                width=self._config.plot_width,
                height=self._config.plot_height,
            )
            for channel in Channel
        ]

        self._build_ui()
        self._connect_signals()
        self._apply_theme(self._theme_key)
        self._set_status(_STATUS_TEXT[ViewStatus.IDLE])

    # ------------------------------------------------------------------
    # construction

    def _build_ui(self) -> None:
        self.setWindowTitle("HolterView")
        central = QtWidgets.QWidget(self)
        self.setCentralWidget(central)
        root = QtWidgets.QHBoxLayout(central)
        root.setContentsMargins(8, 8, 8, 8)
        root.setSpacing(8)

        main = QtWidgets.QVBoxLayout()
        main.setSpacing(6)

        header = QtWidgets.QHBoxLayout()
        self.device_label = QtWidgets.QLabel("No recording")
        self.device_label.setStyleSheet("font-weight: 600;")
        self.window_label = QtWidgets.QLabel("")
        self.sync_check = QtWidgets.QCheckBox("Sync leads")
        self.sync_check.setChecked(self._config.sync_plots)
        self.refresh_button = QtWidgets.QPushButton("Refresh")
        self.refresh_button.setToolTip("Reload this window, bypassing the cache")
        self.refresh_button.setEnabled(False)
        self.theme_combo = QtWidgets.QComboBox()
        for key, theme in THEMES.items():
            self.theme_combo.addItem(theme.name, key)
        self.theme_combo.setCurrentIndex(max(0, self.theme_combo.findData(self._theme_key)))
        header.addWidget(self.device_label)
        header.addWidget(self.window_label, 1)
        header.addWidget(self.sync_check)
        header.addWidget(self.refresh_button)
        header.addWidget(self.theme_combo)
        main.addLayout(header)

        self.timeline = TimelineBar(debounce_ms=self._config.debounce_ms)
        main.addWidget(self.timeline)

        self.error_banner = QtWidgets.QFrame()
        self.error_banner.setObjectName("errorBanner")
        banner = QtWidgets.QHBoxLayout(self.error_banner)
        banner.setContentsMargins(10, 6, 10, 6)
        self.error_label = QtWidgets.QLabel("")
        self.error_label.setWordWrap(True)
        self.retry_button = QtWidgets.QPushButton("Retry")
        banner.addWidget(self.error_label, 1)
        banner.addWidget(self.retry_button)
        self.error_banner.hide()
        main.addWidget(self.error_banner)

        self.lead_plots: list[LeadPlot] = []
        for channel, interaction in zip(Channel, self.interactions):
            plot = LeadPlot(interaction, label=f"Lead {int(channel)}")
            self.lead_plots.append(plot)
            main.addWidget(plot, 1)

        self.status_line = QtWidgets.QLabel("")
        self.status_line.setObjectName("statusLine")
        main.addWidget(self.status_line)

        side = QtWidgets.QVBoxLayout()
        side.setSpacing(8)
        self.quality_panel = QualityPanel()
        self.diagnostics_panel = DiagnosticsPanel(self.bridge.loader.recorder)
        side.addWidget(self.quality_panel)
        side.addWidget(self.diagnostics_panel, 1)
        side_widget = QtWidgets.QWidget()
        side_widget.setLayout(side)
        side_widget.setMinimumWidth(320)
        side_widget.setMaximumWidth(420)

        root.addLayout(main, 1)
        root.addWidget(side_widget)

    def _connect_signals(self) -> None:
        self.bridge.samplesReady.connect(self._on_samples_ready)
        self.bridge.loadFailed.connect(self._on_load_failed)
        self.bridge.stateChanged.connect(self._on_state_changed)
        self.bridge.aggregatesReady.connect(self.timeline.set_buckets)
        self.bridge.aggregatesFailed.connect(self._on_aggregates_failed)
        self.bridge.diagnosticsReady.connect(self.diagnostics_panel.set_report)
        self.bridge.boundsReady.connect(self._on_bounds_ready)
        self.timeline.rangeSelected.connect(self._on_range_selected)
        self.retry_button.clicked.connect(self._retry)
        self.refresh_button.clicked.connect(self._refresh)
        self.sync_check.toggled.connect(self.set_synchronised)
        self.theme_combo.currentIndexChanged.connect(self._on_theme_changed)

    # ------------------------------------------------------------------
    # public API

    def open_selection(self, selection: WorklistSelection) -> None:
        """Open a study handed over by the worklist.

        Without start/end the recording bounds are looked up first. The whole recording
        feeds the timeline; the first window (capped to the configured maximum) is loaded
        into the plots.
        """
        device_id = (selection.device_id or "").strip()
        if not device_id:
            self._show_error(InvalidParametersError("Pod ID is required."))
            return
        self._device_id = device_id
        self.device_label.setText(device_id)
        if selection.start in (None, "") or selection.end in (None, ""):
            self._set_status("Looking up recording bounds…")
            self.bridge.request_time_bounds(device_id)
            return
        try:
            _, start_ms, end_ms = validate_window(device_id, selection.start, selection.end)
        except InvalidParametersError as exc:
            self._show_error(exc)
            return
        self._open_recording(start_ms, end_ms)

    def request_window(self, start_ms: int, end_ms: int, *, force_refresh: bool = False) -> None:
        if self._device_id is None:
            return
        self.bridge.request_window(self._device_id, start_ms, end_ms, force_refresh=force_refresh)
        self.bridge.request_diagnostics(self._device_id, start_ms, end_ms)

    def set_synchronised(self, enabled: bool) -> None:
        for interaction in self.interactions:
            interaction.set_owner(self.owner if enabled else None)
        self._config.sync_plots = bool(enabled)

    # ------------------------------------------------------------------
    # handlers

    def _open_recording(self, start_ms: int, end_ms: int) -> None:
        self._recording = (start_ms, end_ms)
        self.owner.reset()
        self.timeline.set_buckets([])
        self.bridge.request_aggregates(
            self._device_id, start_ms, end_ms, bucket_seconds=self._config.bucket_seconds
        )
        max_ms = self.bridge.loader.limits.max_duration_ms
        self.request_window(start_ms, min(end_ms, start_ms + max_ms))

    def _on_bounds_ready(self, bounds) -> None:
        if bounds is None:
            self._set_status(_STATUS_TEXT[ViewStatus.EMPTY])
            return
        start_ms, end_ms = bounds
        if end_ms <= start_ms:
            self._set_status(_STATUS_TEXT[ViewStatus.EMPTY])
            return
        self._open_recording(start_ms, end_ms)

    def _on_range_selected(self, start_idx: int, end_idx: int) -> None:
        buckets = self.timeline.buckets
        if not buckets:
            return
        start_ms, end_ms = bucket_range_to_window(
            buckets, start_idx, end_idx, self._config.bucket_seconds * 1000
        )
        if self._recording is not None:
            end_ms = min(end_ms, self._recording[1])
        end_ms = min(end_ms, start_ms + self.bridge.loader.limits.max_duration_ms)
        self.owner.reset()
        self.request_window(start_ms, end_ms)

    def _on_samples_ready(self, view: str, request: WindowRequest | None, samples: SampleSet) -> None:
        if view != DEFAULT_VIEW:
            return
        self._request = request
        start_ms = request.start_ms if request is not None else None
        end_ms = request.end_ms if request is not None else None
        for interaction in self.interactions:
            interaction.set_samples(samples, start_ms, end_ms)
        self.quality_panel.set_summary(summarize_quality(samples))
        self.refresh_button.setEnabled(request is not None)
        if request is not None:
            self.window_label.setText(
                f"{format_instant(request.start_ms)} → {format_instant(request.end_ms)}  (factor {request.factor})"
            )

    def _on_load_failed(self, view: str, error: LoaderError) -> None:
        if view == DEFAULT_VIEW:
            self._show_error(error)

    def _on_aggregates_failed(self, error: LoaderError) -> None:
        LOG.warning("Timeline unavailable: %s", error.user_message)
        self._set_status(f"Timeline unavailable: {error.user_message}")

    def _on_state_changed(self, view: str, state: ViewState) -> None:
        if view != DEFAULT_VIEW:
            return
        if state.status == ViewStatus.ERROR:
            if state.error is not None:
                self._show_error(state.error)
            return
        self.error_banner.hide()
        if state.status == ViewStatus.READY:
            self._set_status(f"{len(state.samples)} points loaded.")
        else:
            self._set_status(_STATUS_TEXT[state.status])

    def _show_error(self, error: LoaderError) -> None:
        self.error_label.setText(error.user_message)
        self.retry_button.setVisible(error.retryable)
        self.error_banner.show()
        self._set_status(f"Error: {error.user_message}")

    def _retry(self) -> None:
        self.error_banner.hide()
        self.bridge.retry()

    def _refresh(self) -> None:
        self.bridge.refresh()

    def _set_status(self, text: str) -> None:
        self.status_line.setText(text)

    def _on_theme_changed(self, index: int) -> None:
        key = self.theme_combo.itemData(index)
        if key:
            self._apply_theme(key)

    def _apply_theme(self, key: str) -> None:
        theme = THEMES.get(key, THEMES[DEFAULT_THEME])
        self._theme_key = key
        self._config.theme = key
        self.setStyleSheet(theme.stylesheet)
        for plot in self.lead_plots:
            plot.set_theme(theme)
        self.timeline.set_theme(theme)
        self.diagnostics_panel.set_theme(theme)

    def closeEvent(self, event) -> None:
        try:
            self._config.save()
        except OSError:
            LOG.warning("Could not write settings to %s", self._config.ini_path)
        self.timeline.overview.close()
        for interaction in self.interactions:
            interaction.close()
        super().closeEvent(event)
