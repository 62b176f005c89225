"""Theme definitions for the Holter viewer UI."""

from __future__ import annotations

from dataclasses import dataclass

from holterview.core.render import FrameColors


@dataclass(frozen=True)
class ThemeDefinition:
    """Palette configuration for the viewer.

    Parameters
    ----------
    name:
        Human-friendly display name for the theme.
    pg_background / pg_foreground:
        Colors applied to the PyQtGraph diagnostics chart.
    stylesheet:
        Application stylesheet snippet tailored to this palette.
    plot_background / plot_grid / plot_label / plot_placeholder:
        Raster colors for the lead plots (``#AARRGGBB`` where alpha matters).
    tooltip_background / tooltip_text:
        Hover tooltip box colors.
    wave_normal / wave_accessible:
        Trace color for the two palette modes.
    chart_bar:
        Bar color for query durations in the diagnostics chart.
    """

    name: str
    pg_background: str
    pg_foreground: str
    stylesheet: str
    plot_background: str
    plot_grid: str
    plot_label: str
    plot_placeholder: str
    tooltip_background: str
    tooltip_text: str
    wave_normal: str
    wave_accessible: str
    chart_bar: str
    selection_fill: str = "#4d3d6dff"

    def frame_colors(self) -> FrameColors:
        return FrameColors(
            background=self.plot_background,
            grid=self.plot_grid,
            label=self.plot_label,
            placeholder=self.plot_placeholder,
            tooltip_background=self.tooltip_background,
            tooltip_text=self.tooltip_text,
            wave_normal=self.wave_normal,
            wave_accessible=self.wave_accessible,
        )


STYLESHEET_TEMPLATE = """
QMainWindow {{ background-color: {window_bg}; color: {text_primary}; }}
QLabel {{ font-size: 13px; color: {text_primary}; }}
QLabel#statusLine {{ color: {text_muted}; }}
QFrame#errorBanner {{
    background-color: {error_bg};
    border: 1px solid {error_border};
    border-radius: 8px;
    padding: 6px 10px;
}}
QFrame#errorBanner QLabel {{ color: {error_text}; }}
QFrame#qualityPanel, QFrame#diagnosticsPanel {{
    background-color: {panel_bg};
    border: 1px solid {panel_border};
    border-radius: 10px;
}}
QPushButton {{
    background-color: {button_bg};
    border: 1px solid {button_border};
    border-radius: 6px;
    padding: 4px 10px;
    color: {button_text};
}}
QPushButton:hover {{ background-color: {button_bg_hover}; }}
QPushButton:checked {{ background-color: {button_bg_checked}; }}
QListWidget {{
    background-color: {list_bg};
    border: 1px solid {panel_border};
    color: {text_primary};
}}
QProgressBar {{
    background-color: {bar_bg};
    border: 1px solid {panel_border};
    border-radius: 4px;
    text-align: center;
    color: {text_primary};
}}
QProgressBar::chunk {{ border-radius: 4px; }}
QProgressBar[status="good"]::chunk {{ background-color: #4ade80; }}
QProgressBar[status="fair"]::chunk {{ background-color: #eab308; }}
QProgressBar[status="poor"]::chunk {{ background-color: #ef4444; }}
QScrollArea {{ background-color: {window_bg}; }}
"""


def _make_stylesheet(palette: dict[str, str]) -> str:
    return STYLESHEET_TEMPLATE.format(**palette)


DEFAULT_THEME = "Midnight"


THEMES: dict[str, ThemeDefinition] = {
    "Midnight": ThemeDefinition(
        name="Midnight",
        pg_background="#0b111c",
        pg_foreground="#e3e7f3",
        stylesheet=_make_stylesheet(
            {
                "window_bg": "#0b111c",
                "text_primary": "#e6ebf5",
                "text_muted": "#9ba9bf",
                "error_bg": "#3a1418",
                "error_border": "#7f1d1d",
                "error_text": "#fecaca",
                "panel_bg": "#131b2b",
                "panel_border": "#1f2a3d",
                "button_bg": "#1c273a",
                "button_border": "#2b3850",
                "button_text": "#e1e9ff",
                "button_bg_hover": "#263755",
                "button_bg_checked": "#2f4a7a",
                "list_bg": "#0d1420",
                "bar_bg": "#121a24",
            }
        ),
        plot_background="#111111",
        plot_grid="#0dffffff",
        plot_label="#ffffff",
        plot_placeholder="#808080",
        tooltip_background="#cc000000",
        tooltip_text="#ffffff",
        wave_normal="#cc81e6d9",
        wave_accessible="#e60078b4",
        chart_bar="#5f8bff",
    ),
    "Dawn": ThemeDefinition(
        name="Dawn",
        pg_background="#F5F7FA",
        pg_foreground="#0F172A",
        stylesheet=_make_stylesheet(
            {
                "window_bg": "#F5F7FA",
                "text_primary": "#0F172A",
                "text_muted": "#5B6573",
                "error_bg": "#FDECEC",
                "error_border": "#F5B5B5",
                "error_text": "#8A1C1C",
                "panel_bg": "#FFFFFF",
                "panel_border": "#D9E1EA",
                "button_bg": "#F0F4FA",
                "button_border": "#D4DEED",
                "button_text": "#1F2A44",
                "button_bg_hover": "#E6ECF7",
                "button_bg_checked": "#CAD7F1",
                "list_bg": "#FFFFFF",
                "bar_bg": "#EEF2F7",
            }
        ),
        plot_background="#FFFFFF",
        plot_grid="#14000000",
        plot_label="#0F172A",
        plot_placeholder="#64748B",
        tooltip_background="#e60F172A",
        tooltip_text="#FFFFFF",
        wave_normal="#ff0f766e",
        wave_accessible="#ff0078b4",
        chart_bar="#1E3A8A",
        selection_fill="#331E3A8A",
    ),
}
