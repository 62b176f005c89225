from __future__ import annotations

import configparser
import logging
from dataclasses import dataclass
from pathlib import Path

from holterview.core.cache import CachePolicy
from holterview.core.chunked import ChunkPolicy
from holterview.core.downsample import FactorPolicy
from holterview.core.window import WindowLimits

LOG = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:54321/functions/v1"


@dataclass
class ViewerConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    timeout_s: float = 30.0
    max_window_hours: float = 24.0
    max_points: int = 2000
    cache_ttl_s: float = 300.0
    cache_max_entries: int = 64
    factor_ceiling: int = 15
    recorder_size: int = 10
    chunk_minutes: float = 5.0
    chunks_per_page: int = 5
    theme: str = "Midnight"
    palette: str = "normal"
    y_min: float = -50.0
    y_max: float = 50.0
    plot_width: int = 800
    plot_height: int = 250
    sync_plots: bool = True
    keyboard_pan_px: float = 20.0
    bucket_seconds: int = 3600
    debounce_ms: int = 150
    ini_path: Path | None = None

    @classmethod
    def load(cls, ini_path: str | Path | None = None) -> "ViewerConfig":
        cfg = cls()
        path = Path(ini_path or "config.ini")
        if path.exists():
            parser = configparser.ConfigParser()
            parser.read(path)

            service = parser["service"] if "service" in parser else None
            if service:
                cfg.base_url = service.get("base_url", fallback=cfg.base_url).strip() or cfg.base_url
                cfg.api_key = service.get("api_key", fallback=cfg.api_key).strip()
                cfg.timeout_s = _read(service, "timeout_s", cfg.timeout_s, float)

            loader = parser["loader"] if "loader" in parser else None
            if loader:
                cfg.max_window_hours = _read(loader, "max_window_hours", cfg.max_window_hours, float)
                cfg.max_points = _read(loader, "max_points", cfg.max_points, int)
                cfg.cache_ttl_s = _read(loader, "cache_ttl_s", cfg.cache_ttl_s, float)
                cfg.cache_max_entries = _read(loader, "cache_max_entries", cfg.cache_max_entries, int)
                cfg.factor_ceiling = _read(loader, "factor_ceiling", cfg.factor_ceiling, int)
                cfg.recorder_size = _read(loader, "recorder_size", cfg.recorder_size, int)

            chunks = parser["chunks"] if "chunks" in parser else None
            if chunks:
                cfg.chunk_minutes = _read(chunks, "chunk_minutes", cfg.chunk_minutes, float)
                cfg.chunks_per_page = _read(chunks, "chunks_per_page", cfg.chunks_per_page, int)

            ui_section = parser["ui"] if "ui" in parser else None
            if ui_section:
                cfg.theme = ui_section.get("theme", fallback=cfg.theme)
                palette = ui_section.get("palette", fallback=cfg.palette).strip().lower()
                if palette in ("normal", "accessible"):
                    cfg.palette = palette
                else:
                    LOG.warning("Unknown palette %r in %s; using %s", palette, path, cfg.palette)
                y_min = _read(ui_section, "y_min", cfg.y_min, float)
                y_max = _read(ui_section, "y_max", cfg.y_max, float)
                if y_min < y_max:
                    cfg.y_min, cfg.y_max = y_min, y_max
                else:
                    LOG.warning("Ignoring amplitude range %s..%s in %s", y_min, y_max, path)
                cfg.plot_width = _read(ui_section, "plot_width", cfg.plot_width, int)
                cfg.plot_height = _read(ui_section, "plot_height", cfg.plot_height, int)
                cfg.sync_plots = _read(ui_section, "sync_plots", cfg.sync_plots, bool)
                cfg.keyboard_pan_px = _read(ui_section, "keyboard_pan_px", cfg.keyboard_pan_px, float)

            timeline = parser["timeline"] if "timeline" in parser else None
            if timeline:
                cfg.bucket_seconds = _read(timeline, "bucket_seconds", cfg.bucket_seconds, int)
                cfg.debounce_ms = _read(timeline, "debounce_ms", cfg.debounce_ms, int)
        cfg.ini_path = path
        return cfg

    def window_limits(self) -> WindowLimits:
        return WindowLimits(max_duration_s=self.max_window_hours * 3600.0)

    def factor_policy(self) -> FactorPolicy:
        return FactorPolicy(ceiling=max(1, self.factor_ceiling))

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(ttl_s=self.cache_ttl_s, max_entries=max(1, self.cache_max_entries))

    def chunk_policy(self) -> ChunkPolicy:
        return ChunkPolicy(
            chunk_minutes=self.chunk_minutes if self.chunk_minutes > 0 else 5.0,
            chunks_per_page=self.chunks_per_page if self.chunks_per_page > 0 else 5,
        )

    def save(self) -> None:
        if self.ini_path is None:
            return
        parser = configparser.ConfigParser()
        parser["service"] = {
            "base_url": self.base_url,
            "api_key": self.api_key,
            "timeout_s": f"{self.timeout_s:.3f}",
        }
        parser["loader"] = {
            "max_window_hours": f"{self.max_window_hours:.3f}",
            "max_points": str(self.max_points),
            "cache_ttl_s": f"{self.cache_ttl_s:.3f}",
            "cache_max_entries": str(self.cache_max_entries),
            "factor_ceiling": str(self.factor_ceiling),
            "recorder_size": str(self.recorder_size),
        }
        parser["chunks"] = {
            "chunk_minutes": f"{self.chunk_minutes:.3f}",
            "chunks_per_page": str(self.chunks_per_page),
        }
        parser["ui"] = {
            "theme": self.theme,
            "palette": self.palette,
            "y_min": f"{self.y_min:.3f}",
            "y_max": f"{self.y_max:.3f}",
            "plot_width": str(self.plot_width),
            "plot_height": str(self.plot_height),
            "sync_plots": "true" if self.sync_plots else "false",
            "keyboard_pan_px": f"{self.keyboard_pan_px:.3f}",
        }
        parser["timeline"] = {
            "bucket_seconds": str(self.bucket_seconds),
            "debounce_ms": str(self.debounce_ms),
        }
        with self.ini_path.open("w") as fh:
            parser.write(fh)


def _read(section: configparser.SectionProxy, key: str, default, kind):
    try:
        if kind is bool:
            return section.getboolean(key, fallback=default)
        if kind is int:
            return section.getint(key, fallback=default)
        return section.getfloat(key, fallback=default)
    except ValueError:
        LOG.warning("Invalid value for %s.%s; using default %r", section.name, key, default)
        return default
