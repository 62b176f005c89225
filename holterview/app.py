# holterview/app.py
import argparse
import logging
import sys

from PySide6 import QtWidgets

from holterview.config import ViewerConfig
from holterview.core.cache import SampleCache
from holterview.core.loader import WindowedLoader
from holterview.core.recorder import QueryRecorder
from holterview.core.transport import HttpTransport
from holterview.core.window import Selection
from holterview.ui.loader_bridge import LoaderBridge
from holterview.ui.main_window import MainWindow


def build_loader(cfg: ViewerConfig, transport=None) -> WindowedLoader:
    if transport is None:
        transport = HttpTransport(cfg.base_url, api_key=cfg.api_key or None, timeout_s=cfg.timeout_s)
    return WindowedLoader(
        transport,
        limits=cfg.window_limits(),
        factor_policy=cfg.factor_policy(),
        cache=SampleCache(cfg.cache_policy()),
        recorder=QueryRecorder(capacity=cfg.recorder_size),
        max_points=cfg.max_points,
    )


def main(
    device_id=None,
    *,
    start=None,
    end=None,
    config_path: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
):
    cfg = ViewerConfig.load(config_path)
    if base_url:
        cfg.base_url = base_url
    if api_key:
        cfg.api_key = api_key

    app = QtWidgets.QApplication(sys.argv)
    loader = build_loader(cfg)
    bridge = LoaderBridge(loader)
    w = MainWindow(bridge, config=cfg)
    w.resize(1280, 860)
    w.show()
    if device_id:
        w.open_selection(Selection(device_id, start, end))
    try:
        return app.exec()
    finally:
        bridge.close()
        loader.transport.close()
        loader.recorder.close()


def _parse_args(argv=None):
    p = argparse.ArgumentParser(description="Holter ECG waveform viewer")
    p.add_argument("device_id", nargs="?", help="Pod / device identifier")
    p.add_argument("--start", help="Window start (ISO-8601); omit to use the recording bounds")
    p.add_argument("--end", help="Window end (ISO-8601)")
    p.add_argument("--config", help="Path to config.ini")
    p.add_argument("--base-url", help="Downsampling service base URL")
    p.add_argument("--api-key")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args(argv)


def run(argv=None):
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return main(
        args.device_id,
        start=args.start,
        end=args.end,
        config_path=args.config,
        base_url=args.base_url,
        api_key=args.api_key,
    )


if __name__ == "__main__":
    sys.exit(run())
