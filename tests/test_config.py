from pathlib import Path

from holterview.config import DEFAULT_BASE_URL, ViewerConfig


def test_viewer_config_defaults_when_missing(tmp_path: Path):
    cfg = ViewerConfig.load(tmp_path / "missing.ini")
    assert cfg.base_url == DEFAULT_BASE_URL
    assert cfg.max_window_hours == 24.0
    assert cfg.cache_ttl_s == 300.0
    assert cfg.palette == "normal"
    assert cfg.sync_plots is True
    assert cfg.window_limits().max_duration_ms == 24 * 3600 * 1000
    assert cfg.factor_policy().ceiling == 15
    assert cfg.chunk_policy().chunks_per_page == 5


def test_viewer_config_parse(tmp_path: Path):
    ini_path = tmp_path / "config.ini"
    ini_path.write_text(
        """
[service]
base_url = https://example.test/functions/v1/
api_key = secret

[loader]
max_window_hours = 12
factor_ceiling = 3
cache_ttl_s = 60

[ui]
palette = Accessible
y_min = -2.5
y_max = 2.5
sync_plots = no

[timeline]
bucket_seconds = 900
""".strip()
    )

    cfg = ViewerConfig.load(ini_path)
    assert cfg.base_url == "https://example.test/functions/v1/"
    assert cfg.api_key == "secret"
    assert cfg.window_limits().max_duration_ms == 12 * 3600 * 1000
    assert cfg.factor_policy().clamp(15) == 3
    assert cfg.cache_policy().ttl_s == 60.0
    assert cfg.palette == "accessible"
    assert (cfg.y_min, cfg.y_max) == (-2.5, 2.5)
    assert cfg.sync_plots is False
    assert cfg.bucket_seconds == 900


def test_viewer_config_bad_values_fall_back(tmp_path: Path, caplog):
    ini_path = tmp_path / "config.ini"
    ini_path.write_text(
        """
[loader]
max_points = lots

[ui]
palette = neon
y_min = 10
y_max = -10
""".strip()
    )

    with caplog.at_level("WARNING"):
        cfg = ViewerConfig.load(ini_path)
    assert cfg.max_points == 2000
    assert cfg.palette == "normal"
    assert (cfg.y_min, cfg.y_max) == (-50.0, 50.0)
    assert "max_points" in caplog.text


def test_viewer_config_save_round_trip(tmp_path: Path):
    ini_path = tmp_path / "config.ini"
    cfg = ViewerConfig.load(ini_path)
    cfg.theme = "Dawn"
    cfg.chunk_minutes = 10.0
    cfg.sync_plots = False
    cfg.save()

    written = ini_path.read_text()
    assert "theme = Dawn" in written
    reloaded = ViewerConfig.load(ini_path)
    assert reloaded.theme == "Dawn"
    assert reloaded.chunk_minutes == 10.0
    assert reloaded.sync_plots is False
