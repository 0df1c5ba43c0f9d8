import json
from pathlib import Path

import pytest

from core.config_loader import ConfigError, ConfigLoader
from scripts.validate_config import validate_system_config
from shared.config.system import CONFIG_PATH, load_system_config

SCHEMA_DIR = Path(__file__).resolve().parents[1] / "schemas"


def _write(tmp_path, payload, name="system.json"):
    path = tmp_path / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_apply_to_missing_sections(monkeypatch):
    monkeypatch.delenv("TVPUSH_STREAM_API_KEY", raising=False)
    cfg = load_system_config({})

    assert cfg.stream.path == "/app/combined-sse"
    assert cfg.stream.api_key == ""
    assert cfg.overlays.toast_dwell_seconds == 8.0
    assert cfg.overlays.dedup_window_seconds == 30.0
    assert cfg.overlays.block_logout_seconds == 5.0
    assert cfg.refresh.package_max_immediate == 5
    assert cfg.navigation.login_route == "/panmetro-login"
    assert "/player" in cfg.navigation.player_routes


def test_bad_values_fall_back_per_field():
    cfg = load_system_config({
        "overlays": {"toast_dwell_seconds": "slow", "dedup_window_seconds": 10},
        "navigation": {"sidebar_routes": "everywhere"},
    })
    assert cfg.overlays.toast_dwell_seconds == 8.0
    assert cfg.overlays.dedup_window_seconds == 10.0
    assert "/live" in cfg.navigation.sidebar_routes


def test_environment_overrides_secrets(monkeypatch):
    monkeypatch.setenv("TVPUSH_STREAM_API_KEY", "push-key")
    monkeypatch.setenv("TVPUSH_ENTITLEMENT_BASE_URL", "https://drm.example")
    monkeypatch.setenv("TVPUSH_APP_VERSION", "  ")

    cfg = load_system_config({"stream": {"app_version": "caastv_9"}})
    assert cfg.stream.api_key == "push-key"
    assert cfg.entitlements.base_url == "https://drm.example"
    assert cfg.stream.app_version == "caastv_9"


def test_loader_warns_but_boots_on_schema_violations(tmp_path):
    path = _write(tmp_path, {"overlays": {"toast_dwell_seconds": "slow"}, "stream": {"path": "no-slash"}})
    loader = ConfigLoader(path, SCHEMA_DIR)

    errors = loader.validation_errors(loader.load_raw())
    assert any(e.startswith("'overlays/toast_dwell_seconds'") for e in errors)
    assert any(e.startswith("'stream/path'") for e in errors)

    cfg = loader.load_system_config()
    assert cfg.overlays.toast_dwell_seconds == 8.0


def test_loader_strict_mode_rejects_unreadable_json(tmp_path):
    path = _write(tmp_path, "{broken")
    assert ConfigLoader(path, SCHEMA_DIR).load_raw() == {}
    with pytest.raises(ConfigError):
        ConfigLoader(path, SCHEMA_DIR, strict=True).load_raw()


def test_validate_script(tmp_path, capsys):
    assert validate_system_config(CONFIG_PATH)
    assert validate_system_config(tmp_path / "absent.json")

    bad = _write(tmp_path, {"refresh": {"package_max_immediate": -1}})
    assert not validate_system_config(bad)
    assert "[CONFIG ERROR]" in capsys.readouterr().err
