"""Tests for the home-directory configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiosksync import configuration


def _prepare_defaults(tmp_path: Path, content: str = "sync:\n  enabled: false\n") -> Path:
    config_dir = tmp_path / "defaults"
    config_dir.mkdir()
    (config_dir / "10-defaults.yml").write_text(content, encoding="utf-8")
    return config_dir


def _write_override(home: Path, content: str, name: str = "20-local.yml") -> None:
    cfg_dir = home / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / name).write_text(content, encoding="utf-8")


def test_resolve_home_dir_uses_env_expansion(tmp_path: Path):
    env = {"KIOSK_HOME": str(tmp_path / "kiosk")}

    assert configuration.resolve_home_dir(env=env) == tmp_path / "kiosk"


def test_resolve_home_dir_default_is_user_home():
    assert configuration.resolve_home_dir(env={}) == Path("~/.kiosk").expanduser()


def test_packaged_defaults_load_cleanly(tmp_path: Path):
    home = tmp_path / "kiosk"
    home.mkdir()

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "ready"
    assert bundle.merged["sync"]["folder"] == "/Lab-Attendance"
    assert bundle.merged["sync"]["sync_interval_minutes"] == 10
    assert bundle.data_dir == home / "data"
    assert bundle.database_path == home / "state" / "kiosk.db"


def test_overrides_merge_over_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_defaults(tmp_path))
    home = tmp_path / "kiosk"
    _write_override(home, "sync:\n  enabled: true\n  master_mode: false\n")

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "ready"
    assert bundle.merged["sync"]["enabled"] is True
    assert bundle.merged["sync"]["master_mode"] is False
    assert bundle.merged["sync"]["app_key"] == ""
    assert len(bundle.files_loaded) == 2


def test_missing_home_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_defaults(tmp_path))

    bundle = configuration.load_runtime_configuration(tmp_path / "missing")

    assert bundle.status == "missing"
    assert any(diag.level == "error" for diag in bundle.diagnostics)


def test_bad_yaml_makes_configuration_invalid(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_defaults(tmp_path))
    home = tmp_path / "kiosk"
    _write_override(home, "sync: [\n", name="broken.yml")

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("Failed to parse" in diag.message for diag in bundle.diagnostics)


def test_interval_below_minimum_is_an_error_and_clamped(tmp_path: Path):
    home = tmp_path / "kiosk"
    _write_override(home, "sync:\n  sync_interval_minutes: 1\n")

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert bundle.merged["sync"]["sync_interval_minutes"] == 2
    assert any("at least 2" in diag.message for diag in bundle.diagnostics)


def test_wrong_types_are_errors(tmp_path: Path):
    home = tmp_path / "kiosk"
    _write_override(home, "sync:\n  enabled: \"yes\"\n  sync_interval_minutes: true\n")

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "invalid"
    messages = " ".join(diag.message for diag in bundle.diagnostics)
    assert "sync.enabled" in messages
    assert "sync.sync_interval_minutes" in messages
    assert bundle.merged["sync"]["enabled"] is False


def test_unknown_keys_warn(tmp_path: Path):
    home = tmp_path / "kiosk"
    _write_override(home, "sync:\n  server_url: http://example\n")

    bundle = configuration.load_runtime_configuration(home)

    assert bundle.status == "ready"
    assert any(
        diag.level == "warning" and "sync.server_url" in diag.message for diag in bundle.diagnostics
    )


@pytest.mark.parametrize(
    "key, value, ok",
    [
        (["sync", "sync_interval_minutes"], 5, True),
        (["sync", "sync_interval_minutes"], 1, False),
        (["sync", "enabled"], "maybe", False),
        (["sync", "folder"], "/Other", True),
        (["logging", "level"], "DEBUG", True),
    ],
)
def test_validate_override(key, value, ok):
    errors = [d for d in configuration.validate_override(key, value) if d.level == "error"]

    assert (not errors) is ok


def test_validate_override_warns_on_unknown_key():
    diagnostics = configuration.validate_override(["sync", "server_url"], "x")

    assert [d.level for d in diagnostics] == ["warning"]
