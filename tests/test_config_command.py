from pathlib import Path

import pytest

yaml = pytest.importorskip("yaml")

from kiosksync.commands.config import COMMAND, write_override
from kiosksync.configuration import load_runtime_configuration
from kiosksync.slash_commands import CommandRouter, SlashCommandContext


class RecordingRuntime:
    def __init__(self):
        self.bundles = []

    def reconfigure(self, bundle):
        self.bundles.append(bundle)


def _build_context(tmp_path: Path, metadata=None) -> tuple[SlashCommandContext, Path]:
    home = tmp_path / "kiosk"
    (home / "config").mkdir(parents=True)
    bundle = load_runtime_configuration(home)
    router = CommandRouter(bundle, metadata=metadata or {})
    context = SlashCommandContext(config=bundle, router=router, metadata=router.metadata)
    return context, home


def test_config_set_updates_override_file_and_reload(tmp_path: Path):
    context, home = _build_context(tmp_path)

    output = COMMAND.handler(context, ["sync.master_mode", "false"])

    override = home / "config" / "99-cli-overrides.yml"
    data = yaml.safe_load(override.read_text(encoding="utf-8"))
    assert data["sync"]["master_mode"] is False
    assert context.router.config.merged["sync"]["master_mode"] is False
    assert "sync.master_mode" in output


def test_config_get_returns_value(tmp_path: Path):
    context, _ = _build_context(tmp_path)
    COMMAND.handler(context, ["logging.level", "DEBUG"])

    output = COMMAND.handler(context, ["logging.level"])

    assert 'logging.level = "DEBUG"' in output


def test_config_rejects_interval_below_minimum(tmp_path: Path):
    context, home = _build_context(tmp_path)

    output = COMMAND.handler(context, ["sync.sync_interval_minutes", "1"])

    assert "rejected" in output
    assert not (home / "config" / "99-cli-overrides.yml").exists()
    assert context.config.merged["sync"]["sync_interval_minutes"] == 10


def test_config_rejects_lists(tmp_path: Path):
    context, _ = _build_context(tmp_path)

    output = COMMAND.handler(context, ["sync.folder", "[a, b]"])

    assert "only scalar values" in output


def test_config_masks_secrets(tmp_path: Path):
    context, _ = _build_context(tmp_path)

    set_output = COMMAND.handler(context, ["sync.refresh_token", "super-secret"])
    get_output = COMMAND.handler(context, ["sync.refresh_token"])
    view = COMMAND.handler(context, ["--yaml"])

    for output in (set_output, get_output, view):
        assert "super-secret" not in output
    assert "********" in get_output


def test_config_change_reconfigures_sync_runtime(tmp_path: Path):
    runtime = RecordingRuntime()
    context, _ = _build_context(tmp_path, metadata={"sync_runtime": runtime})

    COMMAND.handler(context, ["sync.enabled", "true"])

    assert len(runtime.bundles) == 1
    assert runtime.bundles[0].merged["sync"]["enabled"] is True


def test_write_override_preserves_existing_keys(tmp_path: Path):
    home = tmp_path / "kiosk"
    write_override(home, ["sync", "app_key"], "abc")
    path = write_override(home, ["sync", "refresh_token"], "r-1")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data == {"sync": {"app_key": "abc", "refresh_token": "r-1"}}
