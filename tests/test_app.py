"""Tests covering console wiring helpers and the sync runtime."""

from __future__ import annotations

import threading
from pathlib import Path

from conftest import FakeDropbox

from kiosksync.app import build_router, emit_configuration_report, execute_cli_command
from kiosksync.configuration import ConfigurationBundle, Diagnostic, load_runtime_configuration
from kiosksync.runtime import SyncRuntime
from kiosksync.sync.remote import RemoteStoreClient


def _bundle(tmp_path: Path) -> ConfigurationBundle:
    home = tmp_path / "kiosk"
    (home / "config").mkdir(parents=True)
    return load_runtime_configuration(home)


def test_build_router_registers_all_commands(tmp_path: Path):
    router = build_router(_bundle(tmp_path))

    assert set(router.command_names) >= {"help", "config", "sync"}
    assert "sync_runtime" not in router.metadata


def test_execute_cli_command_routes_to_handler(tmp_path: Path):
    router = build_router(_bundle(tmp_path))

    assert execute_cli_command("   ", router) == ""
    assert execute_cli_command("/help sync", router).startswith("/sync:")
    assert "Unknown command" in execute_cli_command("/bogus", router)


def test_emit_configuration_report(tmp_path: Path, capsys):
    bundle = _bundle(tmp_path)

    emit_configuration_report(bundle)
    assert "[config] Loaded" in capsys.readouterr().out

    bundle.diagnostics.append(Diagnostic(level="warning", message="odd key", source=None))
    emit_configuration_report(bundle)
    out = capsys.readouterr().out
    assert "(WARNING) odd key" in out


def test_runtime_with_sync_disabled_stays_idle(tmp_path: Path):
    bundle = _bundle(tmp_path)
    runtime = SyncRuntime(bundle)

    assert runtime.start() is False
    assert bundle.database_path.exists()
    assert runtime.client.scheduler.running is False

    runtime.shutdown()


def test_runtime_reconfigure_swaps_client(tmp_path: Path):
    bundle = _bundle(tmp_path)
    runtime = SyncRuntime(bundle)
    runtime.start()
    original = runtime.client

    (bundle.home_dir / "config" / "20-local.yml").write_text(
        "sync:\n  master_mode: false\n  folder: /Kiosk/East\n", encoding="utf-8"
    )
    runtime.reconfigure(load_runtime_configuration(bundle.home_dir))

    assert runtime.client is not original
    assert runtime.client.settings.master_mode is False
    assert runtime.client.layout.base == "/Kiosk/East"
    assert runtime.client.orchestrator.detector.store is runtime.store
    runtime.shutdown()


def test_reconfigure_never_overlaps_a_running_sync(tmp_path: Path, fake_dropbox: FakeDropbox):
    bundle = _bundle(tmp_path)
    (bundle.home_dir / "config" / "20-local.yml").write_text(
        "sync:\n  enabled: true\n  master_mode: false\n  access_token: token\n", encoding="utf-8"
    )
    bundle = load_runtime_configuration(bundle.home_dir)
    bundle.data_dir.mkdir(parents=True)
    (bundle.data_dir / "attendance-ledger.json").write_text('[{"id": 1}]', encoding="utf-8")

    entered = threading.Event()
    release = threading.Event()
    counter = threading.Lock()
    uploads = {"active": 0, "max": 0}

    def slow_upload(_path):
        with counter:
            uploads["active"] += 1
            uploads["max"] = max(uploads["max"], uploads["active"])
        try:
            if not entered.is_set():
                entered.set()
                release.wait(5)
        finally:
            with counter:
                uploads["active"] -= 1

    fake_dropbox.hooks["files_upload"] = slow_upload
    runtime = SyncRuntime(bundle, remote_factory=lambda: RemoteStoreClient(dbx_factory=lambda **_: fake_dropbox))
    original = runtime.client

    assert runtime.start() is True
    assert entered.wait(5)
    old_thread = original.scheduler._thread

    runtime.reconfigure(load_runtime_configuration(bundle.home_dir))
    overlapping = runtime.client.push_all()
    release.set()
    old_thread.join(5)

    assert overlapping["dropped"] is True
    assert runtime.client.local is original.local
    assert runtime.client.orchestrator.guard is original.orchestrator.guard
    assert uploads["max"] == 1
    runtime.shutdown()
