"""Public entry points for the kiosk process and the operator CLI."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .formats import LocalStore
from .orchestrator import SingleFlight, SyncOrchestrator
from .protocol import SyncResult
from .remote import RemoteCredentials, RemoteStoreClient, RemoteStoreError
from .safety import backup_timestamp, write_atomic
from .scheduler import SyncScheduler, effective_interval_minutes
from .tracked import ATTENDANCE, DEFAULT_REMOTE_FOLDER, ROSTER, LocalDataDir, RemoteLayout

logger = logging.getLogger("kiosksync.sync.client")


@dataclass
class SyncSettings:
    """Settings for sync operations."""

    enabled: bool = False
    master_mode: bool = True
    sync_interval_minutes: float = 10
    folder: str = DEFAULT_REMOTE_FOLDER
    app_key: str = ""
    app_secret: str = ""
    refresh_token: str = ""
    access_token: str = ""

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SyncSettings":
        raw = config.get("sync", {}) if config else {}
        return cls(
            enabled=bool(raw.get("enabled", False)),
            master_mode=bool(raw.get("master_mode", True)),
            sync_interval_minutes=effective_interval_minutes(raw.get("sync_interval_minutes", 10)),
            folder=str(raw.get("folder") or DEFAULT_REMOTE_FOLDER),
            app_key=str(raw.get("app_key") or ""),
            app_secret=str(raw.get("app_secret") or ""),
            refresh_token=str(raw.get("refresh_token") or ""),
            access_token=str(raw.get("access_token") or ""),
        )

    @property
    def credentials(self) -> RemoteCredentials:
        return RemoteCredentials(
            app_key=self.app_key,
            app_secret=self.app_secret,
            refresh_token=self.refresh_token,
            access_token=self.access_token,
        )


class SyncClient:
    """Facade over the sync engine. Every method returns a result dict and never raises."""

    def __init__(
        self,
        data_dir: Path,
        settings: SyncSettings,
        store: Optional[LocalStore] = None,
        remote: Optional[RemoteStoreClient] = None,
        local: Optional[LocalDataDir] = None,
        guard: Optional[SingleFlight] = None,
    ):
        self.settings = settings
        self.local = local or LocalDataDir(data_dir)
        self.remote = remote or RemoteStoreClient()
        self.layout = RemoteLayout.from_folder(settings.folder)
        self.orchestrator = SyncOrchestrator(
            self.local,
            self.remote,
            self.layout,
            master_mode=settings.master_mode,
            store=store,
            guard=guard,
        )
        self.scheduler = SyncScheduler(
            self.orchestrator,
            enabled=settings.enabled,
            interval_minutes=settings.sync_interval_minutes,
        )

    @property
    def data_dir(self) -> Path:
        return self.local.root

    def initialize(self) -> Dict[str, Any]:
        if self.remote.authenticate(self.settings.credentials):
            return {"success": True, "mode": self.remote.auth_mode}
        return {"success": False, "error": "Remote store not configured"}

    # -- sync runs ---------------------------------------------------------

    def sync_by_mode(self) -> Dict[str, Any]:
        return self._run(self.orchestrator.sync_by_mode, "manual-sync")

    def pull_all(self) -> Dict[str, Any]:
        return self._run(self.orchestrator.pull_all, "manual-pull")

    def push_all(self) -> Dict[str, Any]:
        return self._run(self.orchestrator.push_all, "manual-push")

    def sync_all(self) -> Dict[str, Any]:
        return self._run(self.orchestrator.sync_all, "manual-two-way")

    def _run(self, runner: Callable[..., SyncResult], trigger: str) -> Dict[str, Any]:
        not_ready = self._require_remote()
        if not_ready:
            return not_ready
        try:
            return runner(trigger=trigger).to_dict()
        except Exception as exc:
            logger.exception("%s failed", trigger)
            return {"success": False, "error": str(exc), "trigger": trigger}

    # -- remote housekeeping -----------------------------------------------

    def test_connection(self) -> Dict[str, Any]:
        def _probe() -> Dict[str, Any]:
            name, email = self.remote.current_account()
            return {"user": name, "email": email, "message": f"Connected as {name}"}

        return self._call(_probe)

    def get_space_usage(self) -> Dict[str, Any]:
        def _usage() -> Dict[str, Any]:
            usage = self.remote.get_space_usage()
            return {
                "used": usage.used,
                "allocated": usage.allocated,
                "available": usage.available,
                "used_percent": usage.used_percent,
            }

        return self._call(_usage)

    def list_files(self, folder: str = "", recursive: bool = False) -> Dict[str, Any]:
        return self._call(
            lambda: {"files": [entry.to_dict() for entry in self.remote.list_files(folder, recursive=recursive)]}
        )

    def ensure_folder(self, path: str) -> Dict[str, Any]:
        return self._call(lambda: {"created": self.remote.ensure_folder(path)})

    def create_default_folders(self) -> Dict[str, Any]:
        def _create() -> Dict[str, Any]:
            folders = self.layout.default_folders() + [self.layout.reports_dir]
            created = [folder for folder in folders if self.remote.ensure_folder(folder)]
            return {"created": bool(created), "folders": created}

        return self._call(_create)

    def upload_backup(self, local_path: Optional[Path] = None) -> Dict[str, Any]:
        """Ship a full local backup (roster + ledger, never credentials)."""
        if not self.settings.enabled:
            return {"success": False, "error": "Sync not enabled"}

        def _upload() -> Dict[str, Any]:
            source = Path(local_path) if local_path else build_local_backup(self.local)
            return self._upload_into(self.layout.backups_dir, source, "Data backup uploaded")

        return self._call(_upload)

    def upload_report(self, local_path: Path) -> Dict[str, Any]:
        if not self.settings.enabled:
            return {"success": False, "error": "Sync not enabled"}
        return self._call(
            lambda: self._upload_into(self.layout.reports_dir, Path(local_path), "Report uploaded")
        )

    def _upload_into(self, folder: str, source: Path, message: str) -> Dict[str, Any]:
        self.remote.ensure_folder(folder)
        uploaded = self.remote.upload_file(source.read_bytes(), f"{folder}/{source.name}")
        return {"path": uploaded.path, "size": uploaded.size, "local_path": str(source), "message": message}

    def get_status(self) -> Dict[str, Any]:
        last = self.scheduler.last_result
        return {
            "enabled": self.settings.enabled,
            "mode": "master (pull)" if self.settings.master_mode else "satellite (push)",
            "interval_minutes": self.scheduler.interval_minutes,
            "folder": self.layout.base or "/",
            "auth_mode": self.remote.auth_mode or "(not configured)",
            "busy": self.orchestrator.busy,
            "scheduler_running": self.scheduler.running,
            "last_run": last.to_dict() if last else None,
            "local_files": {tracked.name: str(path) for tracked, path in self.local.iter_existing()},
        }

    def _require_remote(self) -> Optional[Dict[str, Any]]:
        if self.remote.authenticated:
            return None
        init = self.initialize()
        if init["success"]:
            return None
        return init

    def _call(self, fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        not_ready = self._require_remote()
        if not_ready:
            return not_ready
        try:
            result = fn()
        except RemoteStoreError as exc:
            return {"success": False, "error": exc.message, "kind": exc.kind.value}
        except Exception as exc:
            logger.exception("Remote operation failed")
            return {"success": False, "error": str(exc)}
        return {"success": True, **result}


def build_local_backup(local: LocalDataDir, now: Optional[datetime] = None) -> Path:
    """Write a timestamped bundle of both tracked files under ``<data>/backups``."""
    moment = now or datetime.now(timezone.utc)
    bundle = {
        "students": local.read_records(ROSTER),
        "attendance": local.read_records(ATTENDANCE),
        "backupDate": moment.isoformat(),
    }
    target = local.root / "backups" / f"backup-{backup_timestamp(moment)}.json"
    write_atomic(target, json.dumps(bundle, indent=2, ensure_ascii=False).encode("utf-8"))
    logger.info("Local backup written to %s", target)
    return target


__all__ = ["SyncClient", "SyncSettings", "build_local_backup"]
