"""Run-level orchestration: pull-all, push-all and two-way sync."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, TypeVar

from .conflict import ConflictResolver
from .formats import FormatDetector, LocalStore
from .protocol import FileSyncResult, SyncAction, SyncMode, SyncResult
from .remote import RemoteStoreClient
from .tracked import TRACKED_FILES, LocalDataDir, RemoteLayout, TrackedFile, decode_records

logger = logging.getLogger("kiosksync.sync.orchestrator")

T = TypeVar("T")


class SingleFlight:
    """At most one call in flight; callers arriving while busy are turned away."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def run(self, fn: Callable[[], T]) -> Tuple[bool, Optional[T]]:
        if not self._lock.acquire(blocking=False):
            return False, None
        try:
            return True, fn()
        finally:
            self._lock.release()


class SyncOrchestrator:
    """Runs one sync pass over every tracked file.

    ``master_mode`` picks the direction for scheduled runs: a master pulls
    (the remote is authoritative), a satellite pushes.
    """

    def __init__(
        self,
        local: LocalDataDir,
        remote: RemoteStoreClient,
        layout: RemoteLayout,
        master_mode: bool = True,
        store: Optional[LocalStore] = None,
        tracked_files: Tuple[TrackedFile, ...] = TRACKED_FILES,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        guard: Optional[SingleFlight] = None,
    ):
        self.local = local
        self.remote = remote
        self.layout = layout
        self.master_mode = master_mode
        self.tracked_files = tracked_files
        self.resolver = ConflictResolver(local, remote, layout, clock=clock)
        self.detector = FormatDetector(remote, layout, local, store)
        self.guard = guard or SingleFlight()

    @property
    def busy(self) -> bool:
        return self.guard.busy

    @property
    def default_mode(self) -> SyncMode:
        return SyncMode.PULL if self.master_mode else SyncMode.PUSH

    def sync_by_mode(self, trigger: str = "manual-sync") -> SyncResult:
        return self.run(self.default_mode, trigger)

    def pull_all(self, trigger: str = "manual-pull") -> SyncResult:
        return self.run(SyncMode.PULL, trigger)

    def push_all(self, trigger: str = "manual-push") -> SyncResult:
        return self.run(SyncMode.PUSH, trigger)

    def sync_all(self, trigger: str = "manual-sync") -> SyncResult:
        return self.run(SyncMode.TWO_WAY, trigger)

    def run(self, mode: SyncMode, trigger: str) -> SyncResult:
        ran, result = self.guard.run(lambda: self._run_locked(mode, trigger))
        if ran and result is not None:
            return result
        logger.info("%s dropped: a sync is already running", trigger)
        return SyncResult(success=True, mode=mode, trigger=trigger, dropped=True, message="sync already running")

    def _run_locked(self, mode: SyncMode, trigger: str) -> SyncResult:
        if not self.remote.authenticated:
            result = SyncResult(success=False, mode=mode, trigger=trigger, message="Remote store not configured")
            self._log_run(result)
            return result

        folder_error = self._ensure_default_folders()

        step = {
            SyncMode.PULL: self._pull_one,
            SyncMode.PUSH: self._push_one,
            SyncMode.TWO_WAY: self.resolver.resolve,
        }[mode]

        results: List[FileSyncResult] = []
        for tracked in self.tracked_files:
            try:
                results.append(step(tracked))
            except Exception as exc:
                logger.warning("%s: %s failed: %s", trigger, tracked.name, exc)
                results.append(FileSyncResult(file=tracked.name, action=SyncAction.ERROR, error=str(exc)))

        result = SyncResult(success=True, mode=mode, trigger=trigger, results=results)
        result.message = result.summary()
        if folder_error:
            result.message = f"{result.message} (folder setup: {folder_error})"

        if mode is not SyncMode.PUSH:
            result.format = self.detector.reconcile(result)

        self._log_run(result)
        return result

    def _pull_one(self, tracked: TrackedFile) -> FileSyncResult:
        remote_path = self.layout.data_path(tracked)
        if self.remote.get_metadata(remote_path) is None:
            return FileSyncResult(file=tracked.name, action=SyncAction.SKIP_REMOTE_MISSING)
        downloaded = self.remote.download(remote_path)
        decode_records(downloaded.data)
        with self.local.locked():
            before = self.local.snapshot(tracked)
            changed = before is None or before.data != downloaded.data
            self.local.write(tracked, downloaded.data)
        return FileSyncResult(file=tracked.name, action=SyncAction.PULL, changed=changed)

    def _push_one(self, tracked: TrackedFile) -> FileSyncResult:
        snap = self.local.snapshot(tracked)
        if snap is None:
            return FileSyncResult(file=tracked.name, action=SyncAction.SKIP_LOCAL_MISSING)
        self.remote.upload_file(snap.data, self.layout.data_path(tracked))
        return FileSyncResult(file=tracked.name, action=SyncAction.PUSH)

    def _ensure_default_folders(self) -> Optional[str]:
        try:
            for folder in self.layout.default_folders():
                self.remote.ensure_folder(folder)
        except Exception as exc:
            logger.warning("Could not ensure remote folders: %s", exc)
            return str(exc)
        return None

    def _log_run(self, result: SyncResult) -> None:
        level = logging.WARNING if (result.errors or not result.success) else logging.INFO
        logger.log(
            level,
            "%s [%s]: %s",
            result.trigger,
            result.mode.value if result.mode else "-",
            result.message,
            extra={"extra": result.to_dict()},
        )


__all__ = ["SingleFlight", "SyncOrchestrator"]
