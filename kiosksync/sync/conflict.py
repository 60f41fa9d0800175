"""Two-way reconciliation of a single tracked file."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .protocol import FileSyncResult, SyncAction
from .records import attendance_key, timestamp_sort_key
from .remote import DownloadedFile, RemoteEntry, RemoteStoreClient
from .safety import backup_remote_before_overwrite
from .tracked import (
    TRACKED_FILES,
    LocalDataDir,
    LocalSnapshot,
    RemoteLayout,
    TrackedFile,
    decode_records,
    encode_records,
)

logger = logging.getLogger("kiosksync.sync.conflict")

LOCAL = "local"
REMOTE = "remote"


def merge_attendance(local: List[Dict[str, Any]], remote: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Union of both ledgers. On a key collision the local record wins."""
    merged: Dict[str, Dict[str, Any]] = {}
    for record in remote or []:
        merged[attendance_key(record)] = record
    for record in local or []:
        merged[attendance_key(record)] = record
    return sorted(merged.values(), key=lambda r: timestamp_sort_key(r.get("timestamp")))


def choose_roster(local: List[Any], remote: List[Any], newer: str) -> List[Any]:
    """Whole-array replacement: the newer side's roster, never a blend."""
    return list(remote or []) if newer == REMOTE else list(local or [])


def newer_side(local_mtime: float, remote_modified: Optional[datetime]) -> str:
    remote_mtime = remote_modified.timestamp() if remote_modified else 0.0
    return REMOTE if remote_mtime >= local_mtime else LOCAL


class ConflictResolver:
    """Decides and applies the two-way action for one tracked file."""

    def __init__(
        self,
        local: LocalDataDir,
        remote: RemoteStoreClient,
        layout: RemoteLayout,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.local = local
        self.remote = remote
        self.layout = layout
        self.clock = clock

    def resolve(self, tracked: TrackedFile) -> FileSyncResult:
        if tracked not in TRACKED_FILES:
            logger.warning("Refusing to sync unrecognised file %s", tracked.filename)
            return FileSyncResult(file=tracked.name, action=SyncAction.SKIP_UNKNOWN)

        remote_path = self.layout.data_path(tracked)
        remote_meta = self.remote.get_metadata(remote_path)
        local_snap = self.local.snapshot(tracked)

        if local_snap is None and remote_meta is None:
            return FileSyncResult(file=tracked.name, action=SyncAction.SKIP_NONE)

        if local_snap is None:
            downloaded = self.remote.download(remote_path)
            decode_records(downloaded.data)
            with self.local.locked():
                current = self.local.snapshot(tracked)
                if current is None:
                    self.local.write(tracked, downloaded.data)
                    return FileSyncResult(file=tracked.name, action=SyncAction.PULL_NEW, changed=True)
            logger.info("Local %s appeared during download; reconciling both sides", tracked.name)
            return self._reconcile(tracked, current, downloaded, remote_meta)

        if remote_meta is None:
            current = self.local.snapshot(tracked) or local_snap
            self.remote.upload_file(current.data, remote_path)
            return FileSyncResult(file=tracked.name, action=SyncAction.PUSH_NEW)

        downloaded = self.remote.download(remote_path)
        return self._reconcile(tracked, local_snap, downloaded, remote_meta)

    def _reconcile(
        self,
        tracked: TrackedFile,
        local_snap: LocalSnapshot,
        downloaded: DownloadedFile,
        remote_meta: RemoteEntry,
    ) -> FileSyncResult:
        if downloaded.data == local_snap.data:
            return FileSyncResult(file=tracked.name, action=SyncAction.NOOP)

        newer = newer_side(local_snap.mtime, downloaded.modified_time or remote_meta.modified_time)
        logger.debug("%s differs; %s side is newer", tracked.name, newer)

        if tracked.is_attendance:
            return self._merge_attendance(tracked, local_snap, downloaded, newer)
        if tracked.is_roster:
            return self._replace_roster(tracked, local_snap, downloaded, newer)
        return FileSyncResult(file=tracked.name, action=SyncAction.SKIP_UNKNOWN)

    def _merge_attendance(
        self,
        tracked: TrackedFile,
        local_snap: LocalSnapshot,
        downloaded: DownloadedFile,
        newer: str,
    ) -> FileSyncResult:
        local_records = decode_records(local_snap.data)
        remote_records = decode_records(downloaded.data)

        backup_path = None
        if newer == REMOTE:
            backup_path = self._backup(tracked, downloaded.data)

        with self.local.locked():
            current = self.local.snapshot(tracked)
            if current is not None and current.hash != local_snap.hash:
                # The kiosk appended while we were talking to the remote.
                logger.info("Local %s changed during sync; merging the fresh copy", tracked.name)
                local_records = decode_records(current.data)
            merged = merge_attendance(local_records, remote_records)
            payload = encode_records(merged)
            self.local.write(tracked, payload)

        self.remote.upload_file(payload, self.layout.data_path(tracked))
        logger.info(
            "Merged %s: %d local + %d remote -> %d records",
            tracked.name,
            len(local_records),
            len(remote_records),
            len(merged),
        )
        return FileSyncResult(
            file=tracked.name,
            action=SyncAction.MERGE_ATTENDANCE,
            changed=merged != local_records,
            backup_path=backup_path,
        )

    def _replace_roster(
        self,
        tracked: TrackedFile,
        local_snap: LocalSnapshot,
        downloaded: DownloadedFile,
        newer: str,
    ) -> FileSyncResult:
        local_records = decode_records(local_snap.data)
        remote_records = decode_records(downloaded.data)

        backup_path = None
        if newer == REMOTE:
            backup_path = self._backup(tracked, downloaded.data)

        with self.local.locked():
            current = self.local.snapshot(tracked)
            if current is not None and current.hash != local_snap.hash:
                # An admin edit landed mid-run; it is now the newest roster.
                logger.info("Local %s edited during sync; keeping the edit", tracked.name)
                local_records = decode_records(current.data)
                newer = LOCAL
            chosen = choose_roster(local_records, remote_records, newer)
            payload = encode_records(chosen)
            self.local.write(tracked, payload)

        self.remote.upload_file(payload, self.layout.data_path(tracked))
        action = SyncAction.REPLACE_STUDENTS_REMOTE if newer == REMOTE else SyncAction.REPLACE_STUDENTS_LOCAL
        logger.info("Roster replaced wholesale from %s side (%d entries)", newer, len(chosen))
        return FileSyncResult(
            file=tracked.name,
            action=action,
            changed=chosen != local_records,
            backup_path=backup_path,
        )

    def _backup(self, tracked: TrackedFile, data: bytes) -> Optional[str]:
        return backup_remote_before_overwrite(self.remote, self.layout, tracked, data, clock=self.clock)


__all__ = ["ConflictResolver", "choose_roster", "merge_attendance", "newer_side"]
