"""Tests for remote format detection and local store reconciliation."""

from __future__ import annotations

from kiosksync.sync.formats import FormatDetector, ReloadSource
from kiosksync.sync.protocol import FileSyncResult, SyncAction, SyncMode, SyncResult

SNAPSHOT_PATH = "/Lab-Attendance/data/kiosk.sqlite"
ROSTER_PATH = "/Lab-Attendance/data/roster.json"


class RecordingStore:
    def __init__(self, fail: bool = False):
        self.reloads = []
        self.fail = fail

    def reload(self, source: ReloadSource) -> None:
        if self.fail:
            raise RuntimeError("database is locked")
        self.reloads.append(source)


def _run(changed: bool) -> SyncResult:
    return SyncResult(
        success=True,
        mode=SyncMode.PULL,
        results=[FileSyncResult(file="roster", action=SyncAction.PULL, changed=changed)],
    )


def test_detect_remote_format(remote, layout, local, fake_dropbox):
    detector = FormatDetector(remote, layout, local)

    assert detector.detect_remote_format().preferred is None

    fake_dropbox.put(ROSTER_PATH, [])
    assert detector.detect_remote_format().preferred == "json"

    fake_dropbox.put(SNAPSHOT_PATH, b"SQLite format 3\x00")
    detected = detector.detect_remote_format()
    assert detected.has_json_snapshot and detected.has_row_store_snapshot
    assert detected.preferred == "row-store"


def test_reconcile_without_store_does_nothing(remote, layout, local, fake_dropbox):
    outcome = FormatDetector(remote, layout, local).reconcile(_run(changed=True))

    assert outcome.action == "none"
    assert fake_dropbox.calls == []


def test_reconcile_reloads_from_json_after_local_change(remote, layout, local, fake_dropbox):
    store = RecordingStore()
    fake_dropbox.put(SNAPSHOT_PATH, b"SQLite format 3\x00")

    outcome = FormatDetector(remote, layout, local, store).reconcile(_run(changed=True))

    assert outcome.action == "reloaded-json"
    assert store.reloads == [ReloadSource.json(local.root)]


def test_reconcile_adopts_remote_row_store_snapshot(remote, layout, local, fake_dropbox):
    store = RecordingStore()
    fake_dropbox.put(SNAPSHOT_PATH, b"SQLite format 3\x00rows")

    outcome = FormatDetector(remote, layout, local, store).reconcile(_run(changed=False))

    assert outcome.action == "reloaded-row-store"
    assert local.row_store_path.read_bytes() == b"SQLite format 3\x00rows"
    assert store.reloads == [ReloadSource.row_store(local.row_store_path)]


def test_reconcile_with_json_only_remote_is_up_to_date(remote, layout, local, fake_dropbox):
    store = RecordingStore()
    fake_dropbox.put(ROSTER_PATH, [])

    outcome = FormatDetector(remote, layout, local, store).reconcile(_run(changed=False))

    assert outcome.action == "none"
    assert store.reloads == []


def test_reconcile_failure_is_reported_not_raised(remote, layout, local):
    outcome = FormatDetector(remote, layout, local, RecordingStore(fail=True)).reconcile(_run(changed=True))

    assert outcome.action == "failed"
    assert "database is locked" in outcome.detail
