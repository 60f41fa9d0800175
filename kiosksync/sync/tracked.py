"""Tracked data files, remote path layout and locked local access."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from .safety import write_atomic

logger = logging.getLogger("kiosksync.sync.tracked")

DEFAULT_REMOTE_FOLDER = "/Lab-Attendance"
ROW_STORE_SNAPSHOT = "kiosk.sqlite"


@dataclass(frozen=True)
class TrackedFile:
    """A logical data file kept in sync between the kiosk and the remote."""

    name: str  # logical name, e.g. "roster"
    filename: str  # same filename locally and remotely

    @property
    def is_roster(self) -> bool:
        return self.name == ROSTER.name

    @property
    def is_attendance(self) -> bool:
        return self.name == ATTENDANCE.name


ROSTER = TrackedFile(name="roster", filename="roster.json")
ATTENDANCE = TrackedFile(name="attendance-ledger", filename="attendance-ledger.json")

# Credentials and configuration never leave the machine.
TRACKED_FILES: Tuple[TrackedFile, ...] = (ROSTER, ATTENDANCE)


@dataclass(frozen=True)
class RemoteLayout:
    """Remote folder layout rooted at a configurable base folder."""

    base: str = DEFAULT_REMOTE_FOLDER

    @classmethod
    def from_folder(cls, folder: Optional[str]) -> "RemoteLayout":
        raw = (folder or DEFAULT_REMOTE_FOLDER).strip().rstrip("/")
        if not raw.startswith("/"):
            raw = f"/{raw}"
        return cls(base=raw if raw != "/" else "")

    @property
    def data_dir(self) -> str:
        return f"{self.base}/data"

    @property
    def backups_dir(self) -> str:
        return f"{self.base}/backups"

    @property
    def reports_dir(self) -> str:
        return f"{self.base}/reports"

    @property
    def row_store_snapshot(self) -> str:
        return f"{self.data_dir}/{ROW_STORE_SNAPSHOT}"

    def data_path(self, tracked: TrackedFile) -> str:
        return f"{self.data_dir}/{tracked.filename}"

    def backup_path(self, tracked: TrackedFile, stamp: str) -> str:
        return f"{self.backups_dir}/{tracked.name}.{stamp}.json"

    def default_folders(self) -> List[str]:
        folders = [self.data_dir, self.backups_dir]
        if self.base:
            folders.insert(0, self.base)
        return folders


@dataclass(frozen=True)
class LocalSnapshot:
    """Copy of a local tracked file taken under the data-dir lock."""

    data: bytes
    mtime: float

    @property
    def hash(self) -> str:
        return compute_content_hash(self.data)


class LocalDataDir:
    """Local directory holding the tracked files.

    Sync code reads and writes through this object; the kiosk wraps its own
    writes in :meth:`locked` so a sync never observes a half-applied change.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = threading.RLock()

    def path_for(self, tracked: TrackedFile) -> Path:
        return self.root / tracked.filename

    @property
    def row_store_path(self) -> Path:
        return self.root / ROW_STORE_SNAPSHOT

    def locked(self) -> "threading.RLock":
        return self._lock

    def snapshot(self, tracked: TrackedFile) -> Optional[LocalSnapshot]:
        path = self.path_for(tracked)
        with self._lock:
            try:
                data = path.read_bytes()
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                return None
        return LocalSnapshot(data=data, mtime=mtime)

    def write(self, tracked: TrackedFile, data: bytes) -> None:
        with self._lock:
            write_atomic(self.path_for(tracked), data)

    def read_records(self, tracked: TrackedFile) -> List[Any]:
        snap = self.snapshot(tracked)
        return decode_records(snap.data) if snap else []

    def iter_existing(self) -> Iterator[Tuple[TrackedFile, Path]]:
        for tracked in TRACKED_FILES:
            path = self.path_for(tracked)
            if path.exists():
                yield tracked, path


def compute_content_hash(data: bytes) -> str:
    """SHA-256 of file content."""
    return hashlib.sha256(data).hexdigest()


def decode_records(data: bytes) -> List[Any]:
    """Parse a tracked document; an empty file is an empty array."""
    text = data.decode("utf-8").strip()
    if not text:
        return []
    parsed = json.loads(text)
    if not isinstance(parsed, list):
        raise ValueError(f"Expected a JSON array, got {type(parsed).__name__}")
    return parsed


def encode_records(records: List[Any]) -> bytes:
    return json.dumps(records, indent=2, ensure_ascii=False).encode("utf-8")


__all__ = [
    "ATTENDANCE",
    "DEFAULT_REMOTE_FOLDER",
    "LocalDataDir",
    "LocalSnapshot",
    "ROSTER",
    "ROW_STORE_SNAPSHOT",
    "RemoteLayout",
    "TRACKED_FILES",
    "TrackedFile",
    "compute_content_hash",
    "decode_records",
    "encode_records",
]
