"""Detect which storage format the remote holds and reconcile the local store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Protocol

from .protocol import FormatOutcome, SyncResult
from .remote import RemoteStoreClient
from .safety import write_atomic
from .tracked import TRACKED_FILES, LocalDataDir, RemoteLayout

logger = logging.getLogger("kiosksync.sync.formats")

ROW_STORE = "row-store"
JSON = "json"

ReloadKind = Literal["json", "row-store"]


@dataclass(frozen=True)
class ReloadSource:
    """Where a full reload of the local store should read from."""

    kind: ReloadKind
    path: Path

    @classmethod
    def json(cls, data_dir: Path) -> "ReloadSource":
        return cls(kind=JSON, path=Path(data_dir))

    @classmethod
    def row_store(cls, snapshot: Path) -> "ReloadSource":
        return cls(kind=ROW_STORE, path=Path(snapshot))


class LocalStore(Protocol):
    """The one capability the engine needs from the kiosk's query store."""

    def reload(self, source: ReloadSource) -> None:
        """Rebuild all queryable state from ``source``. Must be idempotent."""


@dataclass(frozen=True)
class RemoteFormat:
    has_row_store_snapshot: bool
    has_json_snapshot: bool

    @property
    def preferred(self) -> Optional[str]:
        if self.has_row_store_snapshot:
            return ROW_STORE
        if self.has_json_snapshot:
            return JSON
        return None


class FormatDetector:
    """Keeps the local query store consistent with freshly synced data.

    Installations on an older release only publish the JSON files; newer ones
    may also publish a SQLite snapshot. Nothing here is allowed to raise.
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        layout: RemoteLayout,
        local: LocalDataDir,
        store: Optional[LocalStore] = None,
    ):
        self.remote = remote
        self.layout = layout
        self.local = local
        self.store = store

    def detect_remote_format(self) -> RemoteFormat:
        has_row_store = self.remote.get_metadata(self.layout.row_store_snapshot) is not None
        has_json = any(
            self.remote.get_metadata(self.layout.data_path(tracked)) is not None
            for tracked in TRACKED_FILES
        )
        return RemoteFormat(has_row_store_snapshot=has_row_store, has_json_snapshot=has_json)

    def reconcile(self, run: SyncResult) -> FormatOutcome:
        if self.store is None:
            return FormatOutcome(action="none", detail="no local store attached")
        try:
            if run.changed_local:
                self.store.reload(ReloadSource.json(self.local.root))
                return FormatOutcome(action="reloaded-json", detail="local JSON changed")

            detected = self.detect_remote_format()
            if detected.preferred != ROW_STORE:
                return FormatOutcome(action="none", detail="already up to date")

            snapshot = self.remote.download(self.layout.row_store_snapshot)
            target = self.local.row_store_path
            with self.local.locked():
                write_atomic(target, snapshot.data)
            self.store.reload(ReloadSource.row_store(target))
            return FormatOutcome(action="reloaded-row-store", detail=str(target))
        except Exception as exc:
            logger.warning("Local store reconciliation failed: %s", exc)
            return FormatOutcome(action="failed", detail=str(exc))


__all__ = ["FormatDetector", "LocalStore", "ReloadSource", "RemoteFormat"]
