"""Roster and attendance-ledger synchronization with a remote file store."""

from __future__ import annotations

from .client import SyncClient, SyncSettings, build_local_backup
from .conflict import ConflictResolver, merge_attendance
from .formats import FormatDetector, LocalStore, ReloadSource
from .oauth import AuthorizationFlow, AuthorizationTokens
from .orchestrator import SingleFlight, SyncOrchestrator
from .protocol import FileSyncResult, FormatOutcome, SyncAction, SyncMode, SyncResult
from .remote import RemoteCredentials, RemoteErrorKind, RemoteStoreClient, RemoteStoreError
from .scheduler import SyncScheduler
from .tracked import ATTENDANCE, ROSTER, TRACKED_FILES, LocalDataDir, RemoteLayout, TrackedFile

__all__ = [
    # Facade
    "SyncClient",
    "SyncSettings",
    "build_local_backup",
    # Engine
    "ConflictResolver",
    "FormatDetector",
    "SingleFlight",
    "SyncOrchestrator",
    "SyncScheduler",
    "merge_attendance",
    # Results
    "FileSyncResult",
    "FormatOutcome",
    "SyncAction",
    "SyncMode",
    "SyncResult",
    # Remote store
    "AuthorizationFlow",
    "AuthorizationTokens",
    "RemoteCredentials",
    "RemoteErrorKind",
    "RemoteStoreClient",
    "RemoteStoreError",
    # Local data
    "ATTENDANCE",
    "ROSTER",
    "TRACKED_FILES",
    "LocalDataDir",
    "LocalStore",
    "ReloadSource",
    "RemoteLayout",
    "TrackedFile",
]
