"""Result types shared by the resolver, orchestrator and facade."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncAction(str, Enum):
    """What happened to one tracked file during a run."""

    PULL = "pull"
    PUSH = "push"
    PULL_NEW = "pull-new"
    PUSH_NEW = "push-new"
    MERGE_ATTENDANCE = "merge-attendance"
    REPLACE_STUDENTS_LOCAL = "replace-students-local"
    REPLACE_STUDENTS_REMOTE = "replace-students-remote"
    NOOP = "noop"
    SKIP_NONE = "skip-none"
    SKIP_REMOTE_MISSING = "skip-remote-missing"
    SKIP_LOCAL_MISSING = "skip-local-missing"
    SKIP_UNKNOWN = "skip-unknown"
    ERROR = "error"


class SyncMode(str, Enum):
    PULL = "pull"
    PUSH = "push"
    TWO_WAY = "two-way"


@dataclass
class FileSyncResult:
    """Outcome for a single tracked file."""

    file: str
    action: SyncAction
    error: Optional[str] = None
    changed: bool = False  # local content differs from before the run
    backup_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"file": self.file, "action": self.action.value}
        if self.error is not None:
            result["error"] = self.error
        if self.changed:
            result["changed"] = True
        if self.backup_path:
            result["backup_path"] = self.backup_path
        return result


@dataclass
class FormatOutcome:
    """What the format detector did after a run."""

    action: str  # "reloaded-json", "reloaded-row-store", "none", "failed"
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "detail": self.detail}


@dataclass
class SyncResult:
    """Result of one sync run (or of a dropped trigger)."""

    success: bool
    mode: Optional[SyncMode] = None
    trigger: str = "manual-sync"
    results: List[FileSyncResult] = field(default_factory=list)
    message: str = ""
    dropped: bool = False
    format: Optional[FormatOutcome] = None
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def errors(self) -> List[FileSyncResult]:
        return [r for r in self.results if r.action is SyncAction.ERROR]

    @property
    def changed_local(self) -> bool:
        return any(r.changed for r in self.results)

    def summary(self) -> str:
        if self.dropped:
            return "dropped (sync already running)"
        if not self.results:
            return self.message or "nothing to do"
        counts = Counter(r.action.value for r in self.results)
        return ", ".join(f"{action}={count}" for action, count in sorted(counts.items()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode.value if self.mode else None,
            "trigger": self.trigger,
            "results": [r.to_dict() for r in self.results],
            "message": self.message,
            "dropped": self.dropped,
            "format": self.format.to_dict() if self.format else None,
            "started_at": self.started_at,
        }


__all__ = ["FileSyncResult", "FormatOutcome", "SyncAction", "SyncMode", "SyncResult"]
