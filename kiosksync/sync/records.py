"""Roster and attendance record types as stored in the tracked JSON files."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

Timestamp = Union[str, int, float, None]

SIGN_IN = "signin"
SIGN_OUT = "signout"


@dataclass
class StudentRecord:
    """One roster entry, keyed by subject id."""

    ufid: str
    name: str
    email: str = ""
    active: bool = True
    role: str = "volunteer"
    expected_hours_per_week: float = 0.0
    expected_days_per_week: int = 0
    added_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ufid": self.ufid,
            "name": self.name,
            "email": self.email,
            "active": self.active,
            "role": self.role,
            "expectedHoursPerWeek": self.expected_hours_per_week,
            "expectedDaysPerWeek": self.expected_days_per_week,
            "addedDate": self.added_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentRecord":
        return cls(
            ufid=str(data["ufid"]),
            name=str(data.get("name", "")),
            email=data.get("email") or "",
            active=bool(data.get("active", True)),
            role=str(data.get("role") or "volunteer").lower(),
            expected_hours_per_week=float(data.get("expectedHoursPerWeek") or 0),
            expected_days_per_week=int(data.get("expectedDaysPerWeek") or 0),
            added_date=data.get("addedDate"),
        )


@dataclass
class AttendanceRecord:
    """One sign-in or sign-out event in the attendance ledger."""

    ufid: str
    action: str
    timestamp: Timestamp
    id: Optional[Union[int, str]] = None
    name: str = ""
    synthetic: bool = False
    pending_timestamp: bool = False
    pending_record_id: Optional[str] = None
    resolved_at: Optional[str] = None
    auto_signout: bool = False

    @property
    def merge_key(self) -> str:
        return attendance_key(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ufid": self.ufid,
            "name": self.name,
            "action": self.action,
            "timestamp": self.timestamp,
            "synthetic": self.synthetic,
            "pendingTimestamp": self.pending_timestamp,
            "pendingRecordId": self.pending_record_id,
            "resolvedAt": self.resolved_at,
            "autoSignout": self.auto_signout,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttendanceRecord":
        action = str(data.get("action", "")).lower()
        if action not in (SIGN_IN, SIGN_OUT):
            raise ValueError(f"Unknown attendance action: {data.get('action')!r}")
        return cls(
            id=data.get("id"),
            ufid=str(data.get("ufid", "")),
            name=str(data.get("name") or ""),
            action=action,
            timestamp=data.get("timestamp"),
            synthetic=bool(data.get("synthetic", False)),
            pending_timestamp=bool(data.get("pendingTimestamp", False)),
            pending_record_id=data.get("pendingRecordId"),
            resolved_at=data.get("resolvedAt"),
            auto_signout=bool(data.get("autoSignout", False)),
        )


def attendance_key(record: Dict[str, Any]) -> str:
    """Merge key for a raw ledger entry: its id, else (ufid, timestamp, action)."""
    if record.get("id") is not None:
        return f"id:{record['id']}"
    return f"k:{record.get('ufid')}|{record.get('timestamp')}|{record.get('action')}"


def timestamp_sort_key(value: Timestamp) -> float:
    """Sort key for ledger timestamps, which are epoch numbers or ISO-8601 strings."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    # Epoch milliseconds, matching the numeric ids the kiosk derives from time.
    return parsed.timestamp() * 1000.0


__all__ = [
    "AttendanceRecord",
    "SIGN_IN",
    "SIGN_OUT",
    "StudentRecord",
    "attendance_key",
    "timestamp_sort_key",
]
