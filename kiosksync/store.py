"""Local queryable record store used by the kiosk.

The sync engine only ever calls :meth:`LocalStore.reload`; everything else
here is for the kiosk and the operator CLI.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .sync.formats import LocalStore, ReloadSource
from .sync.records import AttendanceRecord, StudentRecord
from .sync.tracked import ATTENDANCE, ROSTER, decode_records

logger = logging.getLogger("kiosksync.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS students (
    ufid TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    active INTEGER DEFAULT 1,
    role TEXT DEFAULT 'volunteer',
    expected_hours_per_week REAL DEFAULT 0,
    expected_days_per_week INTEGER DEFAULT 0,
    added_date TEXT
);
CREATE TABLE IF NOT EXISTS attendance (
    id INTEGER PRIMARY KEY,
    ufid TEXT NOT NULL,
    name TEXT,
    action TEXT NOT NULL CHECK(action IN ('signin', 'signout')),
    timestamp TEXT NOT NULL,
    synthetic INTEGER DEFAULT 0,
    pending_timestamp INTEGER DEFAULT 0,
    pending_record_id TEXT,
    resolved_at TEXT,
    auto_signout INTEGER DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_attendance_ufid ON attendance(ufid);
CREATE INDEX IF NOT EXISTS idx_attendance_timestamp ON attendance(timestamp);
"""


class SqliteRecordStore:
    """SQLite-backed store that can be rebuilt from JSON or re-pointed at a snapshot."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def initialize(self) -> None:
        with self._lock:
            self._connect(self.db_path)

    def _connect(self, path: Path) -> None:
        if self._conn is not None:
            self._conn.close()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self.db_path = path

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def reload(self, source: ReloadSource) -> None:
        with self._lock:
            if source.kind == "row-store":
                self._connect(source.path)
                logger.info("Store re-pointed at snapshot %s", source.path)
                return
            if self._conn is None:
                self._connect(self.db_path)
            students = decode_records(_read(source.path / ROSTER.filename))
            attendance = decode_records(_read(source.path / ATTENDANCE.filename))
            self._replace_all(students, attendance)
            logger.info(
                "Store rebuilt from JSON: %d students, %d attendance records",
                len(students),
                len(attendance),
            )

    def _replace_all(self, students: List[Dict[str, Any]], attendance: List[Dict[str, Any]]) -> None:
        if self._conn is None:
            self._connect(self.db_path)
        conn = self._conn
        with conn:
            conn.execute("DELETE FROM attendance")
            conn.execute("DELETE FROM students")
            for raw in students:
                student = StudentRecord.from_dict(raw)
                conn.execute(
                    "INSERT OR REPLACE INTO students VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        student.ufid,
                        student.name,
                        student.email,
                        int(student.active),
                        student.role,
                        student.expected_hours_per_week,
                        student.expected_days_per_week,
                        student.added_date,
                    ),
                )
            for raw in attendance:
                try:
                    record = AttendanceRecord.from_dict(raw)
                except ValueError as exc:
                    logger.warning("Skipping unreadable attendance record %r: %s", raw.get("id"), exc)
                    continue
                conn.execute(
                    "INSERT OR REPLACE INTO attendance VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        _row_id(record.id),
                        record.ufid,
                        record.name,
                        record.action,
                        str(record.timestamp),
                        int(record.synthetic),
                        int(record.pending_timestamp),
                        record.pending_record_id,
                        record.resolved_at,
                        int(record.auto_signout),
                    ),
                )

    def students(self) -> List[StudentRecord]:
        with self._lock:
            rows = self._query("SELECT * FROM students ORDER BY name")
        return [
            StudentRecord(
                ufid=row["ufid"],
                name=row["name"],
                email=row["email"] or "",
                active=bool(row["active"]),
                role=row["role"],
                expected_hours_per_week=row["expected_hours_per_week"],
                expected_days_per_week=row["expected_days_per_week"],
                added_date=row["added_date"],
            )
            for row in rows
        ]

    def attendance(self, ufid: Optional[str] = None) -> List[AttendanceRecord]:
        with self._lock:
            if ufid is None:
                rows = self._query("SELECT * FROM attendance ORDER BY timestamp")
            else:
                rows = self._query("SELECT * FROM attendance WHERE ufid = ? ORDER BY timestamp", (ufid,))
        return [
            AttendanceRecord(
                id=row["id"],
                ufid=row["ufid"],
                name=row["name"] or "",
                action=row["action"],
                timestamp=row["timestamp"],
                synthetic=bool(row["synthetic"]),
                pending_timestamp=bool(row["pending_timestamp"]),
                pending_record_id=row["pending_record_id"],
                resolved_at=row["resolved_at"],
                auto_signout=bool(row["auto_signout"]),
            )
            for row in rows
        ]

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        if self._conn is None:
            self._connect(self.db_path)
        return list(self._conn.execute(sql, params))


def _row_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return b""


__all__ = ["LocalStore", "ReloadSource", "SqliteRecordStore"]
