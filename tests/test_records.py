"""Tests for record types and the tracked-file layout."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiosksync.sync.records import AttendanceRecord, StudentRecord, attendance_key, timestamp_sort_key
from kiosksync.sync.tracked import (
    ATTENDANCE,
    ROSTER,
    LocalDataDir,
    RemoteLayout,
    decode_records,
    encode_records,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, 0.0),
        (True, 0.0),
        ("", 0.0),
        (1725278400000, 1725278400000.0),
        ("1725278400000", 1725278400000.0),
        ("2024-09-02T12:00:00Z", 1725278400000.0),
        ("2024-09-02T12:00:00", 1725278400000.0),
        ("not a time", 0.0),
    ],
)
def test_timestamp_sort_key(value, expected):
    assert timestamp_sort_key(value) == expected


def test_attendance_key_prefers_id():
    assert attendance_key({"id": 7, "ufid": "1"}) == "id:7"
    assert attendance_key({"ufid": "1", "timestamp": "t", "action": "signin"}) == "k:1|t|signin"


def test_attendance_record_normalizes_action():
    record = AttendanceRecord.from_dict({"id": 3, "ufid": 12345678, "action": "SignIn", "timestamp": 5})

    assert record.action == "signin"
    assert record.ufid == "12345678"
    assert record.merge_key == "id:3"
    assert record.to_dict()["pendingTimestamp"] is False


def test_attendance_record_rejects_unknown_action():
    with pytest.raises(ValueError, match="Unknown attendance action"):
        AttendanceRecord.from_dict({"ufid": "1", "action": "lunch"})


def test_student_record_round_trips_camel_case():
    data = {"ufid": "1", "name": "Ada", "role": "Staff", "expectedHoursPerWeek": 4, "addedDate": "2024-01-01"}

    student = StudentRecord.from_dict(data)

    assert student.role == "staff"
    assert student.added_date == "2024-01-01"
    assert student.to_dict()["expectedHoursPerWeek"] == 4.0
    assert student.to_dict()["addedDate"] == "2024-01-01"


@pytest.mark.parametrize(
    "folder, base",
    [
        (None, "/Lab-Attendance"),
        ("Lab-Attendance/", "/Lab-Attendance"),
        ("/Kiosk/East", "/Kiosk/East"),
        ("/", ""),
    ],
)
def test_remote_layout_normalizes_folder(folder, base):
    layout = RemoteLayout.from_folder(folder)

    assert layout.base == base
    assert layout.data_path(ROSTER) == f"{base}/data/roster.json"


def test_remote_layout_paths():
    layout = RemoteLayout.from_folder("/Lab-Attendance")

    assert layout.backup_path(ATTENDANCE, "stamp") == "/Lab-Attendance/backups/attendance-ledger.stamp.json"
    assert layout.default_folders() == ["/Lab-Attendance", "/Lab-Attendance/data", "/Lab-Attendance/backups"]
    assert RemoteLayout.from_folder("/").default_folders() == ["/data", "/backups"]


def test_decode_records_handles_empty_and_rejects_objects():
    assert decode_records(b"  \n") == []
    assert decode_records(encode_records([{"ufid": "1"}])) == [{"ufid": "1"}]
    with pytest.raises(ValueError, match="JSON array"):
        decode_records(b'{"ufid": "1"}')


def test_local_data_dir_snapshot_and_write(tmp_path: Path):
    local = LocalDataDir(tmp_path / "data")

    assert local.snapshot(ROSTER) is None
    assert local.read_records(ROSTER) == []

    local.write(ROSTER, encode_records([{"ufid": "1"}]))
    snap = local.snapshot(ROSTER)

    assert snap is not None
    assert decode_records(snap.data) == [{"ufid": "1"}]
    assert [tracked for tracked, _ in local.iter_existing()] == [ROSTER]
