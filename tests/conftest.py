"""Shared fixtures: an in-memory stand-in for the Dropbox client."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from dropbox import auth as dbx_auth
from dropbox import files as dbx_files
from dropbox import users as dbx_users
from dropbox.exceptions import ApiError, AuthError, HttpError

from kiosksync.sync.remote import RemoteCredentials, RemoteStoreClient
from kiosksync.sync.tracked import LocalDataDir, RemoteLayout, TrackedFile

BASE_TIME = datetime(2024, 9, 2, 12, 0, 0)


def api_not_found(error_cls: Any = dbx_files.GetMetadataError) -> ApiError:
    return ApiError("req-1", error_cls.path(dbx_files.LookupError.not_found), None, None)


def api_conflict() -> ApiError:
    reason = dbx_files.WriteError.conflict(dbx_files.WriteConflictError.folder)
    return ApiError("req-2", dbx_files.CreateFolderError.path(reason), None, None)


def auth_expired() -> AuthError:
    return AuthError("req-3", dbx_auth.AuthError.expired_access_token)


def http_unavailable(status: int = 503) -> HttpError:
    return HttpError("req-4", status, "service unavailable")


class _FakeResponse:
    def __init__(self, content: bytes):
        self.content = content
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeDropbox:
    """Enough of ``dropbox.Dropbox`` for the sync engine, kept in memory.

    ``fail`` maps a method name to an exception raised on every call;
    ``hooks`` maps a method name to a callable run before the call.
    """

    def __init__(self) -> None:
        self.files: Dict[str, Tuple[bytes, datetime]] = {}
        self.folders: Set[str] = set()
        self.now = BASE_TIME
        self.fail: Dict[str, BaseException] = {}
        self.hooks: Dict[str, Any] = {}
        self.calls: List[Tuple[str, str]] = []
        self.page_size = 2
        self.used = 250 * 1024 * 1024
        self.allocated = 2 * 1024 * 1024 * 1024
        self.responses: List[_FakeResponse] = []

    # -- helpers for tests ---------------------------------------------------

    def put(self, path: str, payload: Any, modified: Optional[datetime] = None) -> None:
        data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self._make_parents(path)
        self.files[path] = (data, modified or self.now)

    def get_json(self, path: str) -> Any:
        return json.loads(self.files[path][0].decode("utf-8"))

    def uploads(self) -> List[str]:
        return [path for method, path in self.calls if method == "files_upload"]

    def tick(self, seconds: int = 60) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    # -- SDK surface -----------------------------------------------------------

    def _enter(self, method: str, path: str = "") -> None:
        self.calls.append((method, path))
        hook = self.hooks.get(method)
        if hook is not None:
            hook(path)
        if method in self.fail:
            raise self.fail[method]

    def _make_parents(self, path: str) -> None:
        parent = path.rsplit("/", 1)[0]
        while parent:
            self.folders.add(parent)
            parent = parent.rsplit("/", 1)[0]

    def _file_metadata(self, path: str) -> dbx_files.FileMetadata:
        data, modified = self.files[path]
        return dbx_files.FileMetadata(
            name=path.rsplit("/", 1)[-1],
            id="id:" + str(abs(hash(path)) or 1),
            client_modified=modified,
            server_modified=modified,
            rev="0123456789abcdef",
            size=len(data),
            path_lower=path.lower(),
            path_display=path,
        )

    def _folder_metadata(self, path: str) -> dbx_files.FolderMetadata:
        return dbx_files.FolderMetadata(
            name=path.rsplit("/", 1)[-1],
            id="id:folder",
            path_lower=path.lower(),
            path_display=path,
        )

    def users_get_current_account(self):
        self._enter("users_get_current_account")
        return SimpleNamespace(name=SimpleNamespace(display_name="Lab Kiosk"), email="lab@example.edu")

    def users_get_space_usage(self):
        self._enter("users_get_space_usage")
        allocation = dbx_users.SpaceAllocation.individual(
            dbx_users.IndividualSpaceAllocation(allocated=self.allocated)
        )
        return dbx_users.SpaceUsage(used=self.used, allocation=allocation)

    def files_get_metadata(self, path: str):
        self._enter("files_get_metadata", path)
        if path in self.files:
            return self._file_metadata(path)
        if path in self.folders:
            return self._folder_metadata(path)
        raise api_not_found(dbx_files.GetMetadataError)

    def files_create_folder_v2(self, path: str, autorename: bool = False):
        self._enter("files_create_folder_v2", path)
        if path in self.folders or path in self.files:
            raise api_conflict()
        self._make_parents(path)
        self.folders.add(path)
        return dbx_files.CreateFolderResult(metadata=self._folder_metadata(path))

    def files_upload(self, data: bytes, path: str, mode: Any = None, mute: bool = False):
        self._enter("files_upload", path)
        if path in self.folders:
            reason = dbx_files.WriteError.conflict(dbx_files.WriteConflictError.folder)
            failure = dbx_files.UploadWriteFailed(reason=reason, upload_session_id="session")
            raise ApiError("req-5", dbx_files.UploadError.path(failure), None, None)
        self._make_parents(path)
        self.files[path] = (bytes(data), self.now)
        return self._file_metadata(path)

    def files_download(self, path: str):
        self._enter("files_download", path)
        if path not in self.files:
            raise api_not_found(dbx_files.DownloadError)
        response = _FakeResponse(self.files[path][0])
        self.responses.append(response)
        return self._file_metadata(path), response

    def files_list_folder(self, path: str, recursive: bool = False):
        self._enter("files_list_folder", path)
        if path and path not in self.folders:
            raise api_not_found(dbx_files.ListFolderError)
        prefix = f"{path}/"
        entries: List[Any] = []
        for folder in sorted(self.folders):
            if folder.startswith(prefix) and (recursive or "/" not in folder[len(prefix):]):
                entries.append(self._folder_metadata(folder))
        for file_path in sorted(self.files):
            if file_path.startswith(prefix) and (recursive or "/" not in file_path[len(prefix):]):
                entries.append(self._file_metadata(file_path))
        self._pages = [entries[i : i + self.page_size] for i in range(0, len(entries), self.page_size)] or [[]]
        return self._page(0)

    def files_list_folder_continue(self, cursor: str):
        self._enter("files_list_folder_continue", cursor)
        return self._page(int(cursor))

    def _page(self, index: int):
        has_more = index + 1 < len(self._pages)
        return dbx_files.ListFolderResult(
            entries=self._pages[index],
            cursor=str(index + 1),
            has_more=has_more,
        )


def epoch(moment: datetime) -> float:
    return moment.replace(tzinfo=timezone.utc).timestamp()


def write_local(local: LocalDataDir, tracked: TrackedFile, records: Any, mtime: Optional[datetime] = None) -> Path:
    path = local.path_for(tracked)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(records), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (epoch(mtime), epoch(mtime)))
    return path


def read_local(local: LocalDataDir, tracked: TrackedFile) -> Any:
    return json.loads(local.path_for(tracked).read_text(encoding="utf-8"))


@pytest.fixture
def fake_dropbox() -> FakeDropbox:
    return FakeDropbox()


@pytest.fixture
def remote(fake_dropbox: FakeDropbox) -> RemoteStoreClient:
    client = RemoteStoreClient(dbx_factory=lambda **_: fake_dropbox)
    client.authenticate(RemoteCredentials(access_token="test-token"))
    return client


@pytest.fixture
def local(tmp_path: Path) -> LocalDataDir:
    return LocalDataDir(tmp_path / "data")


@pytest.fixture
def layout() -> RemoteLayout:
    return RemoteLayout.from_folder("/Lab-Attendance")


@pytest.fixture(autouse=True)
def _restore_kiosksync_logger():
    yield
    logger = logging.getLogger("kiosksync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
