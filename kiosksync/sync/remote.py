"""Authenticated access to the remote object store (Dropbox)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import dropbox
import requests
from dropbox import files as dbx_files
from dropbox.exceptions import ApiError, AuthError, HttpError

logger = logging.getLogger("kiosksync.sync.remote")


class RemoteErrorKind(str, Enum):
    """Classification for every failure surfaced by the remote client."""

    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    PARENT_MISSING = "parent_missing"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    OTHER = "other"


class RemoteStoreError(Exception):
    """Normalized remote failure: a kind plus a human-readable message."""

    def __init__(self, kind: RemoteErrorKind, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"RemoteStoreError({self.kind.value!r}, {self.message!r})"


@dataclass(frozen=True)
class RemoteCredentials:
    """Credentials for the remote store.

    A refresh token (with app key and secret) is preferred; a bare access
    token is accepted for installations configured before refresh tokens.
    """

    app_key: str = ""
    app_secret: str = ""
    refresh_token: str = ""
    access_token: str = ""

    @property
    def mode(self) -> Optional[str]:
        if self.app_key and self.app_secret and self.refresh_token:
            return "oauth"
        if self.access_token:
            return "token"
        return None


@dataclass(frozen=True)
class RemoteEntry:
    name: str
    path: str
    size: int = 0
    modified_time: Optional[datetime] = None
    kind: str = "file"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "modified": self.modified_time.isoformat() if self.modified_time else None,
            "type": self.kind,
        }


@dataclass(frozen=True)
class DownloadedFile:
    data: bytes
    modified_time: Optional[datetime]


@dataclass(frozen=True)
class UploadedFile:
    path: str
    size: int


@dataclass(frozen=True)
class SpaceUsage:
    used: int
    allocated: int

    @property
    def available(self) -> int:
        return max(self.allocated - self.used, 0)

    @property
    def used_percent(self) -> float:
        if not self.allocated:
            return 0.0
        return round(self.used / self.allocated * 100, 2)


DropboxFactory = Callable[..., Any]


class RemoteStoreClient:
    """Thin wrapper over the Dropbox SDK with one error vocabulary."""

    def __init__(self, dbx_factory: DropboxFactory = dropbox.Dropbox, timeout: float = 30.0):
        self._factory = dbx_factory
        self._timeout = timeout
        self._dbx: Any = None
        self.auth_mode: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self._dbx is not None

    def authenticate(self, credentials: RemoteCredentials) -> bool:
        mode = credentials.mode
        if mode == "oauth":
            self._dbx = self._factory(
                oauth2_refresh_token=credentials.refresh_token,
                app_key=credentials.app_key,
                app_secret=credentials.app_secret,
                timeout=self._timeout,
            )
        elif mode == "token":
            self._dbx = self._factory(
                oauth2_access_token=credentials.access_token,
                timeout=self._timeout,
            )
        else:
            self._dbx = None
        self.auth_mode = mode
        if mode:
            logger.debug("Remote client initialised (%s)", mode)
        return self._dbx is not None

    def _client(self) -> Any:
        if self._dbx is None:
            raise RemoteStoreError(RemoteErrorKind.NOT_AUTHENTICATED, "Remote store not configured")
        return self._dbx

    def current_account(self) -> Tuple[str, str]:
        dbx = self._client()
        try:
            account = dbx.users_get_current_account()
        except Exception as exc:
            raise classify_error(exc) from exc
        return account.name.display_name, account.email

    def get_metadata(self, path: str) -> Optional[RemoteEntry]:
        """Metadata for ``path``, or None when nothing exists there."""
        dbx = self._client()
        try:
            meta = dbx.files_get_metadata(path)
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is RemoteErrorKind.NOT_FOUND:
                return None
            raise error from exc
        return _entry_from_metadata(meta)

    def ensure_folder(self, path: str) -> bool:
        """Make sure a folder exists. Returns True only if it was created now."""
        if not path or path == "/":
            return False
        existing = self.get_metadata(path)
        if existing is not None:
            if existing.kind != "folder":
                raise RemoteStoreError(
                    RemoteErrorKind.CONFLICT, f"{path} exists and is not a folder"
                )
            return False
        dbx = self._client()
        try:
            dbx.files_create_folder_v2(path, autorename=False)
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is RemoteErrorKind.CONFLICT:
                # Another installation created it between probe and create.
                logger.debug("Folder %s appeared concurrently", path)
                return False
            raise error from exc
        logger.info("Created remote folder %s", path)
        return True

    def upload_file(self, data: bytes, remote_path: str) -> UploadedFile:
        dbx = self._client()
        try:
            meta = dbx.files_upload(
                data,
                remote_path,
                mode=dbx_files.WriteMode.overwrite,
                mute=True,
            )
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is RemoteErrorKind.NOT_FOUND:
                error = RemoteStoreError(
                    RemoteErrorKind.PARENT_MISSING,
                    f"Parent folder not found for {remote_path}. Create it first or call ensure_folder().",
                )
            raise error from exc
        path = getattr(meta, "path_display", None) or remote_path
        size = getattr(meta, "size", None)
        logger.debug("Uploaded %s (%d bytes)", path, len(data))
        return UploadedFile(path=path, size=int(size if size is not None else len(data)))

    def download(self, remote_path: str) -> DownloadedFile:
        dbx = self._client()
        try:
            meta, response = dbx.files_download(remote_path)
        except Exception as exc:
            raise classify_error(exc) from exc
        try:
            data = _to_bytes(response)
        finally:
            close = getattr(response, "close", None)
            if callable(close):
                close()
        return DownloadedFile(data=data, modified_time=_utc(getattr(meta, "server_modified", None)))

    def list_files(self, folder: str = "", recursive: bool = False) -> List[RemoteEntry]:
        """List files (never folders) below ``folder``, following every page."""
        dbx = self._client()
        path = "" if not folder or folder == "/" else folder
        try:
            page = dbx.files_list_folder(path, recursive=recursive)
            entries = list(page.entries)
            while page.has_more:
                page = dbx.files_list_folder_continue(page.cursor)
                entries.extend(page.entries)
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is RemoteErrorKind.NOT_FOUND:
                return []
            raise error from exc
        listed = [_entry_from_metadata(entry) for entry in entries]
        return [entry for entry in listed if entry.kind == "file"]

    def get_space_usage(self) -> SpaceUsage:
        dbx = self._client()
        try:
            usage = dbx.users_get_space_usage()
        except Exception as exc:
            raise classify_error(exc) from exc
        allocation = usage.allocation
        allocated = 0
        if allocation.is_individual():
            allocated = allocation.get_individual().allocated
        elif allocation.is_team():
            allocated = allocation.get_team().allocated
        return SpaceUsage(used=int(usage.used), allocated=int(allocated))


def classify_error(exc: BaseException) -> RemoteStoreError:
    """Translate any SDK or transport failure into a RemoteStoreError."""
    if isinstance(exc, RemoteStoreError):
        return exc

    if isinstance(exc, AuthError):
        missing_scope = getattr(exc.error, "is_missing_scope", None)
        if callable(missing_scope) and missing_scope():
            return RemoteStoreError(
                RemoteErrorKind.FORBIDDEN,
                f"Forbidden. Missing scope (need files.content.write) or access issue. {exc.error}",
                status=403,
            )
        return RemoteStoreError(
            RemoteErrorKind.UNAUTHORIZED,
            f"Unauthorized (401). Token invalid/expired or revoked. {exc.error}",
            status=401,
        )

    if isinstance(exc, ApiError):
        reason = _path_reason(exc.error)
        if reason is not None:
            if _reason_is(reason, "not_found"):
                return RemoteStoreError(RemoteErrorKind.NOT_FOUND, f"Not found: {exc.error}", status=409)
            if _reason_is(reason, "conflict"):
                return RemoteStoreError(RemoteErrorKind.CONFLICT, f"Conflict: {exc.error}", status=409)
            if _reason_is(reason, "no_write_permission"):
                return RemoteStoreError(RemoteErrorKind.FORBIDDEN, f"No write permission: {exc.error}", status=409)
        return RemoteStoreError(RemoteErrorKind.OTHER, str(exc.error), status=409)

    if isinstance(exc, HttpError):
        status = exc.status_code
        if status == 401:
            return RemoteStoreError(RemoteErrorKind.UNAUTHORIZED, f"Unauthorized (401). {exc.body}", status=status)
        if status == 403:
            return RemoteStoreError(RemoteErrorKind.FORBIDDEN, f"Forbidden (403). {exc.body}", status=status)
        if status == 429 or (status is not None and status >= 500):
            return RemoteStoreError(RemoteErrorKind.TRANSIENT, f"Remote unavailable ({status}). {exc.body}", status=status)
        return RemoteStoreError(RemoteErrorKind.OTHER, f"HTTP {status}: {exc.body}", status=status)

    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return RemoteStoreError(RemoteErrorKind.TRANSIENT, f"Network error: {exc}")

    return RemoteStoreError(RemoteErrorKind.OTHER, str(exc) or exc.__class__.__name__)


def _path_reason(error: Any) -> Any:
    is_path = getattr(error, "is_path", None)
    if not callable(is_path) or not is_path():
        return None
    path_error = error.get_path()
    # Upload failures nest the write error one level deeper.
    return getattr(path_error, "reason", path_error)


def _reason_is(reason: Any, tag: str) -> bool:
    check = getattr(reason, f"is_{tag}", None)
    return bool(callable(check) and check())


def _entry_from_metadata(meta: Any) -> RemoteEntry:
    if isinstance(meta, dbx_files.FolderMetadata):
        kind = "folder"
    elif isinstance(meta, dbx_files.DeletedMetadata):
        kind = "deleted"
    else:
        kind = "file"
    return RemoteEntry(
        name=meta.name,
        path=getattr(meta, "path_display", None) or getattr(meta, "path_lower", None) or meta.name,
        size=int(getattr(meta, "size", 0) or 0),
        modified_time=_utc(getattr(meta, "server_modified", None)),
        kind=kind,
    )


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_bytes(payload: Any) -> bytes:
    """Collapse the SDK's response shapes into plain bytes."""
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    content = getattr(payload, "content", None)
    if content is not None:
        return _to_bytes(content)
    read = getattr(payload, "read", None)
    if callable(read):
        return _to_bytes(read())
    raise TypeError(f"Unsupported download payload: {type(payload).__name__}")


__all__ = [
    "DownloadedFile",
    "RemoteCredentials",
    "RemoteEntry",
    "RemoteErrorKind",
    "RemoteStoreClient",
    "RemoteStoreError",
    "SpaceUsage",
    "UploadedFile",
    "classify_error",
]
