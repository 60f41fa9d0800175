"""Atomic local writes and best-effort remote backups."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .remote import RemoteStoreClient
    from .tracked import RemoteLayout, TrackedFile

logger = logging.getLogger("kiosksync.sync.safety")


def write_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` so readers see either old or new content.

    The bytes go to a temporary sibling first (same directory, same
    filesystem) and are renamed over the target only once fully flushed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    logger.debug("Wrote %s (%d bytes)", path, len(data))


def backup_timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def backup_remote_before_overwrite(
    remote: "RemoteStoreClient",
    layout: "RemoteLayout",
    tracked: "TrackedFile",
    data: bytes,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> Optional[str]:
    """Copy the about-to-be-discarded remote content into the backups area.

    Returns the backup path, or None when the backup could not be written.
    A failed backup never fails the sync that requested it.
    """
    backup_path = layout.backup_path(tracked, backup_timestamp(clock()))
    try:
        remote.upload_file(data, backup_path)
    except Exception as exc:
        logger.warning("Backup of remote %s failed: %s", tracked.name, exc)
        return None
    logger.info("Backed up remote %s to %s", tracked.name, backup_path)
    return backup_path


__all__ = ["write_atomic", "backup_remote_before_overwrite", "backup_timestamp"]
