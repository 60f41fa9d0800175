"""Logging helpers for the kiosk sync engine."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Mapping, Optional, Union

LOG_SUBPATH = Path("logs") / "sync.log"
STRUCTURED_LOG_SUBPATH = Path("logs") / "sync.jsonl"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
FALLBACK_ROOT = Path(__file__).resolve().parent.parent / ".kiosk_runtime"
LEVEL_ENV = "KIOSK_LOG_LEVEL"


class JSONFormatter(logging.Formatter):
    """One JSON object per line; sync runs attach their result under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        payload = getattr(record, "extra", None)
        if payload:
            log_entry["extra"] = payload
        return json.dumps(log_entry, default=str)


def resolve_log_level(
    configured: Union[str, int, None] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """The environment wins over configuration; unknown names fall back to INFO."""
    env_source = env if env is not None else os.environ
    override = env_source.get(LEVEL_ENV)
    return _resolve_level(override or configured or logging.INFO)


def setup_logging(
    home_dir: Path,
    level: Union[str, int] = logging.INFO,
    structured: bool = True,
    console_level: Union[str, int] = logging.WARNING,
) -> Path:
    """Configure the ``kiosksync`` logger tree.

    Args:
        home_dir: Kiosk home directory; logs go under ``<home>/logs``.
        level: Level for the file handlers.
        structured: Also write JSON lines to ``logs/sync.jsonl``.
        console_level: Level for stderr so the operator prompt stays readable.

    Returns:
        Path to the text log file.
    """
    log_path = _resolve_path(home_dir, LOG_SUBPATH, "logs")

    resolved_level = _resolve_level(level)
    text_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(text_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(text_formatter)
    console_handler.setLevel(max(_resolve_level(console_level), resolved_level))

    logger = logging.getLogger("kiosksync")
    _reset_handlers(logger)
    logger.setLevel(resolved_level)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    if structured:
        json_handler = RotatingFileHandler(
            _resolve_path(home_dir, STRUCTURED_LOG_SUBPATH, "structured logs"),
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        json_handler.setFormatter(JSONFormatter())
        logger.addHandler(json_handler)

    logger.propagate = False

    _silence_third_party()
    return log_path


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return int(level)


def _resolve_path(home_dir: Path, subpath: Path, label: str) -> Path:
    target = home_dir / subpath
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        return target
    except PermissionError:
        fallback = FALLBACK_ROOT / subpath
        fallback.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Unable to write {label} under '{home_dir}'; "
            f"falling back to '{fallback.parent}'.",
            file=sys.stderr,
        )
        return fallback


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _silence_third_party() -> None:
    # The SDK logs every HTTP request at INFO.
    logging.getLogger("dropbox").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = [
    "FALLBACK_ROOT",
    "JSONFormatter",
    "LEVEL_ENV",
    "LOG_SUBPATH",
    "STRUCTURED_LOG_SUBPATH",
    "resolve_log_level",
    "setup_logging",
]
