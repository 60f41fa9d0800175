"""Slash command registry."""

from __future__ import annotations

from .config import COMMAND as CONFIG_COMMAND
from .help import COMMAND as HELP_COMMAND
from .sync import COMMAND as SYNC_COMMAND

COMMANDS = [
    HELP_COMMAND,
    CONFIG_COMMAND,
    SYNC_COMMAND,
]

__all__ = ["COMMANDS"]
