"""Operator console for the attendance kiosk sync engine.

Starts the background sync scheduler and offers slash commands for manual
runs, remote housekeeping and configuration. Exiting runs the shutdown hook,
which pushes local data one last time on a satellite kiosk.
"""

from __future__ import annotations

import logging
from pathlib import Path
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
from shutil import get_terminal_size
from typing import Optional

from rich.console import Console

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_home_dir,
)
from .logging_utils import resolve_log_level, setup_logging
from .runtime import SyncRuntime
from .slash_commands import CommandRouter

logger = logging.getLogger("kiosksync")
EXIT_WORDS = {"quit", "exit"}


def print_banner(console: Console, config: ConfigurationBundle) -> None:
    """Print a header so operators know which home directory is in use."""

    name = (config.merged.get("runtime", {}) or {}).get("name", "Attendance Kiosk")
    if get_terminal_size(fallback=(80, 24)).columns >= 60:
        console.rule(f"[bold cyan]{name} :: sync console")
    else:
        console.print(f"[bold cyan]{name}")
    console.print(f"[dim]home: {config.home_dir}  status: {config.status}[/dim]")
    console.print()


def build_router(config: ConfigurationBundle, runtime: Optional[SyncRuntime] = None) -> CommandRouter:
    router = CommandRouter(config, metadata={"sync_runtime": runtime} if runtime else {})
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so operators can correct issues quickly."""

    problems = [diag for diag in config.diagnostics if diag.level != "info"]
    if not problems:
        print(f"[config] Loaded {len(config.files_loaded)} file(s).")
        return

    print("[config] Diagnostics:")
    for diag in problems:
        prefix = diag.source or config.home_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        if not readline.get_line_buffer().startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        return matches[state] if state < len(matches) else None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def execute_cli_command(command_line: str, router: CommandRouter) -> str:
    stripped = command_line.strip().lstrip("/")
    if not stripped:
        return ""
    parts = stripped.split()
    result = router.handle(parts[0], parts[1:])
    logger.info("Executed CLI command: /%s", parts[0])
    return result


def _ensure_home(home_dir: Path) -> None:
    for sub in ("config", "data", "logs", "state"):
        (home_dir / sub).mkdir(parents=True, exist_ok=True)


def main() -> None:
    """Entry point for the ``kiosksync`` console script."""

    console = Console()
    home_dir = resolve_home_dir()
    _ensure_home(home_dir)
    config_bundle = load_runtime_configuration(home_dir)

    logging_cfg = config_bundle.merged.get("logging", {}) or {}
    log_path = setup_logging(
        config_bundle.home_dir,
        resolve_log_level(logging_cfg.get("level")),
        structured=bool(logging_cfg.get("structured", True)),
    )
    config_bundle.log_path = log_path
    try:
        log_path.relative_to(config_bundle.home_dir)
    except ValueError:
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Home log directory is not writable; logging to fallback path '{log_path}'.",
                source=log_path,
            )
        )

    print_banner(console, config_bundle)
    emit_configuration_report(config_bundle)
    logger.info("Logging initialized at %s", log_path)

    runtime = SyncRuntime(config_bundle)
    if runtime.start():
        console.print("[green][sync] Scheduler started.[/green]")
    else:
        console.print("[dim][sync] Scheduler idle (sync disabled). Type /sync help.[/dim]")

    router = build_router(config_bundle, runtime)
    configure_autocomplete(router)

    try:
        while True:
            try:
                line = input("> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not line:
                continue
            if line.lower().lstrip("/") in EXIT_WORDS:
                break
            if not line.startswith("/"):
                print("[kiosk] Commands start with '/'. Try /help.")
                continue
            print(execute_cli_command(line, router))
    finally:
        console.print("[dim][sync] Shutting down...[/dim]")
        runtime.shutdown()
        print("[Goodbye]")


if __name__ == "__main__":
    main()
