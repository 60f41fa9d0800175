"""Slash command for roster and attendance synchronization."""

from __future__ import annotations

from typing import Any, Dict, List

from rich.console import Console
from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich
from ..sync import AuthorizationFlow, RemoteStoreError, SyncClient, SyncSettings
from .config import ConfigMutationError, reload_configuration, write_override


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Manage roster and attendance synchronization."""

    if not args:
        return _show_status(context)

    subcommand, rest = args[0].lower(), args[1:]
    client = _client(context)

    if subcommand == "status":
        return _show_status(context)
    if subcommand == "now":
        return _render_run(client.sync_by_mode())
    if subcommand == "pull":
        return _render_run(client.pull_all())
    if subcommand == "push":
        return _render_run(client.push_all())
    if subcommand in {"two-way", "sync"}:
        return _render_run(client.sync_all())
    if subcommand == "test":
        return _render_simple(client.test_connection())
    if subcommand == "usage":
        return _show_usage(client)
    if subcommand == "ls":
        folder = rest[0] if rest else client.layout.base
        return _show_listing(client, folder, recursive="-r" in rest)
    if subcommand == "folders":
        result = client.create_default_folders()
        if result["success"]:
            created = ", ".join(result["folders"]) or "(all present)"
            return f"[sync] Folders ready. Created: {created}"
        return f"[sync] Folder setup failed: {result['error']}"
    if subcommand == "backup":
        return _render_simple(client.upload_backup(rest[0] if rest else None))
    if subcommand == "report":
        if not rest:
            return "[sync] Usage: /sync report <path>"
        return _render_simple(client.upload_report(rest[0]))
    if subcommand == "connect":
        return _connect(context, rest)
    if subcommand == "help":
        return _show_help()
    return f"[sync] Unknown subcommand '{subcommand}'. Use /sync help for usage."


def _client(context: SlashCommandContext) -> SyncClient:
    runtime = context.metadata.get("sync_runtime")
    if runtime is not None:
        return runtime.client
    cached = context.metadata.get("sync_client")
    if cached is None:
        settings = SyncSettings.from_config(context.config.merged)
        cached = SyncClient(context.config.data_dir, settings)
        context.metadata["sync_client"] = cached
    return cached


def _show_status(context: SlashCommandContext) -> str:
    status = _client(context).get_status()
    last = status["last_run"]

    def _render(console: Console) -> None:
        table = Table(title="Attendance Sync Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")
        table.add_row("Enabled", str(status["enabled"]))
        table.add_row("Mode", status["mode"])
        table.add_row("Interval", f"{status['interval_minutes']:g} min")
        table.add_row("Remote folder", status["folder"])
        table.add_row("Auth", status["auth_mode"])
        table.add_row("Scheduler", "running" if status["scheduler_running"] else "stopped")
        table.add_row("Busy", str(status["busy"]))
        for name, path in status["local_files"].items():
            table.add_row(f"Local {name}", path)
        if last:
            table.add_row("Last run", f"{last['trigger']} at {last['started_at']}")
            table.add_row("Last result", last["message"])
        console.print(table)

    return render_rich(_render)


def _render_run(result: Dict[str, Any]) -> str:
    if result.get("dropped"):
        return "[sync] A sync is already running; request dropped."
    if not result.get("success"):
        return f"[sync] Sync failed: {result.get('error') or result.get('message')}"

    def _render(console: Console) -> None:
        title = f"Sync ({result['mode']}): {result['message']}"
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("File", style="green")
        table.add_column("Action")
        table.add_column("Detail", overflow="fold")
        for item in result["results"]:
            detail = item.get("error") or item.get("backup_path") or ("changed" if item.get("changed") else "")
            style = "red" if item["action"] == "error" else ""
            table.add_row(item["file"], f"[{style}]{item['action']}[/{style}]" if style else item["action"], detail)
        console.print(table)
        fmt = result.get("format")
        if fmt and fmt["action"] != "none":
            console.print(f"Local store: {fmt['action']} ({fmt['detail']})")

    return render_rich(_render)


def _render_simple(result: Dict[str, Any]) -> str:
    if result["success"]:
        return f"[sync] {result.get('message', 'OK')}"
    return f"[sync] Failed: {result['error']}"


def _show_usage(client: SyncClient) -> str:
    result = client.get_space_usage()
    if not result["success"]:
        return f"[sync] Failed: {result['error']}"
    return (
        f"[sync] {_format_size(result['used'])} of {_format_size(result['allocated'])} used "
        f"({result['used_percent']:.1f}%), {_format_size(result['available'])} free"
    )


def _show_listing(client: SyncClient, folder: str, recursive: bool) -> str:
    result = client.list_files(folder, recursive=recursive)
    if not result["success"]:
        return f"[sync] Failed: {result['error']}"
    if not result["files"]:
        return f"[sync] No files under {folder or '/'}."

    def _render(console: Console) -> None:
        table = Table(title=folder or "/", show_header=True)
        table.add_column("Path", style="cyan", overflow="fold")
        table.add_column("Size", justify="right")
        table.add_column("Modified", style="dim")
        for entry in result["files"]:
            table.add_row(entry["path"], _format_size(entry["size"]), entry["modified"] or "")
        console.print(table)

    return render_rich(_render)


def _connect(context: SlashCommandContext, rest: List[str]) -> str:
    sync_config = context.config.merged.get("sync", {})
    if not rest:
        try:
            flow = AuthorizationFlow(sync_config.get("app_key", ""), sync_config.get("app_secret", ""))
        except ValueError as exc:
            return f"[sync] {exc} Set sync.app_key and sync.app_secret with /config."
        context.metadata["auth_flow"] = flow
        return (
            "[sync] 1. Open this URL and approve access:\n"
            f"  {flow.start()}\n"
            "[sync] 2. Run /sync connect <code> with the code shown."
        )

    flow = context.metadata.get("auth_flow")
    if flow is None:
        return "[sync] Run /sync connect first to get an authorization URL."
    try:
        tokens = flow.finish(rest[0])
        write_override(context.config.home_dir, ["sync", "refresh_token"], tokens.refresh_token)
    except (RemoteStoreError, ValueError, ConfigMutationError) as exc:
        return f"[sync] Authorization failed: {exc}"
    context.metadata.pop("auth_flow", None)
    reload_configuration(context)
    return "[sync] Connected. Refresh token saved to the CLI override file."


def _format_size(size: int) -> str:
    """Format byte counts in human-readable form."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def _show_help() -> str:
    return """[sync] Usage:
  /sync                 Show sync status
  /sync now             Run a sync in the configured mode (master pulls, satellite pushes)
  /sync pull            Download roster and ledger, replacing local copies
  /sync push            Upload local roster and ledger
  /sync two-way         Merge local and remote (ledger union, newer roster wins)
  /sync test            Check the connection and show the account
  /sync usage           Show remote storage usage
  /sync ls [folder] [-r]  List remote files
  /sync folders         Create the remote folder layout
  /sync backup [path]   Upload a full data backup
  /sync report <path>   Upload a report file
  /sync connect [code]  Authorize this kiosk and store a refresh token

Configuration (in <home>/config/*.yml):
  sync:
    enabled: true
    master_mode: true          # false for a satellite kiosk
    sync_interval_minutes: 10  # minimum 2
    folder: /Lab-Attendance
    app_key: ...
    app_secret: ...
    refresh_token: ...         # written by /sync connect"""


COMMAND = SlashCommand(
    name="sync",
    description="Sync roster and attendance. Usage: /sync [status|now|pull|push|two-way|test|usage|ls|folders|backup|report|connect]",
    handler=_handler,
)
