"""Slash command for viewing and editing configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..configuration import (
    CLI_OVERRIDE_FILENAME,
    ConfigurationBundle,
    load_runtime_configuration,
    validate_override,
)
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

YAML_FLAGS = {"--yaml", "-y", "yaml"}
SECRET_KEYS = {"app_secret", "refresh_token", "access_token"}


class ConfigMutationError(RuntimeError):
    """Signals a failure while editing home directory overrides."""


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return _render_config_view(context.config, show_yaml=False)

    if all(arg.lower() in YAML_FLAGS for arg in args):
        return _render_config_view(context.config, show_yaml=True)

    try:
        key_parts = parse_key_path(args[0])
    except ConfigMutationError as exc:
        return str(exc)

    if len(args) == 1:
        return _handle_get_value(context.config, key_parts)

    value_raw = " ".join(args[1:]).strip()
    if not value_raw:
        return "[config] value cannot be empty."

    return _handle_set_value(context, key_parts, value_raw)


def _render_config_view(bundle: ConfigurationBundle, show_yaml: bool) -> str:
    files_table = Table(show_header=True, header_style="bold magenta", box=box.SIMPLE, pad_edge=False)
    files_table.add_column("Order", justify="right", style="magenta", no_wrap=True)
    files_table.add_column("File", overflow="fold", ratio=1)
    for idx, path in enumerate(bundle.files_loaded, start=1):
        files_table.add_row(str(idx), str(path))
    if not bundle.files_loaded:
        files_table.add_row("-", "[dim]No config files loaded[/dim]")

    values_table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE, pad_edge=False)
    values_table.add_column("Key", style="green", no_wrap=True)
    values_table.add_column("Value", overflow="fold")
    values_table.add_column("Source", style="dim", no_wrap=True)
    for dotted, value in _flatten(bundle.merged or {}):
        source = "override" if _lookup_path(bundle.home_overrides, dotted.split(".")) is not None else "default"
        values_table.add_row(dotted, _format_value(_mask(dotted, value)), source)

    def _render(console: Console) -> None:
        console.print(Panel(files_table, title="Loaded Config Files", border_style="magenta", padding=(0, 1)))
        console.print(Panel(values_table, title="Merged Configuration", border_style="cyan", padding=(0, 1)))
        if show_yaml:
            masked = _masked_copy(bundle.merged or {})
            yaml_text = yaml.safe_dump(masked, sort_keys=True, default_flow_style=False).strip()
            console.print(
                Panel(
                    Syntax(yaml_text or "# empty configuration", "yaml", word_wrap=True),
                    title="Merged Configuration (YAML)",
                    border_style="cyan",
                    padding=(0, 1),
                )
            )
        if bundle.diagnostics:
            for diag in bundle.diagnostics:
                console.print(f"[yellow]({diag.level})[/yellow] {diag.message}")

    return render_rich(_render)


def _handle_get_value(config: ConfigurationBundle, key_parts: List[str]) -> str:
    value = _lookup_path(config.merged, key_parts)
    dotted = ".".join(key_parts)
    if value is None:
        return f"[config] {dotted} is not set."
    return f"[config] {dotted} = {_format_value(_mask(dotted, value))}"


def _handle_set_value(context: SlashCommandContext, key_parts: List[str], value_raw: str) -> str:
    try:
        value = yaml.safe_load(value_raw)
    except yaml.YAMLError as exc:
        return f"[config] could not parse value: {exc}"

    if isinstance(value, (list, dict)):
        return "[config] only scalar values can be set from the command line."

    problems = [diag for diag in validate_override(key_parts, value) if diag.level == "error"]
    if problems:
        return "\n".join(f"[config] rejected: {diag.message}" for diag in problems)

    try:
        override_path = write_override(context.config.home_dir, key_parts, value)
    except ConfigMutationError as exc:
        return str(exc)

    bundle = reload_configuration(context)
    dotted = ".".join(key_parts)
    new_value = _lookup_path(bundle.merged, key_parts)
    return (
        f"[config] {dotted} updated to {_format_value(_mask(dotted, new_value))} "
        f"(stored in {_friendly_path(override_path, bundle.home_dir)})"
    )


def reload_configuration(context: SlashCommandContext) -> ConfigurationBundle:
    """Reload config from disk and hand the new sync settings to the runtime."""
    bundle = load_runtime_configuration(context.config.home_dir)
    bundle.log_path = context.config.log_path
    context.router.config = bundle
    context.config = bundle
    context.metadata.pop("sync_client", None)
    runtime = context.metadata.get("sync_runtime")
    if runtime is not None:
        runtime.reconfigure(bundle)
    return bundle


def write_override(home_dir: Path, key_parts: List[str], value: Any) -> Path:
    """Persist one key into the CLI override file and return its path."""
    path = home_dir / "config" / CLI_OVERRIDE_FILENAME
    data = _load_override_data(path)
    _assign_key(data, key_parts, value)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=True, default_flow_style=False), encoding="utf-8")
    except OSError as exc:
        raise ConfigMutationError(f"[config] failed to write {path}: {exc}") from exc
    return path


def parse_key_path(expr: str) -> List[str]:
    parts = [segment.strip() for segment in expr.split(".") if segment.strip()]
    if not parts:
        raise ConfigMutationError("[config] key path cannot be empty.")
    return parts


def _load_override_data(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigMutationError(f"[config] failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigMutationError(f"[config] could not parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigMutationError(f"[config] override file '{path}' must contain a mapping.")
    return data


def _assign_key(data: Dict[str, Any], parts: List[str], value: Any) -> None:
    cursor: Dict[str, Any] = data
    for part in parts[:-1]:
        if not isinstance(cursor.get(part), dict):
            cursor[part] = {}
        cursor = cursor[part]
    cursor[parts[-1]] = value


def _lookup_path(data: Any, parts: List[str]) -> Any:
    cursor = data
    for part in parts:
        if not isinstance(cursor, dict) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _flatten(data: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key in sorted(data):
        dotted = f"{prefix}{key}"
        if isinstance(data[key], dict) and data[key]:
            yield from _flatten(data[key], f"{dotted}.")
        else:
            yield dotted, data[key]


def _mask(dotted: str, value: Any) -> Any:
    if dotted.rsplit(".", 1)[-1] in SECRET_KEYS and value:
        return "********"
    return value


def _masked_copy(data: Dict[str, Any]) -> Dict[str, Any]:
    masked: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = _masked_copy(value)
        else:
            masked[key] = _mask(key, value)
    return masked


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return repr(value)


def _friendly_path(path: Path, home_dir: Path) -> str:
    try:
        return str(path.relative_to(home_dir))
    except ValueError:
        return str(path)


COMMAND = SlashCommand(
    name="config",
    description="Show or set configuration. Usage: /config [--yaml] | /config key [value]",
    handler=_handler,
)
