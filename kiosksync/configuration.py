"""Home-directory aware configuration loading for the kiosk sync engine."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Sequence, Tuple

import yaml

PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_CONFIG_DIR = PACKAGE_ROOT / "defaults"
CLI_OVERRIDE_FILENAME = "99-cli-overrides.yml"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]


SchemaSpec = Dict[str, Any]

MIN_SYNC_INTERVAL_MINUTES = 2


CONFIG_SCHEMA: SchemaSpec = {
    "runtime": {
        "type": dict,
        "schema": {
            "name": {"type": str, "default": "Lab Attendance Kiosk"},
        },
        "default": {},
    },
    "logging": {
        "type": dict,
        "schema": {
            "level": {"type": str, "default": "INFO"},
            "structured": {"type": bool, "default": True},
        },
        "default": {},
    },
    "storage": {
        "type": dict,
        "schema": {
            "data_dir": {"type": str, "default": "data"},
            "database": {"type": str, "default": "state/kiosk.db"},
        },
        "default": {},
    },
    "sync": {
        "type": dict,
        "schema": {
            "enabled": {"type": bool, "default": False},
            "master_mode": {"type": bool, "default": True},
            "sync_interval_minutes": {
                "type": (int, float),
                "default": 10,
                "min": MIN_SYNC_INTERVAL_MINUTES,
            },
            "folder": {"type": str, "default": "/Lab-Attendance"},
            "app_key": {"type": str, "default": ""},
            "app_secret": {"type": str, "default": ""},
            "refresh_token": {"type": str, "default": ""},
            "access_token": {"type": str, "default": ""},
        },
        "default": {},
    },
}


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """All configuration data the kiosk needs at runtime."""

    home_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    package_defaults: Dict[str, Any] = field(default_factory=dict)
    home_overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    def resolve_path(self, section: str, key: str) -> Path:
        """Resolve a configured path relative to the home directory."""
        raw = Path(str(self.merged.get(section, {}).get(key, ""))).expanduser()
        return raw if raw.is_absolute() else self.home_dir / raw

    @property
    def data_dir(self) -> Path:
        return self.resolve_path("storage", "data_dir")

    @property
    def database_path(self) -> Path:
        return self.resolve_path("storage", "database")


def resolve_home_dir(
    env: Optional[Mapping[str, str]] = None,
    default: str = "~/.kiosk",
) -> Path:
    """Resolve the kiosk home directory from the environment."""

    env_source = env if env is not None else os.environ
    raw = env_source.get("KIOSK_HOME") or default
    return Path(raw).expanduser()


def load_runtime_configuration(home_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load package defaults and home directory overrides."""

    resolved_home = home_dir or resolve_home_dir()
    diagnostics: List[Diagnostic] = []
    files_loaded: List[Path] = []

    package_defaults, default_files = _load_directory_configs(
        DEFAULT_CONFIG_DIR,
        diagnostics,
        label="package defaults",
    )
    files_loaded.extend(default_files)

    status: ConfigurationStatus = "ready"
    home_overrides: Dict[str, Any] = {}

    if not resolved_home.exists():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Home directory '{resolved_home}' does not exist.",
            )
        )
        status = "missing"
    elif not resolved_home.is_dir():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Home path '{resolved_home}' is not a directory.",
            )
        )
        status = "invalid"
    else:
        home_overrides, override_files = _load_directory_configs(
            resolved_home / "config",
            diagnostics,
            label="home overrides",
        )
        files_loaded.extend(override_files)

    merged = deepcopy(package_defaults)
    _deep_merge_dicts(merged, home_overrides)

    _validate_schema(merged, diagnostics)

    if status == "ready" and any(diag.level == "error" for diag in diagnostics):
        status = "invalid"

    return ConfigurationBundle(
        home_dir=resolved_home,
        status=status,
        merged=merged,
        package_defaults=package_defaults,
        home_overrides=home_overrides,
        files_loaded=files_loaded,
        diagnostics=diagnostics,
    )


def validate_override(key_parts: Sequence[str], value: Any) -> List[Diagnostic]:
    """Check a single dotted-key edit against the schema without touching disk."""

    diagnostics: List[Diagnostic] = []
    schema: SchemaSpec = CONFIG_SCHEMA
    spec: Optional[SchemaSpec] = None
    for depth, part in enumerate(key_parts):
        spec = schema.get(part)
        if spec is None:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unknown configuration key '{'.'.join(key_parts[: depth + 1])}'.",
                )
            )
            return diagnostics
        schema = spec.get("schema", {})

    if spec is None:
        return diagnostics
    probe = {key_parts[-1]: deepcopy(value)}
    _validate_section(probe, {key_parts[-1]: spec}, ".".join(key_parts[:-1]) or "config", diagnostics)
    return diagnostics


def _load_directory_configs(
    directory: Path,
    diagnostics: List[Diagnostic],
    label: str,
) -> Tuple[Dict[str, Any], List[Path]]:
    """Load all YAML files from a directory, merging them in order."""

    data: Dict[str, Any] = {}
    loaded_files: List[Path] = []

    if not directory.exists():
        diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"No configuration directory found at '{directory}' ({label}).",
                source=directory,
            )
        )
        return data, loaded_files

    if not directory.is_dir():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Configuration path '{directory}' ({label}) is not a directory.",
                source=directory,
            )
        )
        return data, loaded_files

    yaml_files = sorted(directory.glob("*.yml")) + sorted(directory.glob("*.yaml"))

    for yaml_file in yaml_files:
        try:
            content = yaml.safe_load(yaml_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"Failed to parse '{yaml_file}': {exc}",
                    source=yaml_file,
                )
            )
            continue

        if content is None:
            loaded_files.append(yaml_file)
            continue

        if not isinstance(content, MutableMapping):
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Ignoring '{yaml_file}' because it does not contain a mapping.",
                    source=yaml_file,
                )
            )
            continue

        _deep_merge_dicts(data, dict(content))
        loaded_files.append(yaml_file)

    if not loaded_files:
        diagnostics.append(
            Diagnostic(
                level="info",
                message=f"No YAML files found under '{directory}' ({label}).",
                source=directory,
            )
        )

    return data, loaded_files


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if (
            key in dest
            and isinstance(dest[key], MutableMapping)
            and isinstance(value, Mapping)
        ):
            _deep_merge_dicts(dest[key], value)
        else:
            dest[key] = deepcopy(value)


def _default_from_spec(spec: SchemaSpec) -> Any:
    if "default_factory" in spec and callable(spec["default_factory"]):
        return spec["default_factory"]()
    return deepcopy(spec.get("default"))


def _validate_schema(config: Dict[str, Any], diagnostics: List[Diagnostic]) -> None:
    _validate_section(config, CONFIG_SCHEMA, "config", diagnostics)


def _validate_section(
    target: Dict[str, Any],
    schema: SchemaSpec,
    path: str,
    diagnostics: List[Diagnostic],
) -> None:
    if not isinstance(target, dict):
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Configuration section '{path}' must be a mapping.",
            )
        )
        return

    for key in list(target.keys()):
        if key not in schema:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unknown configuration key '{path}.{key}'.",
                )
            )

    for key, spec in schema.items():
        child_path = f"{path}.{key}"
        if key not in target:
            if "default" in spec or "default_factory" in spec:
                target[key] = _default_from_spec(spec)
            continue

        value = target[key]
        expected_type = spec.get("type")

        if expected_type is dict:
            if not isinstance(value, dict):
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"'{child_path}' must be a mapping.",
                    )
                )
                target[key] = _default_from_spec(spec) or {}
                continue
            _validate_section(value, spec.get("schema", {}), child_path, diagnostics)
        elif expected_type and (
            not isinstance(value, expected_type)
            # bool is an int subclass; never accept it for a numeric key
            or (isinstance(value, bool) and bool not in _as_tuple(expected_type))
        ):
            type_name = ", ".join(t.__name__ for t in _as_tuple(expected_type))
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be of type {type_name}.",
                )
            )
            target[key] = _default_from_spec(spec)
        elif "min" in spec and value < spec["min"]:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be at least {spec['min']} (got {value}).",
                )
            )
            target[key] = spec["min"]


def _as_tuple(expected_type: Any) -> Tuple[type, ...]:
    return expected_type if isinstance(expected_type, tuple) else (expected_type,)


__all__ = [
    "CLI_OVERRIDE_FILENAME",
    "ConfigurationBundle",
    "ConfigurationStatus",
    "DEFAULT_CONFIG_DIR",
    "Diagnostic",
    "MIN_SYNC_INTERVAL_MINUTES",
    "load_runtime_configuration",
    "resolve_home_dir",
    "validate_override",
]
