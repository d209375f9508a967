"""Configuration loading utilities for the folder monitor."""
from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

import yaml # type: ignore


logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file is structurally invalid."""


class _RecordError(Exception):
    """Raised for a single bad record; the record is skipped."""


@dataclass(frozen=True)
class WatchConfig:
    """Options describing one watched directory and its action."""

    id: str
    root_path: Path
    action: str
    args: str = ""
    timeout: int = 60000
    recursive: bool = True
    filter: str = ""

    @property
    def debounce(self) -> float:
        """Debounce interval in seconds."""

        return self.timeout / 1000.0


@dataclass(frozen=True)
class _Field:
    key: str
    attr: str
    kind: type
    default: Any
    required: bool
    description: str


# Drives both parsing and rendering. Order is the order fields are written.
_FIELDS = (
    _Field("path", "root_path", Path, None, True, "Path to monitor for changes"),
    _Field("timeout", "timeout", int, 60000, False,
           "Length of time in milliseconds between running the action"),
    _Field("action", "action", str, None, True, "Action to execute when changes to path occur"),
    _Field("args", "args", str, "", False, "Arguments passed to the action"),
    _Field("recursive", "recursive", bool, True, False, "Monitor all sub folders"),
    _Field("filter", "filter", str, "", False,
           "Only monitor for changes to matching file names (empty for all)"),
)

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", "", "null"}


def load_config(path: Path) -> List[WatchConfig]:
    """Load the YAML configuration file and return the usable path records."""

    if not path.exists():
        logger.warning("Configuration file not found: %s", path)
        return []

    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read configuration {path}: {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    return _parse_paths(data.get("paths", []), config_path=path)


def render_config(configs: Iterable[WatchConfig]) -> str:
    """Render records as a commented YAML document."""

    header = ["# foldermonitor configuration", "#", "# Each entry under 'paths' accepts:", "#   id: Unique name"]
    for fld in _FIELDS:
        header.append(f"#   {fld.key}: {fld.description}")

    records = []
    for cfg in configs:
        record: Dict[str, Any] = {"id": cfg.id}
        for fld in _FIELDS:
            value = getattr(cfg, fld.attr)
            record[fld.key] = str(value) if fld.kind is Path else value
        records.append(record)

    body = yaml.safe_dump({"paths": records}, sort_keys=False, default_flow_style=False)
    return "\n".join(header) + "\n\n" + body


def save_config(path: Path, configs: Iterable[WatchConfig]) -> None:
    path.write_text(render_config(configs))


def write_example_config(path: Path) -> None:
    """Write a template configuration with a single example record."""

    example = WatchConfig(
        id="ExamplePath",
        root_path=Path("/path/to/monitor"),
        action="filetorun",
        args="",
        timeout=60000,
        recursive=True,
        filter="*",
    )
    save_config(path, [example])
    logger.info("Wrote example configuration to %s", path)


def _parse_paths(raw: Any, *, config_path: Path) -> List[WatchConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("'paths' section must be a list")

    configs: List[WatchConfig] = []
    seen: Set[str] = set()
    for index, item in enumerate(raw):
        try:
            cfg = _parse_record(item, index=index, config_path=config_path)
        except _RecordError as exc:
            logger.error("Skipping paths[%s]: %s", index, exc)
            continue

        if cfg.id in seen:
            logger.error("Skipping paths[%s]: duplicate id '%s'", index, cfg.id)
            continue
        seen.add(cfg.id)

        logger.info(
            "Loaded path '%s' (%s) action=%s timeout=%sms",
            cfg.id,
            cfg.root_path,
            cfg.action,
            cfg.timeout,
        )
        configs.append(cfg)

    return configs


def _parse_record(raw: Any, *, index: int, config_path: Path) -> WatchConfig:
    if not isinstance(raw, dict):
        raise _RecordError("entry must be a mapping")

    ident = raw.get("id")
    if ident is None or str(ident).strip() == "":
        ident = f"path_{index}"

    values: Dict[str, Any] = {}
    for fld in _FIELDS:
        value = raw.get(fld.key)
        if value is None:
            if fld.required:
                raise _RecordError(f"'{fld.key}' is required")
            values[fld.attr] = fld.default
            continue
        values[fld.attr] = _convert(value, fld, config_path=config_path)

    try:
        shlex.split(values["args"])
    except ValueError as exc:
        raise _RecordError(f"'args' cannot be split: {exc}") from exc

    return WatchConfig(id=str(ident).strip(), **values)


def _convert(value: Any, fld: _Field, *, config_path: Path) -> Any:
    if fld.kind is bool:
        return _parse_bool(value, field_name=fld.key)
    if fld.kind is int:
        return _parse_non_negative_int(value, field_name=fld.key)
    if fld.kind is Path:
        if not isinstance(value, str) or not value:
            raise _RecordError(f"'{fld.key}' must be a non-empty string")
        root = Path(value).expanduser()
        if not root.is_absolute():
            root = (config_path.parent / root).resolve()
        return root
    if isinstance(value, (dict, list)):
        raise _RecordError(f"'{fld.key}' must be a string")
    return str(value)


def _parse_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise _RecordError(f"'{field_name}' must be a boolean")


def _parse_non_negative_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool):
        raise _RecordError(f"'{field_name}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise _RecordError(f"'{field_name}' must be an integer") from exc
    if number < 0:
        raise _RecordError(f"'{field_name}' must not be negative")
    return number
