from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Optional, TypeAlias
import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lspbench.exceptions import ConfigError
from lspbench.reporters import REPORTERS
from lspbench.simulator import FailurePolicy, Mode

DEFAULT_CONFIG_NAME = "lsp-bench.toml"
DEFAULT_LANGUAGE = "codeql"
DEFAULT_FORMAT = "human"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path, *, required: bool) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if required:
            raise ConfigError(f"Config file not found: {path}") from None
        return {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    """Read ``lsp-bench.toml`` from ``root`` (default: cwd) or ``config_path``.

    A missing default file means no defaults; an explicitly named file must
    exist.
    """
    if config_path is not None:
        return _load_toml(config_path, required=True)
    base = root if root is not None else Path.cwd()
    return _load_toml(base / DEFAULT_CONFIG_NAME, required=False)


def bench_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("bench", {})
    if not isinstance(section, dict):
        raise ConfigError("[bench] in the config file must be a table")
    return section


def defaults_payload(section: TomlTable) -> TomlTable:
    """Map ``[bench]`` keys onto ``BenchConfig`` field names."""
    payload: TomlTable = {}
    for key in ("language", "format", "on_error", "verbose"):
        if key in section:
            payload[key] = section[key]
    if "workspace" in section:
        workspace = section["workspace"]
        payload["workspace_folders"] = [workspace] if isinstance(workspace, str) else workspace
    if "jump" in section:
        payload["mode"] = _mode_from_jump(section["jump"])
    if "timeout" in section:
        payload["request_timeout"] = section["timeout"]
    return payload


def _mode_from_jump(value: TomlValue) -> str:
    if not isinstance(value, bool):
        raise ConfigError(f"jump must be true or false, not {value!r}")
    return Mode.DEFINITION.value if value else Mode.COMPLETION.value


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


class BenchConfig(BaseModel):
    """Validated benchmark configuration.

    ``request_timeout`` is in seconds; ``None`` waits forever.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    files: List[Path]
    command: List[str]
    mode: Mode = Mode.COMPLETION
    language: str = DEFAULT_LANGUAGE
    workspace_folders: List[Path] = Field(default_factory=list, validate_default=True)
    format: str = DEFAULT_FORMAT
    request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT_SECONDS
    on_error: FailurePolicy = FailurePolicy.SKIP
    verbose: bool = False

    @field_validator("files")
    @classmethod
    def _files_are_readable_files(cls, files: List[Path]) -> List[Path]:
        for path in files:
            if not path.exists():
                raise ValueError(f"File not found: {path}")
            if path.is_dir():
                raise ValueError(f"Input must be a file, not a directory: {path}")
        return files

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, command: List[str]) -> List[str]:
        if not command or not command[0]:
            raise ValueError("Missing language server command after '--'")
        return command

    @field_validator("workspace_folders")
    @classmethod
    def _workspace_defaults_to_cwd(cls, folders: List[Path]) -> List[Path]:
        return folders or [Path.cwd()]

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in REPORTERS:
            raise ValueError(f"Unrecognized format: {value}")
        return value

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _timeout_positive_or_disabled(cls, value: object) -> object:
        if value is None or value == 0:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Timeout must be a number of seconds, not {value!r}")
        if value < 0:
            raise ValueError(f"Timeout must not be negative: {value}")
        return value


def _validation_message(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        message = str(error.get("msg", ""))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        else:
            location = ".".join(str(part) for part in error.get("loc", ()))
            if location:
                message = f"{location}: {message}"
        messages.append(message)
    return "; ".join(messages)


def build_config(payload: Mapping[str, object]) -> BenchConfig:
    try:
        return BenchConfig.model_validate(dict(payload))
    except ValidationError as exc:
        raise ConfigError(_validation_message(exc)) from None
