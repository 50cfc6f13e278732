"""Configuration for sysmon: defaults, JSON config files and CLI overrides."""

import json
import math
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator

from sysmon.collector import MAX_INTERVAL


class ConfigError(ValueError):
    """Invalid or unreadable configuration."""


def _percent(default: float) -> Any:
    return Field(default=default, ge=0, le=100, strict=True, allow_inf_nan=False)


class Thresholds(BaseModel):
    """Alert thresholds (percent) used by the renderers."""

    model_config = ConfigDict(frozen=True)

    cpu: float = _percent(80.0)
    memory: float = _percent(85.0)
    disk: float = _percent(90.0)


class Config(BaseModel):
    """Complete sysmon configuration. Config files use the ``json``/``logFile`` keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    interval: float = Field(default=1.0, gt=0, le=MAX_INTERVAL, allow_inf_nan=False)  # Seconds
    json_mode: StrictBool = Field(default=False, alias="json")
    log_file: StrictStr | None = Field(default=None, alias="logFile")
    thresholds: Thresholds = Field(default_factory=Thresholds)

    @field_validator("interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        if isinstance(value, bool):
            raise ValueError("interval must be a duration or a number of seconds")
        return value

    @field_validator("log_file")
    @classmethod
    def _empty_log_file(cls, value: str | None) -> str | None:
        return value or None


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """
    Parse a duration such as ``500ms``, ``2s``, ``1m30s`` or ``1.5`` into seconds.

    A bare number is taken as seconds.
    """
    text = text.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ConfigError(f"invalid duration: {text!r}")
        return seconds

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"invalid duration: {text!r}")
    return seconds


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
        for error in exc.errors()
    )


def config_from_dict(data: Any) -> Config:
    """
    Build a Config from parsed config-file content, defaults filling gaps.

    Raises:
        ConfigError: Wrong types or out-of-range values.
    """
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc


def load_config(path: str | Path | None) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        path: Config file path; None or empty returns the defaults.

    Raises:
        ConfigError: File missing, unreadable, malformed or out of range.
    """
    if not path:
        return Config()
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc
    return config_from_dict(data)


def merge_overrides(
    config: Config,
    *,
    interval: float | None = None,
    json_mode: bool | None = None,
    log_file: str | None = None,
    cpu_threshold: float | None = None,
    mem_threshold: float | None = None,
    disk_threshold: float | None = None,
) -> Config:
    """Apply explicitly given overrides (None = not given) and validate."""
    data = config.model_dump()
    overrides = {"interval": interval, "json_mode": json_mode, "log_file": log_file}
    data.update({key: value for key, value in overrides.items() if value is not None})
    thresholds = {"cpu": cpu_threshold, "memory": mem_threshold, "disk": disk_threshold}
    data["thresholds"].update({key: value for key, value in thresholds.items() if value is not None})
    return config_from_dict(data)
