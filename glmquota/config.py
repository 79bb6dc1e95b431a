"""Configuration model and YAML persistence."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from glmquota import logger

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False", ""}
_ENV_KEYS = ("api_key", "base_url", "proxy")


@dataclass
class ScheduleConfig:
    """When the activation daemon runs."""

    auto: bool = False
    timezone: str = ""
    times: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when neither auto mode nor a usable manual schedule is set."""
        return not self.auto and (not self.timezone.strip() or not self.times)

    def to_dict(self) -> dict[str, Any]:
        """Mapping for YAML output, leaving out empty fields."""
        out: dict[str, Any] = {}
        if self.auto:
            out["auto"] = True
        if self.timezone:
            out["timezone"] = self.timezone
        if self.times:
            out["times"] = list(self.times)
        return out


@dataclass
class Config:
    """Top-level settings."""

    api_key: str = ""
    base_url: str = ""
    proxy: str = ""
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    def to_dict(self) -> dict[str, Any]:
        """Mapping for YAML output; api_key is always present."""
        out: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            out["base_url"] = self.base_url
        if self.proxy:
            out["proxy"] = self.proxy
        schedule = self.schedule.to_dict()
        if schedule:
            out["schedule"] = schedule
        return out


def _lower_keys(data: Mapping) -> dict[str, Any]:
    return {str(k).lower(): v for k, v in data.items()}


def _as_string(key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    raise ValueError(f"{key}: expected a string, got {type(value).__name__}")


def _as_bool(key: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def _as_string_list(key: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [_as_string(key, item) for item in value]
    return [_as_string(key, value)]


def _schedule_from(value: Any) -> ScheduleConfig:
    if value is None:
        return ScheduleConfig()
    if not isinstance(value, Mapping):
        raise ValueError("schedule: expected a mapping")
    fields = _lower_keys(value)
    return ScheduleConfig(
        auto=_as_bool("schedule.auto", fields.get("auto")),
        timezone=_as_string("schedule.timezone", fields.get("timezone")),
        times=_as_string_list("schedule.times", fields.get("times")),
    )


def config_from_dict(data: Mapping | None) -> Config:
    """Build a Config from a loosely typed mapping; raises ValueError on bad shapes."""
    if data is None:
        return Config()
    if not isinstance(data, Mapping):
        raise ValueError("config must be a mapping")
    fields = _lower_keys(data)
    strings = {key: _as_string(key, fields.get(key)) for key in _ENV_KEYS}
    return Config(**strings, schedule=_schedule_from(fields.get("schedule")))


def default_config_path(cfg_file: str | None = None) -> str:
    """The explicit config file if given, else ~/.config/glm/config.yaml."""
    if cfg_file:
        return str(cfg_file)
    return str(Path.home() / ".config" / "glm" / "config.yaml")


def _read_mapping(path: str | os.PathLike) -> dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        doc = yaml.safe_load(fh)
    if doc is None:
        return {}
    if not isinstance(doc, Mapping):
        raise ValueError(f"{path}: top level is not a mapping")
    return _lower_keys(doc)


def load_config(path: str | os.PathLike) -> Config:
    """Read a YAML config file; raises FileNotFoundError if it is missing."""
    return config_from_dict(_read_mapping(path))


def _apply_env(data: dict[str, Any]) -> None:
    # Environment overrides only apply to keys the file already defines.
    for key in _ENV_KEYS:
        if key in data:
            value = os.environ.get(key.upper())
            if value is not None:
                data[key] = value


def init_config(cfg_file: str | None = None) -> Config:
    """Load the active configuration, tolerating a missing file."""
    path = Path(default_config_path(cfg_file))
    if not cfg_file:
        try:
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Error creating config directory: {exc}")

    try:
        data = _read_mapping(path)
    except FileNotFoundError:
        data = {}
    except (OSError, ValueError, yaml.YAMLError) as exc:
        if cfg_file:
            logger.fatal(f"Error reading config file {cfg_file}: {exc}")
        logger.debug(f"Warning: error reading config file: {exc}")
        data = {}

    _apply_env(data)
    try:
        return config_from_dict(data)
    except ValueError as exc:
        logger.error(f"Unable to decode into struct, {exc}")
        return Config()


def save_config(config: Config, path: str | os.PathLike | None = None) -> Path:
    """Write ``config`` as YAML with owner-only permissions; returns the path."""
    target = Path(path) if path else Path(default_config_path(None))
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    text = yaml.safe_dump(
        config.to_dict(), sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text)
    return target