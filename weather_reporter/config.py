"""Service configuration: YAML files describing what to poll and where to send it.

A configuration file holds a list of services::

    - name: home
      source:
        name: metno
        poll_interval: 10m
        latitude: 59.91
        longitude: 10.75
        altitude: 20
      destinations:
        - name: sqlite
          fields: [temperature, pressure]
          path: ./weather.db

``${NAME}`` placeholders are replaced from the environment before parsing.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .settings import ImproperlyConfigured


logger = logging.getLogger(__name__)

ENV_PLACEHOLDER = re.compile(r"\$\{(\w*)\}")
# reserved placeholder, left for destinations to expand
RESERVED_PLACEHOLDERS = {"${field}"}
CONFIG_SUFFIXES = (".yaml", ".yml")
DEFAULT_POLL_INTERVAL = "10m"

_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}
_DURATION = re.compile(r"^(\d+)\s*([A-Za-z]*)$")


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse ``30s``/``10m``/``1h``/``2d`` into seconds.

    Bare numbers are seconds, and so is a number followed by an unknown suffix.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION.match(str(value).strip())
    if match is None:
        raise ValueError(f"invalid duration: {value!r}")
    number, suffix = match.groups()
    scale = _DURATION_UNITS.get(suffix)
    if scale is None:
        if suffix:
            logger.warning("unknown duration format %r, defaulting to seconds (s)", value)
        scale = 1
    return float(int(number) * scale)


def substitute_env(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Replace ``${NAME}`` placeholders with environment values.

    Blank and comment lines are left untouched. A placeholder whose variable
    is unset or empty is a configuration error.
    """
    environ = os.environ if environ is None else environ
    lines = text.split("\n")
    for index, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        def _replace(match: "re.Match[str]") -> str:
            if match.group(0) in RESERVED_PLACEHOLDERS:
                return match.group(0)
            value = environ.get(match.group(1), "")
            if not value:
                raise ImproperlyConfigured(f"missing environment variable: {match.group(0)}")
            return value

        lines[index] = ENV_PLACEHOLDER.sub(_replace, line)
    return "\n".join(lines)


class DestinationConfig(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    measurement_fields: List[str] = Field(alias="fields")

    @property
    def options(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    poll_interval: float = Field(default_factory=lambda: parse_duration(DEFAULT_POLL_INTERVAL))
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: float = 0.0

    @field_validator("poll_interval", mode="before")
    @classmethod
    def _parse_poll_interval(cls, value: Any) -> float:
        seconds = parse_duration(value)
        if seconds <= 0:
            raise ValueError("poll_interval must be positive")
        return seconds

    @property
    def options(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    source: SourceConfig
    destinations: List[DestinationConfig] = Field(default_factory=list)
    source_path: Optional[str] = None


def parse_config(text: str, source_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> List[ServiceConfig]:
    content = substitute_env(text, environ)
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ImproperlyConfigured(f"invalid YAML in {source_path or 'config'}: {exc}") from exc
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ImproperlyConfigured(f"{source_path or 'config'} must contain a list of services")

    services: List[ServiceConfig] = []
    for item in raw:
        try:
            service = ServiceConfig.model_validate(item)
        except ValidationError as exc:
            raise ImproperlyConfigured(f"invalid service in {source_path or 'config'}: {exc}") from exc
        service.source_path = source_path
        services.append(service)
    return services


def load_config(path: Union[str, Path], environ: Optional[Mapping[str, str]] = None) -> List[ServiceConfig]:
    """Load services from a single file or from every YAML file in a directory."""
    path = Path(path)
    if path.is_file():
        files = [path]
    elif path.is_dir():
        files = []
        for entry in sorted(path.iterdir()):
            if not entry.is_file():
                continue
            if entry.suffix.lower() in CONFIG_SUFFIXES:
                files.append(entry)
            else:
                logger.info("skipping file %s", entry.name)
    else:
        raise ImproperlyConfigured(f"configuration path {path} does not exist")

    services: List[ServiceConfig] = []
    for file in files:
        logger.info("loading configuration %s", file)
        services.extend(parse_config(file.read_text(encoding="utf-8"), str(file), environ))
    return services


__all__ = [
    "DestinationConfig",
    "ServiceConfig",
    "SourceConfig",
    "load_config",
    "parse_config",
    "parse_duration",
    "substitute_env",
]
