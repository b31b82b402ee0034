"""Configuration file loading.

``load_settings`` reads the document named by its ``path`` argument or, when
omitted, by ``ASSIST_GATEWAY_CONFIG``. JSON is tried first, then YAML. String
values undergo ``${VAR}`` interpolation before validation. Without any path
the built-in defaults are returned.

Failure Modes
-------------
Every problem (missing file, unparsable text, schema violation) raises
:class:`~assist_gateway.base.errors.ConfigError` naming the file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ..base.errors import ConfigError
from ..base.logging import get_logger, log_event
from .env import interpolate
from .schema import GatewaySettings

CONFIG_ENV = "ASSIST_GATEWAY_CONFIG"

_logger = get_logger("config")


def _parse(text: str, source: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{source}: neither valid JSON nor YAML ({exc})") from exc


def settings_from_mapping(data: Optional[Mapping[str, Any]], source: str = "<mapping>") -> GatewaySettings:
    """Interpolate and validate an already-parsed configuration document."""
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{source}: top level must be a mapping, got {type(data).__name__}")
    try:
        return GatewaySettings.model_validate(interpolate(dict(data)))
    except ValidationError as exc:
        raise ConfigError(f"{source}: {exc}") from exc


def load_settings(path: Optional[Union[str, Path]] = None) -> GatewaySettings:
    """Load and validate gateway settings; see module docstring."""
    raw_path = path if path is not None else os.getenv(CONFIG_ENV)
    if not raw_path:
        log_event(_logger, "config.defaults")
        return GatewaySettings()
    file_path = Path(raw_path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read configuration {file_path}: {exc}") from exc
    settings = settings_from_mapping(_parse(text, str(file_path)), str(file_path))
    log_event(_logger, "config.loaded", path=str(file_path), providers=len(settings.providers))
    return settings


__all__ = ["load_settings", "settings_from_mapping", "CONFIG_ENV"]
