"""
Client configuration.

Settings are resolved in three layers, later layers winning:

1. Built-in defaults (see ClientSettings)
2. A YAML file, either passed explicitly or named by HYPERATE_CONFIG:

       api_token: "your-token"
       base_url: "wss://app.hyperate.io/socket/websocket"
       keepalive_interval: 10
       log_level: INFO

3. Environment variables HYPERATE_API_TOKEN, HYPERATE_BASE_URL,
   HYPERATE_KEEPALIVE_INTERVAL and HYPERATE_LOG_LEVEL.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "wss://app.hyperate.io/socket/websocket"
DEFAULT_KEEPALIVE_INTERVAL = 10.0
DEFAULT_IDLE_DELAY = 0.01

_ENV_OVERRIDES = {
    "HYPERATE_API_TOKEN": "api_token",
    "HYPERATE_BASE_URL": "base_url",
    "HYPERATE_KEEPALIVE_INTERVAL": "keepalive_interval",
    "HYPERATE_LOG_LEVEL": "log_level",
}


class ConfigError(Exception):
    """Raised when a config file or override cannot be used."""
    pass


@dataclass(frozen=True)
class ClientSettings:
    api_token: str = ""
    base_url: str = DEFAULT_BASE_URL
    keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL
    idle_delay: float = DEFAULT_IDLE_DELAY
    log_level: str = "INFO"


def load_settings(path: Optional[Union[str, Path]] = None) -> ClientSettings:
    """Build settings from defaults, an optional YAML file and the environment."""
    settings = ClientSettings()

    config_path = path or os.getenv("HYPERATE_CONFIG")
    if config_path:
        settings = _apply(settings, _read_yaml(Path(config_path)), source=str(config_path))

    env_values = {
        attr: os.environ[var]
        for var, attr in _ENV_OVERRIDES.items()
        if os.environ.get(var)
    }
    if env_values:
        settings = _apply(settings, env_values, source="environment")

    return settings


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    logger.debug("Loaded config from %s", path)
    return data


def _apply(settings: ClientSettings, values: Dict[str, Any], *, source: str) -> ClientSettings:
    known = {f.name: f for f in fields(ClientSettings)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown setting %r from %s", key, source)
            continue
        if value is None:
            continue
        if known[key].type in ("float", float):
            try:
                value = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{key} from {source} must be a number, got {value!r}") from e
            if value <= 0:
                raise ConfigError(f"{key} from {source} must be positive")
        else:
            value = str(value).strip()
        updates[key] = value
    return replace(settings, **updates)
