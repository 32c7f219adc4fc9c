"""
Configuration Manager
---------------------
Loads cmdscope.yaml with environment variable overrides.

Rules:
- Every key has a default, so a missing file is not an error
- CMDSCOPE_<SECTION>_<KEY> overrides the file value
- Dot notation lookup: 'server.port'
"""

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import os

import yaml

from commands.model import CommandOrigin


DEFAULT_CONFIG: Dict[str, Any] = {
    "registry": {
        "path": "registry.yaml",
    },
    "logging": {
        "level": "INFO",
        "dir": "logs",
        "file": False,
    },
    "discovery": {
        "origin": "runspace",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8765,
    },
}

ENV_PREFIX = "CMDSCOPE"


class ConfigManager:
    """
    Centralized configuration management.
    Loads configuration from YAML with environment variable overrides.
    """

    def __init__(self, config_path: str = "cmdscope.yaml"):
        self._config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._logger = logging.getLogger("cmdscope.infra.config")

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file on top of the defaults."""
        self._config = deepcopy(DEFAULT_CONFIG)

        if self._config_path.exists():
            with open(self._config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            _merge(self._config, loaded)
            self._logger.info(f"Loaded config from {self._config_path}")
        else:
            self._logger.debug(f"Config file not found, using defaults: {self._config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        Environment variables override file config.
        """
        env_key = f"{ENV_PREFIX}_{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        parts = key.split(".")
        value = self._config

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            self._logger.warning(f"Config value {key}={value!r} is not an integer, using {default}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only, not persisted)."""
        parts = key.split(".")
        config = self._config

        for part in parts[:-1]:
            if part not in config:
                config[part] = {}
            config = config[part]

        config[parts[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get an entire configuration section."""
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Typed views

    @property
    def registry_path(self) -> str:
        return str(self.get("registry.path"))

    @property
    def log_level(self) -> int:
        name = str(self.get("logging.level", "INFO")).upper()
        level = logging.getLevelName(name)
        return level if isinstance(level, int) else logging.INFO

    @property
    def origin(self) -> CommandOrigin:
        name = str(self.get("discovery.origin", "runspace")).upper()
        try:
            return CommandOrigin[name]
        except KeyError:
            self._logger.warning(f"Unknown discovery.origin '{name}', using RUNSPACE")
            return CommandOrigin.RUNSPACE


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


_config: Optional[ConfigManager] = None


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Process-wide configuration, loaded on first use."""
    global _config
    if _config is None or config_path is not None:
        _config = ConfigManager(config_path or os.getenv("CMDSCOPE_CONFIG", "cmdscope.yaml"))
    return _config
