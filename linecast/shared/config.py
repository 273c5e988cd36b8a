"""
Centralized configuration management.

Values are resolved from, in increasing priority:
1) `env.example` (committed, safe defaults)
2) `env.local` (optional, developer-local, MUST NOT be committed)
3) System environment variables

A YAML config file with `server:` and `client:` sections may be layered on
top by the command line entry points (see `linecast.app_config`).
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from loguru import logger

from linecast.utils.app_errors import ConfigError

DEFAULT_CONFIG_NAME = "config.yaml"


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        """
        Load configuration from env files and system environment.

        Priority order (later overrides earlier):
        1. env.example (committed defaults)
        2. env.local (developer-local, not committed)
        3. System environment variables (highest priority)
        """
        root = Path(__file__).parent.parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            self._config.update(dotenv_values(example_path))
            logger.debug("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            self._config.update(dotenv_values(local_path))
            logger.debug("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        value = self._config.get(key)
        return default if value is None else value

    def get_str(self, key: str, default: str = "") -> str:
        return str(self.get(key, default)).strip()

    def get_int(self, key: str, default: int) -> int:
        """
        Get an integer configuration value.

        Falls back to `default` with a warning when the value is missing or
        cannot be parsed.
        """
        raw = self.get_str(key)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

    def get_float(self, key: str, default: float) -> float:
        raw = self.get_str(key)
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get_str(key)
        if not raw:
            return default
        return raw.lower() in {"true", "1", "yes", "on"}

    def reload(self):
        """
        Reload configuration from files and environment.
        Useful for testing or when configuration files change.
        """
        self._config.clear()
        self._load_config()
        logger.debug("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def items(self):
        return self._config.items()


def find_config_file(start: Path | None = None) -> Path | None:
    """Return `config.yaml` in the working directory, if present."""
    candidate = (start or Path.cwd()) / DEFAULT_CONFIG_NAME
    if candidate.exists() and candidate.is_file():
        return candidate
    return None


def load_config_file(path: str | Path | None) -> dict[str, Any]:
    """
    Load a YAML config file into a dictionary.

    Args:
        path: Explicit config file path, or None to look for `config.yaml`
            in the working directory

    Returns:
        dict: Parsed config, empty when no file exists

    Raises:
        ConfigError: If the file exists but cannot be read or parsed
    """
    if path:
        config_path = Path(path)
        if not config_path.exists():
            logger.warning("Config file {} not found, using defaults", config_path)
            return {}
    else:
        config_path = find_config_file()
        if config_path is None:
            return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"error reading config file {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} must contain a mapping")

    logger.info("Using config file: {}", config_path)
    return data


def save_config_file(data: dict[str, Any], path: str | Path) -> Path:
    """
    Write a config dictionary as YAML, creating parent directories.

    Raises:
        ConfigError: If the directory or file cannot be written
    """
    config_path = Path(path)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
    except OSError as exc:
        raise ConfigError(f"error writing config file {config_path}: {exc}") from exc

    logger.info("Wrote config file: {}", config_path)
    return config_path


# Global configuration instance
config = EnvironConfig()
