"""
Configuration management for cm-bridge.

This module provides a layered configuration system with priority:
1. Environment variables (including a .env file)
2. TOML config file (~/.cm-bridge/config.toml)
3. Defaults

``Config`` is the mutable, file-backed manager used by the CLI. Runtime
components never read it directly: ``Config.to_settings()`` validates the
merged values once and returns the immutable ``RelaySettings`` that is
passed into the rate limiter, Telegram client and webhook handler.
"""

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, ClassVar

import toml
from pydantic import ValidationError

from cm_bridge.constants import (
    DEFAULT_MESSAGE_PREFIX,
    DEFAULT_RATE_LIMIT_REQUESTS,
    DEFAULT_RATE_LIMIT_STORAGE_DIR,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
)
from cm_bridge.exceptions import ConfigurationError
from cm_bridge.logging import get_logger
from cm_bridge.models.config import RelaySettings

logger = get_logger(__name__)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _strip_control(value: str) -> str:
    # Same control-character policy as request sanitization, minus tab/newline
    return "".join(ch for ch in value if ch >= " " and ch != "\x7f").strip()


class Config:
    """
    Configuration manager with layered priority system.

    Configuration is loaded from multiple sources with the following priority:
    1. Environment variables (highest priority)
    2. .env file (never overrides variables already set)
    3. TOML config file
    4. Defaults (lowest priority)
    """

    DEFAULTS: ClassVar[dict[str, Any]] = {
        "telegram": {
            "api_key": "",
            "chat_id": "",
        },
        "webhook": {
            "signature": "",
            "prefix": DEFAULT_MESSAGE_PREFIX,
        },
        "rate_limit": {
            "max_requests": DEFAULT_RATE_LIMIT_REQUESTS,
            "time_window": DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
            "storage_dir": DEFAULT_RATE_LIMIT_STORAGE_DIR,
        },
        "server": {
            "host": "0.0.0.0",
            "port": 8080,
        },
        "logging": {
            "level": "INFO",
            "format": "json",
            "file": "~/.cm-bridge/logs/bridge.log",
            "max_bytes": 10485760,  # 10MB
            "backup_count": 5,
        },
        "debug": False,
    }

    CONFIG_PATH = Path.home() / ".cm-bridge" / "config.toml"

    # Environment variable -> config key, or (config key, converter)
    ENV_MAPPINGS: ClassVar[dict[str, Any]] = {
        "TG_API_KEY": "telegram.api_key",
        "TG_CHAT_ID": "telegram.chat_id",
        "SIGNATURE": "webhook.signature",
        "PREFIX": "webhook.prefix",
        "RATE_LIMIT_MAX_REQUESTS": ("rate_limit.max_requests", int),
        "RATE_LIMIT_TIME_WINDOW": ("rate_limit.time_window", int),
        "RATE_LIMIT_STORAGE_DIR": "rate_limit.storage_dir",
        "HOST": "server.host",
        "PORT": ("server.port", int),
        "LOG_LEVEL": "logging.level",
        "LOG_FORMAT": "logging.format",
        "LOG_FILE": "logging.file",
        "DEBUG": ("debug", _to_bool),
    }

    # Values whose surrounding whitespace is significant
    RAW_ENV_VARS: ClassVar[set[str]] = {"PREFIX"}

    PATH_CONFIG_FIELDS: ClassVar[list[str]] = [
        "logging.file",
        "rate_limit.storage_dir",
    ]

    def __init__(self, config_path: Path | None = None, env_file: Path | None = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to config file. Defaults to
                $CM_BRIDGE_CONFIG or ~/.cm-bridge/config.toml
            env_file: Optional path to .env file (defaults to ./.env)
        """
        env_path = os.environ.get("CM_BRIDGE_CONFIG")
        self.config_path = config_path or (Path(env_path) if env_path else self.CONFIG_PATH)
        self._config: dict[str, Any] = {}
        self._load_env_file(env_file)
        self._load()
        self._apply_env_overrides()
        self._expand_paths()

    def _load_env_file(self, env_file: Path | None) -> None:
        """
        Load environment variables from a .env file.

        Variables already present in the environment are left untouched.

        Args:
            env_file: Path to .env file, or None to auto-detect
        """
        if env_file is None:
            cwd_env = Path.cwd() / ".env"
            if cwd_env.exists():
                env_file = cwd_env

        if not env_file or not env_file.exists():
            return

        try:
            with env_file.open() as f:
                for raw_line in f:
                    line = raw_line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)
        except OSError as e:
            logger.warning("Could not read .env file", path=str(env_file), error=str(e))

    def _load(self) -> None:
        """
        Load configuration from file.

        If config file doesn't exist, use defaults.
        """
        if self.config_path.exists():
            with self.config_path.open() as f:
                file_config = toml.load(f)
            self._config = self._deep_merge(deepcopy(self.DEFAULTS), file_config)
        else:
            self._config = deepcopy(self.DEFAULTS)

    def _deep_merge(self, base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            update: Dictionary to merge into base

        Returns:
            Merged dictionary
        """
        result = deepcopy(base)

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Values that fail conversion are skipped with a warning so that the
        file or default value stays in effect.
        """
        for env_var, mapping in self.ENV_MAPPINGS.items():
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue

            if env_var not in self.RAW_ENV_VARS:
                env_value = _strip_control(env_value)

            if isinstance(mapping, tuple):
                config_key, converter = mapping
                try:
                    value: Any = converter(env_value)
                except (ValueError, TypeError):
                    logger.warning("Ignoring invalid environment value", variable=env_var)
                    continue
            else:
                config_key, value = mapping, env_value

            self.set(config_key, value)

    def _expand_paths(self) -> None:
        """Expand ~ and environment variables in file paths."""
        for config_key in self.PATH_CONFIG_FIELDS:
            path_value = self.get(config_key)
            if path_value and isinstance(path_value, str):
                expanded = str(Path(os.path.expandvars(path_value)).expanduser())
                if expanded != path_value:
                    self.set(config_key, expanded)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-separated key.

        Args:
            key: Dot-separated key (e.g., "telegram.chat_id")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value: Any = self._config

        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value by dot-separated key.

        Args:
            key: Dot-separated key (e.g., "telegram.chat_id")
            value: Value to set
        """
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self) -> None:
        """Save configuration to file, creating parent directories."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open("w") as f:
            toml.dump(self._config, f)

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the merged configuration."""
        return deepcopy(self._config)

    @property
    def logging(self) -> dict[str, Any]:
        """Get logging configuration section."""
        return self._config.get("logging", {})

    @property
    def server(self) -> dict[str, Any]:
        """Get server configuration section."""
        return self._config.get("server", {})

    def to_settings(self) -> RelaySettings:
        """
        Validate the merged configuration and freeze it.

        Returns:
            Immutable settings for the runtime components

        Raises:
            ConfigurationError: If required keys are missing or malformed
        """
        try:
            return RelaySettings(
                telegram_api_key=self.get("telegram.api_key") or "",
                telegram_chat_id=str(self.get("telegram.chat_id") or ""),
                signature=self.get("webhook.signature") or None,
                prefix=self.get("webhook.prefix", DEFAULT_MESSAGE_PREFIX),
                rate_limit_max_requests=self.get("rate_limit.max_requests"),
                rate_limit_time_window=self.get("rate_limit.time_window"),
                rate_limit_storage_dir=self.get("rate_limit.storage_dir"),
                debug=bool(self.get("debug", False)),
            )
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigurationError(problems) from e


_config: Config | None = None


def get_config() -> Config:
    """
    Get global configuration instance.

    Only entry points (CLI commands, the ASGI factory) call this; the
    settings they derive from it are injected everywhere else.

    Returns:
        Global Config instance
    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """
    Reset global config singleton for testing.

    WARNING: Do not use in production code.
    """
    global _config  # noqa: PLW0603
    _config = None
