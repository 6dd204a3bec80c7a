"""
Config command implementation.

This module implements configuration management commands:
- Show the merged configuration (secrets are masked)
- Get configuration values (secrets are masked)
- Set configuration values in the TOML file
- Check that the merged configuration is complete and valid
"""

from typing import Any

import toml

from cm_bridge.config import Config
from cm_bridge.constants import EXIT_ERROR, EXIT_SUCCESS
from cm_bridge.exceptions import ConfigurationError

SECRET_KEYS = {"telegram.api_key", "webhook.signature"}


def _mask(key: str, value: Any) -> Any:
    """
    Mask secret values, descending into sections.

    Args:
        key: Dot-separated key of ``value`` ("" for the whole configuration)
        value: Configuration value or section
    """
    if isinstance(value, dict):
        return {k: _mask(f"{key}.{k}" if key else k, v) for k, v in value.items()}
    if key in SECRET_KEYS and value:
        text = str(value)
        return text[:4] + "*" * max(0, len(text) - 4)
    return value


def _render(value: Any) -> str:
    if isinstance(value, dict):
        return toml.dumps(value).rstrip()
    return str(value)


def _coerce(value: str) -> Any:
    """Convert CLI strings to the TOML types the defaults use."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if value.isdigit():
        return int(value)
    return value


def get_value(key: str) -> str:
    """
    Get configuration value by dot-separated key.

    Args:
        key: Dot-separated key (e.g., "rate_limit.max_requests" or "telegram")

    Returns:
        Configuration value as string, empty if missing
    """
    config = Config()
    value = config.get(key)
    if value is None:
        print(f"Key not found: {key}")
        return ""
    return _render(_mask(key, value))


def set_value(key: str, value: str) -> None:
    """
    Set configuration value by dot-separated key and save the file.

    Args:
        key: Dot-separated key (e.g., "webhook.prefix")
        value: Value to set
    """
    config = Config()
    config.set(key, _coerce(value))
    config.save()
    print(f"Set {key} = {_mask(key, value)}")


def show(config: Config) -> None:
    """Print the merged configuration with secrets masked."""
    print("Current configuration:")
    print(_render(_mask("", config.to_dict())))


def check(config: Config | None = None) -> int:
    """Validate the merged configuration. Returns exit code."""
    try:
        settings = (config or Config()).to_settings()
    except ConfigurationError as e:
        for problem in e.problems:
            print(f"Configuration error: {problem}")
        return EXIT_ERROR

    print("Configuration OK")
    print(f"Chat: {settings.telegram_chat_id}")
    print(f"Signature required: {'yes' if settings.signature else 'no'}")
    print(
        f"Rate limit: {settings.rate_limit_max_requests} requests / "
        f"{settings.rate_limit_time_window}s"
    )
    return EXIT_SUCCESS


def main(key: str | None = None, value: str | None = None) -> int:
    """
    Main entry point for config command.

    Without a key the merged configuration is shown and then checked.

    Args:
        key: Configuration key
        value: Configuration value to set

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        if key and value is not None:
            set_value(key, value)
        elif key:
            result = get_value(key)
            if not result:
                return EXIT_ERROR
            print(result)
        else:
            config = Config()
            show(config)
            print()
            return check(config)
        return EXIT_SUCCESS
    except OSError as e:
        print(f"Error: {e}")
        return EXIT_ERROR
