"""
Configuration models for cm-bridge.

This module contains the Pydantic model for the validated, immutable
runtime settings shared by every component.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cm_bridge.constants import (
    DEFAULT_MESSAGE_PREFIX,
    DEFAULT_RATE_LIMIT_REQUESTS,
    DEFAULT_RATE_LIMIT_STORAGE_DIR,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
)

# {bot_id}:{auth_token}
TELEGRAM_API_KEY_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]{35}$")

# Numeric chat id (groups are negative) or @channelusername
TELEGRAM_CHAT_ID_PATTERN = re.compile(r"^(-?\d+|@[a-zA-Z0-9_]{5,32})$")


class RelaySettings(BaseModel):
    """Validated runtime settings, loaded once at process start."""

    model_config = ConfigDict(frozen=True)

    telegram_api_key: str = Field(..., min_length=1, repr=False, description="Telegram bot token")
    telegram_chat_id: str = Field(..., min_length=1, description="Destination chat id")
    signature: str | None = Field(None, repr=False, description="Shared secret for ?signature=")
    prefix: str = Field(default=DEFAULT_MESSAGE_PREFIX, description="Message prefix")
    rate_limit_max_requests: int = Field(default=DEFAULT_RATE_LIMIT_REQUESTS, gt=0)
    rate_limit_time_window: int = Field(default=DEFAULT_RATE_LIMIT_WINDOW_SECONDS, gt=0)
    rate_limit_storage_dir: str = Field(default=DEFAULT_RATE_LIMIT_STORAGE_DIR, min_length=1)
    debug: bool = False

    @field_validator("telegram_api_key")
    @classmethod
    def _check_api_key(cls, value: str) -> str:
        if value and not TELEGRAM_API_KEY_PATTERN.match(value):
            raise ValueError("Invalid Telegram Bot API key format")
        return value

    @field_validator("telegram_chat_id")
    @classmethod
    def _check_chat_id(cls, value: str) -> str:
        if value and not TELEGRAM_CHAT_ID_PATTERN.match(value):
            raise ValueError("Invalid Telegram chat ID format")
        return value
