"""
Constants for cm-bridge configuration.

This module defines named constants for configuration values and limits
shared by the validator, rate limiter and webhook handler.
"""

# Rate Limiting
DEFAULT_RATE_LIMIT_REQUESTS = 60
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 3600
DEFAULT_RATE_LIMIT_STORAGE_DIR = "/tmp"
RATE_LIMIT_SUBDIR = "rate_limiter"
RATE_LIMIT_FILE_PREFIX = "rl_"
MAX_IDENTIFIER_LENGTH = 50

# Messages
DEFAULT_MESSAGE_PREFIX = "[CM] "
NO_DESCRIPTION_TEXT = "No description available"

# Telegram
TELEGRAM_API_BASE_URL = "https://api.telegram.org/bot"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_DEFAULT_PARSE_MODE = "Markdown"
TELEGRAM_USER_AGENT = "CloudMonitor-Telegram-Bot/1.0"

# Timeouts (in seconds)
TELEGRAM_API_TIMEOUT = 30.0

# Input limits
MAX_STRING_LENGTH = 10_000  # sanitized string leaves
MAX_EVENT_CONTENT_LENGTH = 1000

# Exit Codes (for CLI commands)
EXIT_SUCCESS = 0
EXIT_ERROR = 1

__all__ = [
    "DEFAULT_MESSAGE_PREFIX",
    "DEFAULT_RATE_LIMIT_REQUESTS",
    "DEFAULT_RATE_LIMIT_STORAGE_DIR",
    "DEFAULT_RATE_LIMIT_WINDOW_SECONDS",
    "EXIT_ERROR",
    "EXIT_SUCCESS",
    "MAX_EVENT_CONTENT_LENGTH",
    "MAX_IDENTIFIER_LENGTH",
    "MAX_STRING_LENGTH",
    "NO_DESCRIPTION_TEXT",
    "RATE_LIMIT_FILE_PREFIX",
    "RATE_LIMIT_SUBDIR",
    "TELEGRAM_API_BASE_URL",
    "TELEGRAM_API_TIMEOUT",
    "TELEGRAM_DEFAULT_PARSE_MODE",
    "TELEGRAM_MAX_MESSAGE_LENGTH",
    "TELEGRAM_USER_AGENT",
]
