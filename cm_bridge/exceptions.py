"""
Custom exceptions for cm-bridge.

Expected request failures (bad input, rate limiting, failed sends) are
reported as data by the webhook handler. The classes below cover the
conditions that do propagate: startup-fatal configuration and storage
problems, and the Telegram client's internal failure modes.
"""


class CMBridgeError(Exception):
    """Base exception for cm-bridge errors."""

    pass


class ConfigurationError(CMBridgeError):
    """
    Raised when required configuration is missing or malformed.

    Carries every problem found so they can be reported together.
    """

    def __init__(self, problems: list[str]):
        """
        Initialize configuration error.

        Args:
            problems: Human-readable descriptions of each problem
        """
        self.problems = list(problems)
        super().__init__("Invalid configuration: " + "; ".join(self.problems))


class RateLimitStorageError(CMBridgeError):
    """Raised when the rate limiter storage root cannot be created or written."""

    pass


class TelegramError(CMBridgeError):
    """Base exception for Telegram API errors."""

    pass


class TelegramTimeoutError(TelegramError):
    """Raised when Telegram API request times out."""

    pass


class TelegramAPIError(TelegramError):
    """Raised when Telegram API returns an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
