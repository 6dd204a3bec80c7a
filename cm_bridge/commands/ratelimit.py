"""
Rate limit maintenance commands.

These run out-of-band against the same storage the server uses:
- cleanup: sweep expired timestamps and delete empty records
- status: show remaining requests and reset time for an identifier
- clear: forget an identifier's requests

Only the rate_limit section of the configuration is needed, so Telegram
credentials do not have to be present.
"""

from cm_bridge.config import Config, get_config
from cm_bridge.constants import EXIT_ERROR, EXIT_SUCCESS
from cm_bridge.core.rate_limiter import FileRateLimitStore, RateLimiter
from cm_bridge.exceptions import RateLimitStorageError


def build_rate_limiter(config: Config | None = None) -> RateLimiter:
    """
    Build a file-backed rate limiter from configuration.

    Raises:
        RateLimitStorageError: If the storage directory is unusable
        TypeError: If a configured limit is missing or not a number
        ValueError: If the configured limits are not positive
    """
    config = config or get_config()
    return RateLimiter(
        max_requests=int(config.get("rate_limit.max_requests")),
        time_window=int(config.get("rate_limit.time_window")),
        store=FileRateLimitStore(config.get("rate_limit.storage_dir")),
    )


def cleanup() -> int:
    """Sweep all rate limit records. Returns exit code."""
    try:
        limiter = build_rate_limiter()
    except (RateLimitStorageError, TypeError, ValueError) as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    deleted = limiter.cleanup()
    print(f"Removed {deleted} expired rate limit record(s)")
    return EXIT_SUCCESS


def status(identifier: str) -> int:
    """Print the rate limit state of ``identifier``. Returns exit code."""
    try:
        limiter = build_rate_limiter()
    except (RateLimitStorageError, TypeError, ValueError) as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    remaining = limiter.get_remaining_requests(identifier)
    reset_in = limiter.get_time_until_reset(identifier)
    print(f"Identifier: {identifier}")
    print(f"Remaining requests: {remaining}/{limiter.max_requests}")
    print(f"Resets in: {reset_in}s")
    return EXIT_SUCCESS


def clear(identifier: str) -> int:
    """Delete the rate limit record of ``identifier``. Returns exit code."""
    try:
        limiter = build_rate_limiter()
    except (RateLimitStorageError, TypeError, ValueError) as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    if not limiter.clear_rate_limit(identifier):
        print(f"Failed to clear rate limit for {identifier}")
        return EXIT_ERROR
    print(f"Cleared rate limit for {identifier}")
    return EXIT_SUCCESS
