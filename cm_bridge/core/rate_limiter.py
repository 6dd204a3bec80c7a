"""
Sliding-window rate limiting for the webhook endpoint.

Each identifier (normally the client IP) owns a list of integer timestamps
for the requests accepted within the last ``time_window`` seconds. Records
live in a pluggable ``RateLimitStore``; the file store keeps them on disk so
that limits hold across independent, process-per-request invocations.

The load-check-append-persist sequence in ``RateLimiter.is_allowed`` is not
locked. Two simultaneous requests from the same identifier may both be
admitted when only one slot is left.
"""

from __future__ import annotations

import json
import math
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from cm_bridge.constants import RATE_LIMIT_FILE_PREFIX, RATE_LIMIT_SUBDIR
from cm_bridge.core.validation import sanitize_identifier
from cm_bridge.exceptions import RateLimitStorageError
from cm_bridge.logging import get_logger

if TYPE_CHECKING:
    from cm_bridge.models.config import RelaySettings

logger = get_logger(__name__)

__all__ = [
    "FileRateLimitStore",
    "MemoryRateLimitStore",
    "RateLimitStore",
    "RateLimiter",
]


class RateLimitStore(ABC):
    """Key -> timestamp list storage used by ``RateLimiter``."""

    @abstractmethod
    def load(self, key: str) -> list[int]:
        """Return the stored timestamps for ``key`` (empty if none)."""

    @abstractmethod
    def save(self, key: str, timestamps: list[int]) -> None:
        """Replace the stored timestamps for ``key``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; True if it is gone afterwards."""

    @abstractmethod
    def keys(self) -> list[str]:
        """List every stored key."""


class MemoryRateLimitStore(RateLimitStore):
    """In-process store for tests and single long-lived servers."""

    def __init__(self) -> None:
        self._records: dict[str, list[int]] = {}

    def load(self, key: str) -> list[int]:
        return list(self._records.get(key, []))

    def save(self, key: str, timestamps: list[int]) -> None:
        self._records[key] = list(timestamps)

    def delete(self, key: str) -> bool:
        self._records.pop(key, None)
        return True

    def keys(self) -> list[str]:
        return list(self._records)


class FileRateLimitStore(RateLimitStore):
    """
    One JSON file per identifier under ``<storage_root>/rate_limiter``.

    Files are named ``rl_<key>`` and contain a JSON array of timestamps.
    Unreadable or corrupt files are treated as empty records.
    """

    def __init__(self, storage_root: str | Path) -> None:
        """
        Initialize file store and make sure its directory is usable.

        Args:
            storage_root: Directory under which ``rate_limiter/`` is created

        Raises:
            RateLimitStorageError: If the directory cannot be created or written
        """
        self.storage_dir = Path(storage_root).expanduser() / RATE_LIMIT_SUBDIR

        try:
            self.storage_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise RateLimitStorageError(
                f"Cannot create rate limiter storage directory: {self.storage_dir}"
            ) from e

        if not os.access(self.storage_dir, os.W_OK | os.X_OK):
            raise RateLimitStorageError(
                f"Rate limiter storage directory is not writable: {self.storage_dir}"
            )

    def _path(self, key: str) -> Path:
        return self.storage_dir / f"{RATE_LIMIT_FILE_PREFIX}{key}"

    def load(self, key: str) -> list[int]:
        path = self._path(key)
        if not path.exists():
            return []

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable rate limit record", path=str(path), error=str(e))
            return []

        if not isinstance(data, list):
            return []
        # NaN and Infinity decode as floats but are not timestamps
        return [
            int(ts)
            for ts in data
            if isinstance(ts, (int, float)) and not isinstance(ts, bool) and math.isfinite(ts)
        ]

    def save(self, key: str, timestamps: list[int]) -> None:
        # Readers see either the old or the new record, never a partial one
        fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(timestamps, f)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete rate limit record", key=key, error=str(e))
            return False
        return True

    def keys(self) -> list[str]:
        prefix_len = len(RATE_LIMIT_FILE_PREFIX)
        return sorted(
            path.name[prefix_len:]
            for path in self.storage_dir.glob(f"{RATE_LIMIT_FILE_PREFIX}*")
            if path.is_file()
        )


class RateLimiter:
    """
    Sliding-window rate limiter keyed by client identifier.

    A request is admitted when fewer than ``max_requests`` timestamps newer
    than ``now - time_window`` are on record for its identifier.
    """

    def __init__(
        self,
        max_requests: int,
        time_window: int,
        store: RateLimitStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests: Number of requests allowed per window
            time_window: Window length in seconds
            store: Record storage backend
            clock: Returns the current time in seconds since the epoch
        """
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if time_window <= 0:
            raise ValueError("time_window must be positive")

        self.max_requests = max_requests
        self.time_window = time_window
        self.store = store
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> RateLimiter:
        """Build a file-backed limiter from runtime settings."""
        return cls(
            max_requests=settings.rate_limit_max_requests,
            time_window=settings.rate_limit_time_window,
            store=FileRateLimitStore(settings.rate_limit_storage_dir),
        )

    def _now(self) -> int:
        return int(self._clock())

    def _active(self, timestamps: list[int], now: int) -> list[int]:
        cutoff = now - self.time_window
        return [ts for ts in timestamps if ts > cutoff]

    def is_allowed(self, identifier: str) -> bool:
        """
        Check if a request is allowed and record it when it is.

        Args:
            identifier: Requester identifier (e.g., client IP)

        Returns:
            True if the request is admitted, False if rate limited
        """
        key = sanitize_identifier(identifier)
        now = self._now()
        timestamps = self._active(self.store.load(key), now)

        if len(timestamps) >= self.max_requests:
            logger.debug("Rate limit reached", key=key, count=len(timestamps))
            return False

        timestamps.append(now)
        self.store.save(key, timestamps)
        return True

    def get_remaining_requests(self, identifier: str) -> int:
        """Number of requests ``identifier`` may still make in the current window."""
        key = sanitize_identifier(identifier)
        timestamps = self._active(self.store.load(key), self._now())
        return max(0, self.max_requests - len(timestamps))

    def get_time_until_reset(self, identifier: str) -> int:
        """
        Seconds until the oldest active request leaves the window.

        Returns:
            Seconds to wait, or 0 if nothing is on record
        """
        key = sanitize_identifier(identifier)
        now = self._now()
        timestamps = self._active(self.store.load(key), now)
        if not timestamps:
            return 0
        return max(0, min(timestamps) + self.time_window - now)

    def clear_rate_limit(self, identifier: str) -> bool:
        """Forget every recorded request for ``identifier``."""
        return self.store.delete(sanitize_identifier(identifier))

    def cleanup(self) -> int:
        """
        Drop expired timestamps from every record.

        Records left empty are deleted; the rest are rewritten.

        Returns:
            Number of records deleted
        """
        now = self._now()
        deleted = 0

        for key in self.store.keys():
            timestamps = self._active(self.store.load(key), now)
            if not timestamps:
                if self.store.delete(key):
                    deleted += 1
            else:
                self.store.save(key, timestamps)

        logger.info("Rate limit cleanup finished", deleted=deleted)
        return deleted
