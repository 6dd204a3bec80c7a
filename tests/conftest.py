"""
pytest fixtures and configuration for cm-bridge tests.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from cm_bridge.config import Config, reset_config
from cm_bridge.core.rate_limiter import MemoryRateLimitStore, RateLimiter
from cm_bridge.core.webhook.handlers import WebhookHandler
from cm_bridge.models.config import RelaySettings
from cm_bridge.models.webhook import IncomingRequest

TEST_API_KEY = "123456789:" + "A" * 35
TEST_CHAT_ID = "-1001234567890"

ENV_VARS_TO_CLEAR = [
    "CM_BRIDGE_CONFIG",
    "TG_API_KEY",
    "TG_CHAT_ID",
    "SIGNATURE",
    "PREFIX",
    "RATE_LIMIT_MAX_REQUESTS",
    "RATE_LIMIT_TIME_WINDOW",
    "RATE_LIMIT_STORAGE_DIR",
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
    "DEBUG",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """
    Keep the user's environment and global config out of every test.
    """
    for var in ENV_VARS_TO_CLEAR:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def prevent_env_file_loading() -> Iterator[None]:
    """
    Prevent loading of .env files during tests.
    """
    with patch.object(Config, "_load_env_file", return_value=None):
        yield


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSender:
    """MessageSender stub that records every message."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list[tuple[str, str]] = []

    def send(self, chat_id: str, text: str) -> bool:
        self.sent.append((chat_id, text))
        return self.result


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """
    Create temporary config directory for tests.
    """
    config_dir = tmp_path / ".cm-bridge"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> RelaySettings:
    """Valid settings without a signature secret."""
    return RelaySettings(telegram_api_key=TEST_API_KEY, telegram_chat_id=TEST_CHAT_ID)


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(max_requests=5, time_window=60, store=MemoryRateLimitStore(), clock=clock)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def handler(settings: RelaySettings, rate_limiter: RateLimiter, sender: RecordingSender) -> WebhookHandler:
    return WebhookHandler(settings=settings, rate_limiter=rate_limiter, sender=sender)


@pytest.fixture
def threshold_body() -> str:
    """Form-encoded threshold alarm as CloudMonitor posts it."""
    return (
        "alertName=CPU%20Usage&alertState=ALARM&curValue=85.5"
        "&instanceName=web-server-01&metricName=CPUUtilization"
    )


@pytest.fixture
def event_payload() -> dict:
    """Event alarm as CloudMonitor posts it."""
    return {
        "product": "ECS",
        "level": "CRITICAL",
        "instanceName": "i-123",
        "name": "Instance_Failure",
        "content": {"instanceIds": ["i-123"], "description": "down"},
    }


def make_request(
    body: str = "",
    content_type: str | None = "application/x-www-form-urlencoded",
    method: str = "POST",
    query: dict | None = None,
    client: str = "203.0.113.7",
) -> IncomingRequest:
    """Build an IncomingRequest the way a transport adapter would."""
    headers = {"Content-Type": content_type} if content_type is not None else {}
    return IncomingRequest(
        method=method,
        headers=headers,
        body=body,
        query=query or {},
        client_identifier=client,
    )


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def restore_environ() -> Iterator[None]:
    """Undo direct os.environ writes (the .env loader uses setdefault)."""
    saved = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(saved)
