"""
Tests for the cm-bridge CLI.
"""

from unittest.mock import MagicMock, patch

import pytest
import toml
from typer.testing import CliRunner

from cm_bridge.cli import app

API_KEY = "123456789:" + "A" * 35

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("cm_bridge.cli.setup_logging") as mock_setup:
        yield mock_setup


@pytest.fixture
def configured(monkeypatch, tmp_path):
    """Point the CLI at a temporary config file with valid credentials."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        toml.dumps(
            {
                "telegram": {"api_key": API_KEY, "chat_id": "12345"},
                "rate_limit": {"max_requests": 2, "storage_dir": str(tmp_path)},
            }
        )
    )
    monkeypatch.setenv("CM_BRIDGE_CONFIG", str(config_path))
    return config_path


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "CloudMonitor alarm relay" in result.stdout
    for command in ("server", "send", "config", "cleanup", "ratelimit"):
        assert command in result.stdout


def test_callback_configures_logging(configured, no_logging_setup):
    runner.invoke(app, ["cleanup"])
    no_logging_setup.assert_called_once()
    assert no_logging_setup.call_args.kwargs["level"] == "INFO"


class TestServerCommand:
    def test_starts_uvicorn_with_config_defaults(self, configured):
        with patch("cm_bridge.commands.server.start_server") as mock_start:
            result = runner.invoke(app, ["server"])

        assert result.exit_code == 0
        mock_start.assert_called_once_with(host="0.0.0.0", port=8080, reload=False)

    def test_options_override_config(self, configured):
        with patch("cm_bridge.commands.server.start_server") as mock_start:
            result = runner.invoke(app, ["server", "--host", "127.0.0.1", "--port", "9001"])

        assert result.exit_code == 0
        mock_start.assert_called_once_with(host="127.0.0.1", port=9001, reload=False)

    def test_refuses_to_start_without_credentials(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CM_BRIDGE_CONFIG", str(tmp_path / "missing.toml"))
        with patch("cm_bridge.commands.server.start_server") as mock_start:
            result = runner.invoke(app, ["server"])

        assert result.exit_code == 1
        assert "Configuration error: telegram_api_key" in result.stdout
        mock_start.assert_not_called()

    def test_refuses_to_start_with_unusable_storage(self, configured, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("RATE_LIMIT_STORAGE_DIR", str(blocker))
        with patch("cm_bridge.commands.server.start_server") as mock_start:
            result = runner.invoke(app, ["server"])

        assert result.exit_code == 1
        assert "Storage error" in result.stdout
        mock_start.assert_not_called()


class TestSendCommand:
    def test_sends_prefixed_text(self, configured):
        client = MagicMock()
        client.__enter__.return_value = client
        client.send_message.return_value = True

        with patch("cm_bridge.commands.send.TelegramClient", return_value=client) as mock_cls:
            result = runner.invoke(app, ["send", "hello", "--silent"])

        assert result.exit_code == 0
        assert "Message sent" in result.stdout
        mock_cls.assert_called_once_with(API_KEY)
        client.send_message.assert_called_once_with("12345", "[CM] hello", silent=True)

    def test_send_failure(self, configured):
        client = MagicMock()
        client.__enter__.return_value = client
        client.send_message.return_value = False

        with patch("cm_bridge.commands.send.TelegramClient", return_value=client):
            result = runner.invoke(app, ["send", "hello"])

        assert result.exit_code == 1
        assert "Failed to send message" in result.stdout


class TestRateLimitCommands:
    def test_status_clear_and_cleanup(self, configured, tmp_path):
        records = tmp_path / "rate_limiter"

        result = runner.invoke(app, ["ratelimit", "status", "10.0.0.1"])
        assert result.exit_code == 0
        assert "Remaining requests: 2/2" in result.stdout

        (records / "rl_10.0.0.1").write_text("[9999999999]")
        result = runner.invoke(app, ["ratelimit", "status", "10.0.0.1"])
        assert "Remaining requests: 1/2" in result.stdout

        result = runner.invoke(app, ["ratelimit", "clear", "10.0.0.1"])
        assert result.exit_code == 0
        assert not (records / "rl_10.0.0.1").exists()

        (records / "rl_old").write_text("[1]")
        result = runner.invoke(app, ["cleanup"])
        assert result.exit_code == 0
        assert "Removed 1 expired rate limit record(s)" in result.stdout
        assert not (records / "rl_old").exists()


class TestConfigCommand:
    def test_check(self, configured):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Current configuration:" in result.stdout
        assert API_KEY not in result.stdout
        assert "Configuration OK" in result.stdout
        assert "Rate limit: 2 requests / 3600s" in result.stdout

    def test_get_section_masks_secrets(self, configured):
        result = runner.invoke(app, ["config", "telegram"])
        assert result.exit_code == 0
        assert API_KEY not in result.stdout
        assert 'api_key = "1234*' in result.stdout
        assert 'chat_id = "12345"' in result.stdout

    def test_get_masks_secrets(self, configured):
        result = runner.invoke(app, ["config", "telegram.api_key"])
        assert result.exit_code == 0
        assert API_KEY not in result.stdout
        assert result.stdout.startswith("1234*")

    def test_set(self, configured):
        result = runner.invoke(app, ["config", "rate_limit.time_window", "120"])
        assert result.exit_code == 0
        assert toml.load(configured)["rate_limit"]["time_window"] == 120
