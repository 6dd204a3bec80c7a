"""
Tests for rate limit maintenance commands.
"""

from unittest.mock import patch

import toml

from cm_bridge.commands.ratelimit import build_rate_limiter, cleanup, status
from cm_bridge.config import Config


def test_build_rate_limiter_needs_no_credentials(tmp_path):
    config = Config(config_path=tmp_path / "config.toml")
    config.set("rate_limit.storage_dir", str(tmp_path))
    config.set("rate_limit.max_requests", 7)

    limiter = build_rate_limiter(config)
    assert limiter.max_requests == 7
    assert limiter.time_window == 3600
    assert (tmp_path / "rate_limiter").is_dir()


def test_invalid_limits_are_reported(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("CM_BRIDGE_CONFIG", str(tmp_path / "config.toml"))
    monkeypatch.setenv("RATE_LIMIT_STORAGE_DIR", str(tmp_path))
    monkeypatch.setenv("RATE_LIMIT_TIME_WINDOW", "0")

    assert cleanup() == 1
    assert "time_window must be positive" in capsys.readouterr().out


def test_storage_error_is_reported(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("CM_BRIDGE_CONFIG", str(tmp_path / "config.toml"))
    monkeypatch.setenv("RATE_LIMIT_STORAGE_DIR", str(tmp_path))

    with patch("cm_bridge.core.rate_limiter.os.access", return_value=False):
        assert status("10.0.0.1") == 1
    assert "not writable" in capsys.readouterr().out


def test_non_numeric_limit_is_reported(monkeypatch, tmp_path, capsys):
    config_path = tmp_path / "config.toml"
    config_path.write_text(toml.dumps({"rate_limit": {"max_requests": [], "storage_dir": str(tmp_path)}}))
    monkeypatch.setenv("CM_BRIDGE_CONFIG", str(config_path))

    assert cleanup() == 1
    assert capsys.readouterr().out.startswith("Error: ")
