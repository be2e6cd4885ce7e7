"""Tests for centralized Config class."""

import pytest

from agent_host import __version__
from agent_host.config import Config


def test_config_defaults():
    """Verify default configuration values."""
    assert Config.HOST_VERSION == __version__
    assert Config.WORKSPACE_ROOT == "./workspace"
    assert Config.DECISION_STORE == "memory"
    assert Config.REDIS_KEY_PREFIX == "approvals"
    assert Config.APPROVAL_TIMEOUT == 300


@pytest.mark.parametrize(
    "raw,expected",
    [("1", True), ("true", True), (" Yes ", True), ("on", True), ("0", False), ("false", False), ("", False)],
)
def test_parse_bool(raw, expected):
    assert Config._parse_bool(raw) is expected


def test_config_validation_passes_on_defaults():
    assert Config.validate() is True


def test_config_validation_collects_all_errors(monkeypatch):
    """Every problem is reported in a single ValueError."""
    monkeypatch.setattr(Config, "DECISION_STORE", "sqlite")
    monkeypatch.setattr(Config, "HOST_VERSION", "1.0")
    monkeypatch.setattr(Config, "APPROVAL_TIMEOUT", -1)

    with pytest.raises(ValueError) as exc_info:
        Config.validate()

    message = str(exc_info.value)
    assert "DECISION_STORE" in message
    assert "HOST_VERSION" in message
    assert "APPROVAL_TIMEOUT" in message


def test_config_validation_rejects_bad_redis_pool(monkeypatch):
    monkeypatch.setattr(Config, "REDIS_MAX_CONNECTIONS", 0)
    with pytest.raises(ValueError, match="REDIS_MAX_CONNECTIONS"):
        Config.validate()


def test_zero_timeout_is_valid(monkeypatch):
    """0 disables the approval timeout."""
    monkeypatch.setattr(Config, "APPROVAL_TIMEOUT", 0)
    assert Config.validate() is True
