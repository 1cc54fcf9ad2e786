"""Tests for Settings and API key resolution."""

import logging

import pytest
from pydantic import ValidationError

from codehero.config import Settings, resolve_api_key


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.api_version == "2023-06-01"
    assert settings.max_iterations == 10
    assert settings.max_fix_attempts == 3
    assert settings.auto_fix_enabled is True


def test_prefixed_env(monkeypatch):
    monkeypatch.setenv("CODEHERO_MAX_ITERATIONS", "4")
    monkeypatch.setenv("CODEHERO_AUTO_FIX_ENABLED", "false")
    settings = Settings(_env_file=None)
    assert settings.max_iterations == 4
    assert settings.auto_fix_enabled is False


def test_api_key_from_claude_env(monkeypatch):
    monkeypatch.setenv("CLAUDE_API_KEY", "sk-ant-from-env")
    assert resolve_api_key(Settings(_env_file=None)) == "sk-ant-from-env"


def test_api_key_from_anthropic_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-other")
    assert Settings(_env_file=None).api_key == "sk-ant-other"


def test_api_key_file_fallback(tmp_path):
    key_file = tmp_path / "claude_config.txt"
    key_file.write_text("  sk-ant-from-file\n", encoding="utf-8")
    settings = Settings(_env_file=None, api_key_file=str(key_file))
    assert resolve_api_key(settings) == "sk-ant-from-file"


def test_env_key_wins_over_file(tmp_path, monkeypatch):
    key_file = tmp_path / "claude_config.txt"
    key_file.write_text("sk-ant-from-file", encoding="utf-8")
    monkeypatch.setenv("CLAUDE_API_KEY", "sk-ant-from-env")
    settings = Settings(_env_file=None, api_key_file=str(key_file))
    assert resolve_api_key(settings) == "sk-ant-from-env"


def test_missing_key_warns(tmp_path, caplog):
    settings = Settings(_env_file=None, api_key_file=str(tmp_path / "missing.txt"))
    with caplog.at_level(logging.WARNING, logger="codehero.config"):
        assert resolve_api_key(settings) == ""
    assert "No API key found" in caplog.text


@pytest.mark.parametrize("field", ["max_iterations", "max_fix_attempts", "max_tokens"])
def test_limits_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})
