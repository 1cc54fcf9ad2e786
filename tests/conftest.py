"""Shared fixtures: settings without .env, and a settings factory."""

import pytest

from codehero.config import Settings


@pytest.fixture(autouse=True)
def _clear_key_env(monkeypatch):
    for name in ("CLAUDE_API_KEY", "ANTHROPIC_API_KEY", "CODEHERO_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "api_key": "sk-ant-test-key",
            "api_base_url": "https://api.test",
            "error_debounce_seconds": 0.05,
            "compilation_grace_seconds": 0.2,
            "compilation_timeout_seconds": 0.5,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()
