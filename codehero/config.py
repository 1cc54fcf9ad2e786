"""Settings via pydantic-settings with CODEHERO_ env prefix.

The API key reads from the unprefixed CLAUDE_API_KEY / ANTHROPIC_API_KEY
env vars first, then falls back to a local key file next to the editor
project (see resolve_api_key).
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CODEHERO_", env_file=".env", extra="ignore", populate_by_name=True
    )

    # Credentials: env first, then the key file
    api_key: str = Field(
        "",
        validation_alias=AliasChoices("CLAUDE_API_KEY", "ANTHROPIC_API_KEY", "CODEHERO_API_KEY"),
    )
    api_key_file: str = "Assets/Editor/ChatSystem/Configuration/claude_config.txt"

    # LLM
    api_base_url: str = "https://api.anthropic.com"
    api_version: str = "2023-06-01"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8192
    max_iterations: int = 10
    api_timeout_connect: float = 10.0
    api_timeout_read: float = 300.0

    # System prompt context
    project_name: str = "Unity Project"
    assets_path: str = "Assets"

    # Error fix cycle
    auto_fix_enabled: bool = True
    max_fix_attempts: int = 3
    error_debounce_seconds: float = 1.0
    recent_error_window: float = 5.0
    compilation_grace_seconds: float = 5.0
    compilation_timeout_seconds: float = 120.0

    # Editor bridge that executes tools inside the host
    host_bridge_url: str = "http://127.0.0.1:8765"
    host_bridge_timeout: float = 60.0

    # Runtime
    host: str = "127.0.0.1"
    port: int = 8700
    log_level: str = "info"

    @model_validator(mode="after")
    def _check_limits(self) -> Settings:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.max_fix_attempts < 1:
            raise ValueError("max_fix_attempts must be >= 1")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        return self


def resolve_api_key(settings: Settings) -> str:
    """Return the API key from env, else from the key file, else "".

    A missing key is not fatal at startup: requests fail later with an
    authentication error through the normal error channel.
    """
    if settings.api_key:
        return settings.api_key.strip()

    path = Path(settings.api_key_file)
    if path.is_file():
        try:
            key = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning("Could not read API key file %s: %s", path, e)
            key = ""
        if key:
            logger.info("Loaded API key from %s", path)
            return key

    logger.warning(
        "No API key found: set CLAUDE_API_KEY or create %s -- requests will fail",
        settings.api_key_file,
    )
    return ""
