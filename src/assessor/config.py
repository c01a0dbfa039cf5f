"""Application configuration.

Configuration is loaded from environment variables. For local development, you can provide a
`.env` file and set `ASSESSOR_ENV_FILE` to point to it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Assessor settings.

    All fields are environment-configurable. Prefix is `ASSESSOR_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="ASSESSOR_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    app_env: Literal["dev", "prod"] = Field(default="dev")
    log_level: str = Field(default="INFO")

    # LLM (judge + narrative summaries). Unset key means mock verdicts and templated summaries.
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    # Search. Tavily without an API key falls back to mock documents.
    search_provider: Literal["tavily", "duckduckgo"] = Field(default="tavily")
    search_max_results: int = Field(default=20, ge=1, le=100)

    tavily_api_key: str | None = Field(default=None)
    tavily_api_base_url: str = Field(default="https://api.tavily.com")
    tavily_search_depth: Literal["basic", "advanced"] = Field(default="advanced")

    # Storage
    redis_enabled: bool = Field(default=False)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="assessor")

    # Pipeline
    max_search_groups: int = Field(default=7, ge=1, le=50)
    judge_content_max_chars: int = Field(default=800, ge=100, le=20000)
    provider_timeout_s: float = Field(default=30.0, ge=1.0, le=600.0)

    # Progress observation
    progress_poll_interval_s: float = Field(default=1.0, gt=0.0, le=60.0)
    progress_ttl_s: int = Field(default=60 * 60 * 24, ge=60)

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key)


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("ASSESSOR_ENV_FILE")
    if env_file_override:
        env_path = Path(env_file_override)
        return Settings(_env_file=env_path)

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
