"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # LLM gateway
    llm_gateway_url: str = Field(
        default="http://localhost:8080/proxy/anthropic",
        description="Base URL of the Anthropic-compatible gateway (``/messages`` is appended)",
    )
    llm_provider: str = Field(
        default="anthropic",
        description="Provider name reported in errors and logs",
    )
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model name sent with every completion request",
    )
    llm_max_tokens: int = Field(default=64000, ge=1)
    llm_time_budget_ms: int = Field(
        default=600_000,
        ge=1000,
        description="Value of the x-time-budget header forwarded to the gateway",
    )
    llm_timeout_seconds: float = Field(default=600.0, gt=0)
    llm_api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Gateway token (takes precedence over the credentials file)",
        validation_alias=AliasChoices("llm_api_token", "codestream_token"),
    )
    llm_token_path: Path = Field(
        default=Path("~/.codestream/auth/api-key.json"),
        description="JSON credentials file holding a 'token' or 'accessToken' key",
    )

    # Generated output
    project_root: Path = Field(
        default=Path("."),
        description="Directory generated files are written under",
    )
    file_path_prefix: str = Field(
        default="src",
        description="Conventional root every generated file path is normalized under",
    )
    partial_min_length: int = Field(
        default=10,
        ge=0,
        description="Minimum trimmed length before a partial message/plan is streamed",
    )
    file_stream_mode: Literal["delta", "full"] = Field(
        default="delta",
        description="Emit file_content_delta suffixes or full file_streaming snapshots",
    )

    # Generation registry
    generation_retention_seconds: int = Field(default=600, ge=1)
    generation_sweep_interval_seconds: int = Field(default=300, ge=1)

    # API
    api_host: str = Field(default="0.0.0.0")  # noqa: S104
    api_port: int = Field(default=8000, ge=1, le=65535)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache so the environment is read once per process.
    """
    return Settings()
