"""Settings via pydantic-settings with PARLEY_ env prefix.

The API key and base URL also read the unprefixed ANTHROPIC_* variables
(and the legacy CLAUDE_API_KEY), so an existing .env file works unchanged.
"""

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Credentials and endpoint
    anthropic_api_key: str = Field(
        "",
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "anthropic_api_key"),
    )
    api_base_url: str = Field(
        "https://api.anthropic.com",
        validation_alias=AliasChoices("ANTHROPIC_BASE_URL", "PARLEY_API_BASE_URL", "api_base_url"),
    )
    api_version: str = "2023-06-01"
    api_timeout_connect: float = 10.0  # seconds
    api_timeout_read: float = 120.0  # seconds

    # LLM
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096

    # Agent
    max_iterations: int = 10  # Max tool use round-trips per send()
    context_token_limit: int | None = None  # Prune history before each request when set

    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.context_token_limit is not None and self.context_token_limit < 1:
            raise ValueError("context_token_limit must be >= 1 when set")
        return self
