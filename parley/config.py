"""Settings via pydantic-settings with PARLEY_ env prefix.

The API key is read from the unprefixed ANTHROPIC_API_KEY variable so the
same environment used by other Anthropic tooling drives parley too.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PARLEY_", env_file=".env", extra="ignore")

    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")

    # Transport
    base_url: str = "https://api.anthropic.com"
    api_version: str = "2023-06-01"
    timeout: float = 600.0  # seconds, connect + read
    max_retries: int = Field(2, ge=0)
    initial_retry_delay: float = 0.5  # seconds
    max_retry_delay: float = 8.0  # seconds

    # Defaults for the tool loop
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    max_iterations: int = Field(10, ge=1)
    compaction_threshold: int = Field(10000, gt=0)

    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_retry_window(self) -> "Settings":
        if self.initial_retry_delay > self.max_retry_delay:
            raise ValueError(
                f"initial_retry_delay ({self.initial_retry_delay}) must be <= "
                f"max_retry_delay ({self.max_retry_delay})"
            )
        return self
