"""Settings via pydantic-settings with AGENTLOOP_ env prefix.

Credentials use validation_alias to read the same unprefixed env vars
(ANTHROPIC_API_KEY, ANTHROPIC_AUTH_TOKEN) that the vendor tooling uses,
so a single .env file works for both.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTLOOP_", env_file=".env")

    # Credentials -- auth_token (Bearer) takes precedence over api_key (x-api-key)
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")

    # LLM
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1024
    system_prompt: str | None = None
    stream: bool = True

    # Direct API settings
    api_base_url: str = "https://api.anthropic.com"
    api_version: str = "2023-06-01"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Tool loop
    max_turns: int = 10  # Max model round-trips per user turn
    parallel_tools: bool = True
    workspace_dir: str = "/tmp/agentloop-workspace"

    log_level: str = "warning"

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.max_turns < 1:
            raise ValueError(f"max_turns must be >= 1, got {self.max_turns}")
        return self
