"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic_settings import BaseSettings

from perplexity_bridge.exceptions import ConfigurationError


@dataclass(frozen=True)
class ToolProfile:
    """Per-deployment limits for the completions tool."""

    name: str
    models: tuple[str, ...]
    max_tokens_ceiling: int
    allow_reasoning_effort: bool
    default_upstream_streaming: bool
    default_model: str = "sonar"
    default_max_tokens: int = 1024
    default_temperature: float = 0.7


PROFILES: dict[str, ToolProfile] = {
    "stdio": ToolProfile(
        name="stdio",
        models=(
            "sonar",
            "sonar-pro",
            "sonar-deep-research",
            "sonar-reasoning",
            "sonar-reasoning-pro",
        ),
        max_tokens_ceiling=4096,
        allow_reasoning_effort=True,
        default_upstream_streaming=True,
    ),
    "http": ToolProfile(
        name="http",
        models=("sonar", "sonar-pro"),
        max_tokens_ceiling=2048,
        allow_reasoning_effort=False,
        default_upstream_streaming=False,
    ),
}


class Settings(BaseSettings):
    # Upstream
    perplexity_api_key: str = ""
    perplexity_api_url: str = "https://api.perplexity.ai/chat/completions"

    # Timeout / retry
    request_timeout_s: float = 15.0
    retry_max_attempts: int = 2
    retry_backoff_base_s: float = 0.3

    # Connection pool
    pool_max_connections: int = 10
    pool_keepalive_expiry_s: float = 60.0

    # HTTP server
    host: str = "::"
    port: int = 8080
    mcp_user: str = ""
    mcp_pass: str = ""

    # Tool profile; None lets each entry point pick its own
    profile: Literal["http", "stdio"] | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "extra": "ignore"}

    def tool_profile(self, default: str) -> ToolProfile:
        return PROFILES[self.profile or default]

    def require_api_key(self) -> str:
        if not self.perplexity_api_key:
            raise ConfigurationError("PERPLEXITY_API_KEY environment variable is required")
        return self.perplexity_api_key

    def require_http_credentials(self) -> tuple[str, str]:
        if not self.mcp_user or not self.mcp_pass:
            raise ConfigurationError(
                "MCP_USER and MCP_PASS environment variables are required for authentication"
            )
        return self.mcp_user, self.mcp_pass
