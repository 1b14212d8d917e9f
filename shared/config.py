"""
Shared configuration management for the GitHub Backend API.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PASSWORD = "change-this-secure-password"


class ServiceSettings(BaseSettings):
    """Process-wide settings, read once from the environment and never mutated."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="development", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("LOG_LEVEL"))
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST"))
    port: int = Field(default=3000, validation_alias=AliasChoices("PORT"))

    # Credentials
    backend_password: str = Field(default=DEFAULT_PASSWORD, validation_alias=AliasChoices("BACKEND_PASSWORD"))
    api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("API_KEY"))
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ACESS_TOKEN", "ACCESS_TOKEN", "GITHUB_TOKEN"),
    )

    # Upstream
    github_api_url: str = Field(default="https://api.github.com", validation_alias=AliasChoices("GITHUB_API_URL"))
    upstream_timeout_seconds: float = Field(default=30.0, validation_alias=AliasChoices("UPSTREAM_TIMEOUT_SECONDS"))

    # HTTP surface
    allowed_origins: str = Field(default="", validation_alias=AliasChoices("ALLOWED_ORIGINS"))
    max_body_bytes: int = Field(default=10 * 1024 * 1024, validation_alias=AliasChoices("MAX_BODY_BYTES"))
    trust_proxy_headers: bool = Field(default=False, validation_alias=AliasChoices("TRUST_PROXY_HEADERS"))

    # Rate limiting
    rate_limit_max_requests: int = Field(default=100, validation_alias=AliasChoices("RATE_LIMIT_MAX"))
    rate_limit_window_seconds: int = Field(default=15 * 60, validation_alias=AliasChoices("RATE_LIMIT_WINDOW_SECONDS"))
    rate_limit_redis_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("RATE_LIMIT_REDIS_URL"))

    # Observability / lifecycle
    enable_metrics: bool = Field(default=True, validation_alias=AliasChoices("ENABLE_METRICS"))
    shutdown_grace_seconds: int = Field(default=10, validation_alias=AliasChoices("SHUTDOWN_GRACE_SECONDS"))

    @property
    def cors_origins(self) -> List[str]:
        """Allow-list parsed from ALLOWED_ORIGINS; empty means any origin."""
        origins = [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return origins or ["*"]

    @property
    def uses_default_password(self) -> bool:
        return self.backend_password == DEFAULT_PASSWORD

    @property
    def github_token_configured(self) -> bool:
        return bool(self.github_token)

    @property
    def api_key_configured(self) -> bool:
        return bool(self.api_key)


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Get the process-wide settings."""
    return ServiceSettings()
