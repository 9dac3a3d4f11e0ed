"""
Shared configuration management for Efficio services.
"""

from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="EFFICIO_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Document store
    mongo_url: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="efficio")
    mongo_timeout_ms: int = Field(default=5000)

    # Identity provider
    auth0_domain: str = Field(default="efficio.us.auth0.com")
    auth0_audience: Optional[str] = Field(default=None)
    jwks_url: Optional[str] = Field(default=None)

    # Event stream
    heartbeat_interval: float = Field(default=15.0)
    max_missed_heartbeats: int = Field(default=3)
    channel_queue_size: int = Field(default=256)
    enable_debug_routes: Optional[bool] = Field(default=None)

    # HTTP
    cors_origins: str = Field(default="")

    @model_validator(mode="after")
    def _derive_defaults(self):
        if not self.jwks_url:
            self.jwks_url = f"https://{self.auth0_domain}/.well-known/jwks.json"
        if self.enable_debug_routes is None:
            self.enable_debug_routes = not self.is_production
        return self

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def auth0_issuer(self) -> str:
        return f"https://{self.auth0_domain}/"

    def allowed_origins(self) -> List[str]:
        """Origins allowed by CORS; everything outside production when unset."""
        if self.cors_origins:
            return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        return [] if self.is_production else ["*"]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
