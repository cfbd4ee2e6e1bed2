"""
Configuration settings for the StreamDesk presence and command coordinator.
All sensitive values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "StreamDesk Coordinator"
    debug: bool = Field(default=False)
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database (PostgreSQL)
    database_url: str = Field(default="")
    database_echo: bool = Field(default=False)
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=3600)

    # Azure Web PubSub (broadcast channel)
    webpubsub_endpoint: str = Field(default="")
    webpubsub_key: str = Field(default="")
    webpubsub_hub: str = Field(default="commands")
    webpubsub_token_ttl_minutes: int = Field(default=60)
    broadcast_timeout_seconds: float = Field(default=10.0)

    # Identity verification (Azure AD / Entra ID)
    azure_tenant_id: str = Field(default="")
    auth_audience: str = Field(default="")
    auth_jwks_cache_minutes: int = Field(default=60)

    # Command delivery
    command_ttl_minutes: int = Field(default=0)
    delivery_sweep_interval_seconds: int = Field(default=60)
    delivery_sweep_batch_size: int = Field(default=100)

    @property
    def auth_issuers(self) -> List[str]:
        """Accepted token issuers for the configured tenant (v2.0 and v1.0 STS)."""
        if not self.azure_tenant_id:
            return []
        return [
            f"https://login.microsoftonline.com/{self.azure_tenant_id}/v2.0",
            f"https://sts.windows.net/{self.azure_tenant_id}/",
        ]

    @property
    def auth_jwks_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.azure_tenant_id}/discovery/v2.0/keys"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
