"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_secret_key: str = Field(default="dev-secret-key-change-in-production")

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Build toolchain
    build_tool_binary: str = "docker"
    registry_host: str | None = None  # None means the tool's default registry
    process_timeout_seconds: float = 900.0

    # Staging
    staging_root: str | None = None
    staging_prefix: str = "modelnest-deploy-"

    # Pending deployments
    artifact_ttl_minutes: int = 30

    # Event stream
    stream_ping_seconds: int = 15

    # Code generation service
    codegen_service_url: str = "http://localhost:5000/api/chat"
    codegen_timeout_seconds: float = 120.0

    # Deployment records (in-memory when unset)
    record_service_url: str | None = None
    record_timeout_seconds: float = 10.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "modelnest.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
