"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8007

    # GitHub Webhook (empty disables signature checking)
    github_webhook_secret: str = ""

    # GitHub API (empty disables commit status posting)
    github_token: str = ""
    status_timeout_seconds: float = 30.0

    # Working copies and build wrapper
    workspace_root: str = "/tmp/ci"
    build_wrapper: str = "gradlew"
    build_wrapper_windows: str = "gradlew.bat"

    # Build ledger
    ledger_dir: str = "data/repositories"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "prod"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
