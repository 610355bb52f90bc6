"""
Configuration management for the TV sources backend.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "TV Sources"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # Database
    database_path: str = "data/tvsources.db"

    # Channel sources
    xtream_api_path: str = "/player_api.php"
    m3u_api_path: str = "/get.php"
    uncategorized_label: str = "Uncategorized"

    # Subtitle providers
    opensubtitles_api_base: str = "https://api.opensubtitles.com/api/v1"
    # Restrict each auto-load search to the provider being iterated
    subtitle_autoload_provider_scoped: bool = False

    # Transport boundary (None = no timeout)
    http_timeout_seconds: float | None = 30.0
    user_agent: str = "tvsources/0.1"

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="TVSOURCES_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
