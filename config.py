"""
Configuration management for CryptoSage.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Database
    database_url: str = "sqlite:///cryptosage.db"
    db_echo: bool = False

    # Data sources
    data_mode: str = "live"  # "live" or "mock"
    portfolio_mode: str = "manual"  # "manual", "synced" or "combined"
    quote_currency: str = "USD"

    # Polling
    price_refresh_seconds: int = 60
    exchange_sync_seconds: int = 60
    price_fetch_retries: int = 3
    fetch_workers: int = 8


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
