"""
Configuration settings for OpsDesk.
All sensitive values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "OpsDesk"
    debug: bool = Field(default=False)
    environment: str = Field(default="production")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database (PostgreSQL in production, SQLite for local/test)
    database_url: str = Field(default="")
    database_echo: bool = Field(default=False)
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=3600)

    # Dates ("today", "this week", "overdue" filters)
    timezone: str = Field(default="UTC")

    # Credential vault (Fernet key, see opsdesk.utils.encryption)
    encryption_key: Optional[str] = Field(default=None)

    # Listing
    min_search_length: int = Field(default=2)
    default_page_size: int = Field(default=100)
    max_page_size: int = Field(default=1000)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
