"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "sourcewatch"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Render log events as JSON lines")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sourcewatch.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Organization keyword profile (read-only JSON document)
    org_profile_path: str = Field(default="org_profile.json")

    # Outbound fetching
    user_agent: str = Field(
        default="sourcewatch/0.1 (+https://example.invalid; feed monitor)",
        description="Client label sent with every request and matched against robots.txt",
    )
    fetch_timeout_seconds: float = Field(default=15.0, gt=0)
    robots_timeout_seconds: float = Field(default=5.0, gt=0)
    robots_cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    max_response_bytes: int = Field(default=5_000_000, gt=0)
    feed_link_candidates: int = Field(
        default=3,
        ge=0,
        description="Feed links advertised by a page that are verified during detection",
    )

    # Parsing
    excerpt_max_chars: int = Field(default=500, gt=0)
    html_max_articles: int = Field(default=20, gt=0)

    # Scheduling
    default_fetch_interval_hours: int = Field(default=24, ge=1, le=168)
    sweep_check_interval_minutes: int = Field(
        default=15,
        ge=1,
        description="How often the service evaluates which sources are due",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
