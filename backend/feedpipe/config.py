"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringWeights(BaseSettings):
    """Constants for the incremental source quality scorer."""

    model_config = SettingsConfigDict(env_prefix="SCORING_")

    # Reliability updates
    reliability_success_delta: float = Field(default=2.0, ge=0.0)
    reliability_failure_delta: float = Field(default=5.0, ge=0.0)
    reliability_floor: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Transient failures never push reliability below this value",
    )

    # Freshness = min(articles_found * per_article + base, 100)
    freshness_per_article: float = Field(default=10.0, ge=0.0)
    freshness_base: float = Field(default=50.0, ge=0.0, le=100.0)

    # Recency decay: 100 -> 0 over this many days since the last good fetch
    recency_decay_days: float = Field(default=10.0, gt=0.0)

    # Component weights for the composite quality score
    weight_reliability: float = Field(default=0.4, ge=0.0, le=1.0)
    weight_freshness: float = Field(default=0.3, ge=0.0, le=1.0)
    weight_success_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    weight_recency: float = Field(default=0.1, ge=0.0, le=1.0)

    @field_validator(
        "weight_reliability", "weight_freshness", "weight_success_ratio", "weight_recency"
    )
    @classmethod
    def validate_weights(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Weights must be between 0 and 1")
        return v


class ValidationSettings(BaseSettings):
    """Feed validation scoring parameters."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    points_per_article: int = Field(default=10, ge=0)
    article_points_cap: int = Field(default=100, ge=0)
    recency_bonus: int = Field(default=20, ge=0)
    locale_bonus: int = Field(default=30, ge=0)
    recent_window_days: int = Field(default=7, ge=1)
    daily_min_recent: int = Field(default=5, ge=1)
    weekly_min_recent: int = Field(default=2, ge=1)
    sample_length: int = Field(default=200, ge=1)
    locale_language: str = "en-zw"
    locale_keywords: list[str] = Field(
        default=["zimbabwe", "harare", "bulawayo", "zim", "zw", "rtgs", "bond"],
        description="Vocabulary that marks a feed as relevant to the target region",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Feedpipe"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./feedpipe.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # HTTP
    user_agent: str = Field(default="Harare Metro News Aggregator 2.0")
    feed_timeout_seconds: float = Field(default=30.0, gt=0.0)
    discovery_timeout_seconds: float = Field(default=10.0, gt=0.0)
    validation_timeout_seconds: float = Field(default=15.0, gt=0.0)
    fetch_retry_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts per feed fetch; only transport errors are retried",
    )

    # Ingestion
    max_items_per_fetch: int = Field(default=50, ge=1)
    fetch_concurrency: int = Field(default=4, ge=1, le=64)
    run_deadline_seconds: Optional[float] = Field(
        default=None,
        description="Stop picking up new sources once a run has lasted this long",
    )
    ingestion_interval_minutes: int = Field(
        default=60,
        description="Interval for the scheduled ingestion run",
    )
    fallback_category: str = "general"
    category_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)
    description_max_length: int = Field(default=500, ge=1)
    content_max_length: int = Field(default=1000, ge=1)

    # Source onboarding
    default_country: str = "ZW"
    default_language: str = "en"
    discovery_paths: list[str] = Field(
        default=[
            "/feed/",
            "/rss/",
            "/feed.xml",
            "/rss.xml",
            "/feeds/all.rss.xml",
            "/index.xml",
            "/?feed=rss2",
            "/wp-rss2.php",
            "/news/feed/",
            "/articles/feed/",
        ],
    )
    max_feeds_to_validate: int = Field(default=3, ge=1)
    bulk_import_delay_seconds: float = Field(default=1.0, ge=0.0)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
    )

    # Nested groups
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
