"""
Configuration management with pydantic-settings.

All environment variables are validated at startup. If a required
variable is missing the process fails immediately with a clear
message (fail-fast).
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────
    database_url: str = Field(
        description="Async connection string (postgresql+asyncpg://...)",
    )
    database_url_sync: str = Field(
        default="",
        description="Sync connection string for Alembic (postgresql://...)",
    )
    database_pool_size: int = Field(default=10)
    database_max_overflow: int = Field(default=20)

    # ── Redis / ARQ ───────────────────────────────────────────────────
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for ARQ workers.",
    )
    insights_cron_hour: int = Field(
        default=6,
        description="UTC hour at which the daily insight jobs are enqueued.",
    )

    # ── Notifications ─────────────────────────────────────────────────
    slack_webhook_url: str = Field(
        default="",
        description="Slack incoming webhook URL for critical insight alerts.",
    )

    # ── Scoring / Briefing ────────────────────────────────────────────
    default_consumer_id: str = Field(
        default="default",
        description="Consumer whose preferences are used when a job does not name one.",
    )
    briefing_cache_ttl_seconds: float = Field(default=600.0)
    briefing_cache_max_entries: int = Field(default=200)
    briefing_limit: int = Field(default=5)

    # ── Cross-source correlation thresholds ───────────────────────────
    correlation_traffic_growth_pct: float = Field(
        default=5.0,
        description="Minimum month-over-month organic traffic growth (%) for the event/SEO opportunity rule.",
    )
    correlation_traffic_decline_points: int = Field(
        default=3,
        description="Length of the monotonic traffic decline required for the authority-risk rule.",
    )
    correlation_keyword_gain: int = Field(
        default=10,
        description="Minimum new ranked keywords for the competitor momentum rule.",
    )
    correlation_min_review_count: int = Field(
        default=50,
        description="Minimum competitor review count for the competitor momentum rule.",
    )


# Singleton instance: import this everywhere
settings = Settings()  # type: ignore[call-arg]
