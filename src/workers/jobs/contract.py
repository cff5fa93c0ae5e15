"""
Job contract — the message every worker job receives.

Delivery is at-least-once: a payload may arrive twice (or with a higher
``attempt``), and processing it again must leave the store unchanged.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_DATE_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class JobType(StrEnum):
    INGEST_SNAPSHOT = "ingest_snapshot"
    COMPETITOR_INSIGHTS = "competitor_insights"
    EVENT_MATCHING = "event_matching"
    EVENT_INSIGHTS = "event_insights"
    CONTENT_INSIGHTS = "content_insights"
    CROSS_SOURCE_INSIGHTS = "cross_source_insights"
    SEO_INSIGHTS = "seo_insights"
    GENERATE_INSIGHTS = "generate_insights"


# Insight stages each job type runs; ``generate_insights`` runs them all.
INSIGHT_STAGES: dict[JobType, list[str]] = {
    JobType.COMPETITOR_INSIGHTS: ["competitor_insights"],
    JobType.EVENT_INSIGHTS: ["event_insights"],
    JobType.CONTENT_INSIGHTS: ["content_insights"],
    JobType.CROSS_SOURCE_INSIGHTS: ["cross_source_insights"],
    JobType.SEO_INSIGHTS: ["seo_insights"],
    JobType.GENERATE_INSIGHTS: [
        "competitor_insights",
        "content_insights",
        "event_insights",
        "cross_source_insights",
        "seo_insights",
    ],
}


class JobPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    job_type: JobType
    location_id: str = Field(min_length=1)
    competitor_id: str | None = None
    date_key: str
    attempt: int = Field(default=1, ge=1)

    # ingest_snapshot only
    provider: str | None = None
    raw: dict[str, Any] | None = None

    # whose preferences score the insights; settings default when absent
    consumer_id: str | None = None

    @field_validator("date_key")
    @classmethod
    def _check_date_key(cls, value: str) -> str:
        if not _DATE_KEY.match(value):
            raise ValueError("date_key must be YYYY-MM-DD")
        date.fromisoformat(value)
        return value

    @model_validator(mode="after")
    def _check_ingest_fields(self) -> JobPayload:
        if self.job_type == JobType.INGEST_SNAPSHOT and (self.provider is None or self.raw is None):
            raise ValueError("ingest_snapshot requires provider and raw")
        return self


def previous_date_key(date_key: str, days: int = 1) -> str:
    """Calendar day ``days`` before ``date_key`` (pure date arithmetic, no DST)."""
    return (date.fromisoformat(date_key) - timedelta(days=days)).isoformat()


def today_key() -> str:
    return datetime.now(timezone.utc).date().isoformat()
