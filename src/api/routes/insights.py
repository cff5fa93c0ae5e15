"""Insight API — ranked feed, feedback and priority briefing per location."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from api.dependencies import get_briefing_cache, get_store
from core.config import settings
from core.store import IntelligenceStore
from workers.briefing.cache import BriefingCache
from workers.briefing.generator import get_priority_briefing
from workers.jobs.contract import INSIGHT_STAGES, JobPayload, today_key
from workers.jobs.runner import process_job
from workers.insights.correlation_rules import CorrelationThresholds
from workers.scoring.feedback import Feedback
from workers.scoring.relevance import score_insights

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/locations", tags=["insights"])


# ── Request / response schemas ────────────────────────────────────────

class InsightOut(BaseModel):
    insight_type: str
    competitor_id: str | None
    date_key: str
    title: str
    summary: str
    confidence: str
    severity: str
    relevance_score: int
    urgency: str
    suppressed: bool
    source: str
    status: str
    user_feedback: str | None
    evidence: dict[str, Any]
    recommendations: list[dict[str, Any]]


class FeedbackIn(BaseModel):
    date_key: str
    insight_type: str
    competitor_id: str | None = None
    feedback: Feedback
    consumer_id: str | None = None


class PreferenceOut(BaseModel):
    consumer_id: str
    insight_type: str
    weight: float
    useful_count: int
    dismissed_count: int
    suppressed: bool


class BriefingOut(BaseModel):
    location_id: str
    date_key: str
    content_markdown: str
    content_json: dict[str, Any]


class JobRunOut(BaseModel):
    status: str
    items_processed: int
    errors: list[str] = Field(default_factory=list)


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("/{location_id}/insights", response_model=list[InsightOut])
async def list_insights(
    location_id: str,
    date_key: str | None = None,
    consumer_id: str | None = None,
    include_suppressed: bool = False,
    store: IntelligenceStore = Depends(get_store),
):
    """Insights for one day, rescored with the consumer's weights, best first."""
    day = date_key or today_key()
    insights = await store.list_insights(location_id, day)
    preferences = await store.list_preferences(consumer_id or settings.default_consumer_id)
    scored = sorted(
        score_insights(insights, preferences),
        key=lambda s: (-s.relevance_score, s.insight.insight_type, s.insight.competitor_id or ""),
    )
    return [
        InsightOut(
            **{k: v for k, v in s.insight.to_dict().items() if k not in ("relevance_score", "urgency", "suppressed")},
            relevance_score=s.relevance_score,
            urgency=str(s.urgency),
            suppressed=s.suppressed,
            source=str(s.source_category),
        )
        for s in scored
        if include_suppressed or not s.suppressed
    ]


@router.post("/{location_id}/insights/feedback", response_model=PreferenceOut)
async def submit_feedback(
    location_id: str,
    body: FeedbackIn,
    store: IntelligenceStore = Depends(get_store),
    cache: BriefingCache = Depends(get_briefing_cache),
):
    """Record a vote on one insight and move the consumer's weight for its type."""
    found = await store.record_insight_feedback(
        location_id, body.competitor_id, body.date_key, body.insight_type, body.feedback,
    )
    if not found:
        raise HTTPException(status_code=404, detail="Insight not found")

    consumer = body.consumer_id or settings.default_consumer_id
    updated = await store.record_preference_feedback(consumer, body.insight_type, body.feedback)

    # weights feed every briefing for this consumer
    cache.invalidate()
    logger.info(
        "Feedback %s on %s for consumer %s: weight %.2f",
        body.feedback, body.insight_type, consumer, updated.weight,
    )
    return PreferenceOut(
        consumer_id=updated.consumer_id,
        insight_type=updated.insight_type,
        weight=updated.weight,
        useful_count=updated.useful_count,
        dismissed_count=updated.dismissed_count,
        suppressed=updated.suppressed,
    )


@router.get("/{location_id}/briefing", response_model=BriefingOut)
async def priority_briefing(
    location_id: str,
    date_key: str | None = None,
    consumer_id: str | None = None,
    limit: int = Query(default=settings.briefing_limit, ge=1, le=20),
    store: IntelligenceStore = Depends(get_store),
    cache: BriefingCache = Depends(get_briefing_cache),
):
    briefing = await get_priority_briefing(
        store,
        cache,
        location_id=location_id,
        date_key=date_key or today_key(),
        consumer_id=consumer_id or settings.default_consumer_id,
        limit=limit,
    )
    return BriefingOut(
        location_id=briefing.location_id,
        date_key=briefing.date_key,
        content_markdown=briefing.content_markdown,
        content_json=briefing.content_json,
    )


@router.post("/{location_id}/jobs", response_model=JobRunOut)
async def run_job_now(
    location_id: str,
    payload: dict[str, Any],
    store: IntelligenceStore = Depends(get_store),
    cache: BriefingCache = Depends(get_briefing_cache),
):
    """Run one job inline (manual trigger); same contract as the worker."""
    try:
        job = JobPayload.model_validate({**payload, "location_id": location_id})
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc
    result = await process_job(
        store,
        job,
        consumer_id=settings.default_consumer_id,
        thresholds=CorrelationThresholds.from_settings(settings),
    )
    if job.job_type in INSIGHT_STAGES:
        cache.invalidate(f"{location_id}:{job.date_key}:")
    return JobRunOut(
        status=result.status.value,
        items_processed=result.items_processed,
        errors=result.errors,
    )
