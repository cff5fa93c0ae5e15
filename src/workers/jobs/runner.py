"""
Job runner — executes one ``JobPayload`` against an ``IntelligenceStore``.

    ingest_snapshot      normalize provider payload → upsert snapshot
    event_matching       events × competitors → upsert match records
    *_insights           load t / t-1 / t-7 inputs → rule modules → score → upsert

Every write is an upsert on a natural key, so replaying a payload is a
no-op. Stage failures are logged and the remaining stages still write;
the job then ends as ``FAILED_PARTIAL``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from core.models import JobStatus
from core.store import IntelligenceStore, JobLogEntry, SnapshotRecord, StoredInsight
from workers.event_matcher.matcher import (
    EventMatchRecord,
    MatchableCompetitor,
    match_events_to_competitors,
)
from workers.insights.correlation_rules import CompetitorSeoSignal, CorrelationInputs, CorrelationThresholds
from workers.insights.generator import CompetitorProfileInput, InsightContext, generate_insights
from workers.insights.models import CompetitorContent, GeneratedInsight, collapse_by_key
from workers.insights.seo_rules import SeoCompetitor, SeoInputs
from workers.jobs.contract import INSIGHT_STAGES, JobPayload, JobType, previous_date_key
from workers.normalizer.registry import SnapshotKind, get_provider, load_snapshot
from workers.normalizer.text import website_domain
from workers.scoring.relevance import ScoredInsight, score_insights

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobResult:
    job_type: JobType
    status: JobStatus = JobStatus.SUCCESS
    items_processed: int = 0
    insights: list[StoredInsight] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def stage_failed(self, stage: str) -> None:
        self.status = JobStatus.FAILED_PARTIAL
        self.errors.append(stage)


# ── Snapshot helpers ──────────────────────────────────────────────────

async def _location_snapshot(
    store: IntelligenceStore, location_id: str, kind: SnapshotKind, on_or_before: str,
) -> tuple[Any | None, str | None]:
    record = await store.latest_location_snapshot(location_id, kind, on_or_before)
    if record is None:
        return None, None
    return load_snapshot(kind, record.raw_data), record.date_key


async def _location_snapshot_before(
    store: IntelligenceStore, location_id: str, kind: SnapshotKind, date_key: str | None,
) -> tuple[Any | None, str | None]:
    """The snapshot preceding the one captured on ``date_key``."""
    if date_key is None:
        return None, None
    return await _location_snapshot(store, location_id, kind, previous_date_key(date_key))


async def _competitor_snapshot(
    store: IntelligenceStore, competitor_id: str, kind: SnapshotKind, on_or_before: str,
) -> tuple[Any | None, str | None]:
    record = await store.latest_competitor_snapshot(competitor_id, kind, on_or_before)
    if record is None:
        return None, None
    return load_snapshot(kind, record.raw_data), record.date_key


async def _competitor_snapshot_on(
    store: IntelligenceStore, competitor_id: str, kind: SnapshotKind, date_key: str,
) -> Any | None:
    record = await store.get_competitor_snapshot(competitor_id, kind, date_key)
    return load_snapshot(kind, record.raw_data) if record else None


# ══════════════════════════════════════════════════════════════════════
# INGEST
# ══════════════════════════════════════════════════════════════════════

async def ingest_snapshot(store: IntelligenceStore, payload: JobPayload) -> SnapshotRecord:
    spec = get_provider(payload.provider or "")
    snapshot = spec.normalize(payload.raw)
    record = SnapshotRecord(
        entity_id=payload.competitor_id or payload.location_id,
        provider=str(spec.kind),
        date_key=payload.date_key,
        raw_data=snapshot.to_dict(),
        diff_hash=spec.diff_hash(snapshot),
    )
    if payload.competitor_id:
        await store.upsert_competitor_snapshot(record)
    else:
        await store.upsert_location_snapshot(record)
    logger.info(
        "Stored %s snapshot for %s %s on %s (hash %s)",
        spec.kind, "competitor" if payload.competitor_id else "location",
        record.entity_id, record.date_key, record.diff_hash[:12],
    )
    return record


# ══════════════════════════════════════════════════════════════════════
# EVENT MATCHING
# ══════════════════════════════════════════════════════════════════════

async def run_event_matching(store: IntelligenceStore, location_id: str, date_key: str) -> list[EventMatchRecord]:
    events, _ = await _location_snapshot(store, location_id, SnapshotKind.EVENTS, date_key)
    if events is None:
        logger.debug("No events snapshot for location %s up to %s", location_id, date_key)
        return []
    competitors = [
        MatchableCompetitor(id=c.id, name=c.name, address=c.address, website=c.website)
        for c in await store.list_competitors(location_id)
    ]
    matches = match_events_to_competitors(
        events.events, competitors, location_id=location_id, date_key=date_key,
    )
    await store.upsert_event_matches(matches)
    return matches


# ══════════════════════════════════════════════════════════════════════
# INSIGHT CONTEXT
# ══════════════════════════════════════════════════════════════════════

async def _load_profiles(store: IntelligenceStore, ctx: InsightContext, competitors: list) -> None:
    yesterday = previous_date_key(ctx.date_key, 1)
    last_week = previous_date_key(ctx.date_key, 7)
    for comp in competitors:
        ctx.profiles.append(CompetitorProfileInput(
            competitor_id=comp.id,
            competitor_name=comp.name,
            current=await _competitor_snapshot_on(store, comp.id, SnapshotKind.PROFILE, ctx.date_key),
            previous=await _competitor_snapshot_on(store, comp.id, SnapshotKind.PROFILE, yesterday),
            weekly=await _competitor_snapshot_on(store, comp.id, SnapshotKind.PROFILE, last_week),
            previous_date_key=yesterday,
        ))


async def _load_content(store: IntelligenceStore, ctx: InsightContext, competitors: list) -> None:
    ctx.location_menu, menu_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.MENU, ctx.date_key)
    ctx.previous_location_menu, _ = await _location_snapshot_before(store, ctx.location_id, SnapshotKind.MENU, menu_day)
    ctx.location_site, _ = await _location_snapshot(store, ctx.location_id, SnapshotKind.SITE_CONTENT, ctx.date_key)
    for comp in competitors:
        menu, _ = await _competitor_snapshot(store, comp.id, SnapshotKind.MENU, ctx.date_key)
        site, _ = await _competitor_snapshot(store, comp.id, SnapshotKind.SITE_CONTENT, ctx.date_key)
        if menu is None and site is None:
            continue
        ctx.competitor_content.append(CompetitorContent(
            competitor_id=comp.id,
            competitor_name=comp.name,
            menu=menu,
            site_content=site,
        ))


async def _load_events(store: IntelligenceStore, ctx: InsightContext) -> None:
    ctx.events, events_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.EVENTS, ctx.date_key)
    ctx.previous_events, previous_day = await _location_snapshot_before(
        store, ctx.location_id, SnapshotKind.EVENTS, events_day,
    )
    ctx.matches = await store.list_event_matches(ctx.location_id, ctx.date_key)
    if previous_day is not None:
        ctx.previous_matches = await store.list_event_matches(ctx.location_id, previous_day)


async def _load_correlation(store: IntelligenceStore, ctx: InsightContext, competitors: list) -> None:
    traffic, _ = await _location_snapshot(store, ctx.location_id, SnapshotKind.TRAFFIC_HISTORY, ctx.date_key)
    events = ctx.events
    if events is None:
        events, _ = await _location_snapshot(store, ctx.location_id, SnapshotKind.EVENTS, ctx.date_key)
    backlinks, backlinks_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.BACKLINKS, ctx.date_key)
    previous_backlinks, _ = await _location_snapshot_before(
        store, ctx.location_id, SnapshotKind.BACKLINKS, backlinks_day,
    )

    signals: list[CompetitorSeoSignal] = []
    for comp in competitors:
        rank, rank_day = await _competitor_snapshot(store, comp.id, SnapshotKind.DOMAIN_RANK, ctx.date_key)
        previous_rank = None
        if rank_day is not None:
            previous_rank, _ = await _competitor_snapshot(
                store, comp.id, SnapshotKind.DOMAIN_RANK, previous_date_key(rank_day),
            )
        profile, _ = await _competitor_snapshot(store, comp.id, SnapshotKind.PROFILE, ctx.date_key)
        signals.append(CompetitorSeoSignal(
            competitor_id=comp.id,
            competitor_name=comp.name,
            current_rank=rank,
            previous_rank=previous_rank,
            review_count=profile.profile.review_count if profile else None,
        ))

    ctx.correlation = CorrelationInputs(
        traffic=traffic,
        events=events,
        current_backlinks=backlinks,
        previous_backlinks=previous_backlinks,
        competitors=signals,
    )


async def _load_seo(store: IntelligenceStore, ctx: InsightContext, competitors: list) -> None:
    location = await store.get_location(ctx.location_id)
    rank, rank_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.DOMAIN_RANK, ctx.date_key)
    previous_rank, _ = await _location_snapshot_before(store, ctx.location_id, SnapshotKind.DOMAIN_RANK, rank_day)
    serp, serp_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.SERP_RANKINGS, ctx.date_key)
    previous_serp, _ = await _location_snapshot_before(store, ctx.location_id, SnapshotKind.SERP_RANKINGS, serp_day)
    ads, ads_day = await _location_snapshot(store, ctx.location_id, SnapshotKind.ADS, ctx.date_key)
    previous_ads, _ = await _location_snapshot_before(store, ctx.location_id, SnapshotKind.ADS, ads_day)

    seo_competitors: list[SeoCompetitor] = []
    for comp in competitors:
        intersection, day = await _competitor_snapshot(store, comp.id, SnapshotKind.KEYWORD_INTERSECTION, ctx.date_key)
        previous_intersection = None
        if day is not None:
            previous_intersection, _ = await _competitor_snapshot(
                store, comp.id, SnapshotKind.KEYWORD_INTERSECTION, previous_date_key(day),
            )
        seo_competitors.append(SeoCompetitor(
            competitor_id=comp.id,
            name=comp.name,
            domain=website_domain(comp.website),
            intersection=intersection,
            previous_intersection=previous_intersection,
        ))

    ctx.seo = SeoInputs(
        location_name=location.name if location else "Your location",
        location_domain=website_domain(location.website) if location else None,
        current_rank=rank,
        previous_rank=previous_rank,
        serp=serp,
        previous_serp=previous_serp,
        ads=ads,
        previous_ads=previous_ads,
        competitors=seo_competitors,
    )


async def build_context(
    store: IntelligenceStore,
    location_id: str,
    date_key: str,
    stages: list[str],
    *,
    thresholds: CorrelationThresholds | None = None,
    result: JobResult | None = None,
) -> InsightContext:
    """Load only what ``stages`` read; a failing loader leaves its inputs empty."""
    ctx = InsightContext(
        location_id=location_id,
        date_key=date_key,
        thresholds=thresholds or CorrelationThresholds(),
    )
    competitors = await store.list_competitors(location_id)

    loaders = {
        "competitor_insights": lambda: _load_profiles(store, ctx, competitors),
        "content_insights": lambda: _load_content(store, ctx, competitors),
        "event_insights": lambda: _load_events(store, ctx),
        "cross_source_insights": lambda: _load_correlation(store, ctx, competitors),
        "seo_insights": lambda: _load_seo(store, ctx, competitors),
    }
    for stage in stages:
        try:
            await loaders[stage]()
        except Exception:
            logger.exception("Loading inputs for %s failed (location %s, %s)", stage, location_id, date_key)
            if result is not None:
                result.stage_failed(stage)
    return ctx


# ══════════════════════════════════════════════════════════════════════
# SCORE + STORE
# ══════════════════════════════════════════════════════════════════════

def to_stored(location_id: str, date_key: str, scored: ScoredInsight) -> StoredInsight:
    insight: GeneratedInsight = scored.insight
    payload = insight.to_payload()
    return StoredInsight(
        location_id=location_id,
        competitor_id=insight.competitor_id,
        date_key=date_key,
        insight_type=payload["insight_type"],
        title=payload["title"],
        summary=payload["summary"],
        confidence=payload["confidence"],
        severity=payload["severity"],
        evidence=payload["evidence"],
        recommendations=payload["recommendations"],
        relevance_score=scored.relevance_score,
        urgency=str(scored.urgency),
        suppressed=scored.suppressed,
    )


async def score_and_store(
    store: IntelligenceStore,
    location_id: str,
    date_key: str,
    insights: list[GeneratedInsight],
    consumer_id: str,
) -> list[StoredInsight]:
    unique = collapse_by_key(insights)
    preferences = await store.list_preferences(consumer_id)
    stored = [to_stored(location_id, date_key, s) for s in score_insights(unique, preferences)]
    await store.upsert_insights(stored)
    return stored


# ══════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ══════════════════════════════════════════════════════════════════════

async def process_job(
    store: IntelligenceStore,
    payload: JobPayload,
    *,
    consumer_id: str = "default",
    thresholds: CorrelationThresholds | None = None,
) -> JobResult:
    started_at = datetime.now(timezone.utc)
    result = JobResult(job_type=payload.job_type)
    consumer = payload.consumer_id or consumer_id

    try:
        if payload.job_type == JobType.INGEST_SNAPSHOT:
            await ingest_snapshot(store, payload)
            result.items_processed = 1

        elif payload.job_type == JobType.EVENT_MATCHING:
            matches = await run_event_matching(store, payload.location_id, payload.date_key)
            result.items_processed = len(matches)

        else:
            stages = INSIGHT_STAGES[payload.job_type]
            if "event_insights" in stages and payload.job_type == JobType.GENERATE_INSIGHTS:
                try:
                    await run_event_matching(store, payload.location_id, payload.date_key)
                except Exception:
                    logger.exception(
                        "Event matching failed for location %s on %s", payload.location_id, payload.date_key,
                    )
                    result.stage_failed("event_matching")

            ctx = await build_context(
                store, payload.location_id, payload.date_key, stages,
                thresholds=thresholds, result=result,
            )
            generated = generate_insights(ctx, stages)
            result.insights = await score_and_store(
                store, payload.location_id, payload.date_key, generated, consumer,
            )
            result.items_processed = len(result.insights)

    except Exception as exc:
        result.status = JobStatus.FAILED
        result.errors.append(str(exc))
        logger.exception(
            "Job %s failed for location %s on %s (attempt %d)",
            payload.job_type, payload.location_id, payload.date_key, payload.attempt,
        )
        await _log(store, payload, result, started_at)
        raise

    logger.info(
        "Job %s for location %s on %s: %s, %d items",
        payload.job_type, payload.location_id, payload.date_key, result.status.value, result.items_processed,
    )
    await _log(store, payload, result, started_at)
    return result


async def _log(store: IntelligenceStore, payload: JobPayload, result: JobResult, started_at: datetime) -> None:
    await store.log_job(JobLogEntry(
        job_type=str(payload.job_type),
        status=result.status,
        location_id=payload.location_id,
        competitor_id=payload.competitor_id,
        date_key=payload.date_key,
        attempt=payload.attempt,
        items_processed=result.items_processed,
        error_message="; ".join(result.errors) or None,
        started_at=started_at,
        ended_at=datetime.now(timezone.utc),
    ))
