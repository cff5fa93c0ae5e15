"""
Briefing Engine — priority briefing for one location and day.

Takes scored insights and renders the top-N non-suppressed ones as a
Markdown digest and a structured JSON summary. Rendered briefings are
kept in a ``BriefingCache`` per ``(location, date, consumer, version)``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from core.store import IntelligenceStore, StoredInsight
from workers.briefing.cache import BriefingCache, briefing_cache_key
from workers.scoring.relevance import SOURCE_LABELS, ScoredInsight, Urgency, score_insights

logger = logging.getLogger(__name__)

_URGENCY_RANK = {Urgency.CRITICAL: 3, Urgency.WARNING: 2, Urgency.INFO: 1}

_URGENCY_EMOJI = {Urgency.CRITICAL: "🔴", Urgency.WARNING: "🟠", Urgency.INFO: "🔵"}


@dataclass(frozen=True, slots=True)
class PriorityItem:
    rank: int
    insight_type: str
    title: str
    summary: str
    urgency: str
    relevance_score: int
    source: str
    competitor_id: str | None
    action: str | None


@dataclass(frozen=True, slots=True)
class PriorityBriefing:
    location_id: str
    date_key: str
    items: list[PriorityItem]
    content_markdown: str
    content_json: dict[str, Any]


def _first_action(insight: Any) -> str | None:
    for rec in insight.recommendations or []:
        title = rec.get("title") if isinstance(rec, dict) else getattr(rec, "title", None)
        if title:
            return title
    return None


def _priority_order(scored: ScoredInsight) -> tuple:
    return (
        -scored.relevance_score,
        -_URGENCY_RANK[scored.urgency],
        str(scored.insight.insight_type),
        scored.insight.title,
    )


def select_priorities(scored: list[ScoredInsight], limit: int = 5) -> list[PriorityItem]:
    """Top ``limit`` non-suppressed insights, highest score first."""
    visible = sorted((s for s in scored if not s.suppressed), key=_priority_order)
    return [
        PriorityItem(
            rank=rank,
            insight_type=str(s.insight.insight_type),
            title=s.insight.title,
            summary=s.insight.summary,
            urgency=str(s.urgency),
            relevance_score=s.relevance_score,
            source=SOURCE_LABELS[s.source_category],
            competitor_id=getattr(s.insight, "competitor_id", None),
            action=_first_action(s.insight),
        )
        for rank, s in enumerate(visible[:limit], start=1)
    ]


def build_priority_briefing(
    scored: list[ScoredInsight],
    *,
    location_id: str,
    date_key: str,
    limit: int = 5,
) -> PriorityBriefing:
    items = select_priorities(scored, limit)
    return PriorityBriefing(
        location_id=location_id,
        date_key=date_key,
        items=items,
        content_markdown=_build_markdown(date_key, items, total=len(scored)),
        content_json=_build_json(date_key, items, scored),
    )


def _build_markdown(date_key: str, items: list[PriorityItem], total: int) -> str:
    lines = [f"# 📊 Priority Briefing — {date_key}", ""]

    if not items:
        lines.append("_No actionable insights for this day._")
        return "\n".join(lines)

    critical = sum(1 for i in items if i.urgency == Urgency.CRITICAL)
    lines.append(f"**Top {len(items)} of {total} insights**")
    if critical:
        lines.append(f"🚨 **{critical} critical**")
    lines.append("")

    for item in items:
        emoji = _URGENCY_EMOJI.get(Urgency(item.urgency), "⚪")
        lines.append(f"{item.rank}. {emoji} **{item.title}** ({item.source}, score {item.relevance_score})")
        lines.append(f"   {item.summary}")
        if item.action:
            lines.append(f"   → {item.action}")
    lines.append("")

    return "\n".join(lines)


def _build_json(date_key: str, items: list[PriorityItem], scored: list[ScoredInsight]) -> dict[str, Any]:
    return {
        "date": date_key,
        "total_insights": len(scored),
        "suppressed_count": sum(1 for s in scored if s.suppressed),
        "critical_count": sum(1 for s in scored if s.urgency == Urgency.CRITICAL and not s.suppressed),
        "items": [asdict(i) for i in items],
    }


async def get_priority_briefing(
    store: IntelligenceStore,
    cache: BriefingCache,
    *,
    location_id: str,
    date_key: str,
    consumer_id: str,
    limit: int = 5,
) -> PriorityBriefing:
    """
    Cached briefing; on a miss, rescore the stored insights with the
    consumer's weights. The cache key includes the store's briefing version,
    so rewritten insights or moved weights are never served from cache.
    """
    version = await store.briefing_version(location_id, date_key, consumer_id)
    key = briefing_cache_key(location_id, date_key, consumer_id, version)
    cached = cache.get(key)
    if cached is not None:
        return cached

    insights: list[StoredInsight] = await store.list_insights(location_id, date_key)
    preferences = await store.list_preferences(consumer_id)
    briefing = build_priority_briefing(
        score_insights(insights, preferences),
        location_id=location_id,
        date_key=date_key,
        limit=limit,
    )
    cache.set(key, briefing)
    logger.info(
        "Built priority briefing for location %s on %s: %d items",
        location_id, date_key, len(briefing.items),
    )
    return briefing
