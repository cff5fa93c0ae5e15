"""
Insight generation orchestrator.

Runs every registered rule module over one ``(location, date)`` context.
Modules are independent: an exception in one is logged with the entity
and date it was working on, and the others still contribute their
insights.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from workers.event_matcher.matcher import EventMatchRecord
from workers.insights.content_rules import generate_content_insights
from workers.insights.correlation_rules import (
    CorrelationInputs,
    CorrelationThresholds,
    generate_correlation_insights,
)
from workers.insights.event_rules import generate_event_insights
from workers.insights.menu_rules import generate_menu_insights
from workers.insights.models import CompetitorContent, GeneratedInsight
from workers.insights.profile_rules import build_profile_insights
from workers.insights.seo_rules import SeoInputs, generate_seo_insights
from workers.normalizer.models import (
    MenuSnapshot,
    NormalizedEventsSnapshot,
    NormalizedSnapshot,
    SiteContentSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompetitorProfileInput:
    competitor_id: str
    competitor_name: str | None
    current: NormalizedSnapshot | None = None
    previous: NormalizedSnapshot | None = None
    weekly: NormalizedSnapshot | None = None
    previous_date_key: str | None = None


@dataclass(slots=True)
class InsightContext:
    """Everything the rule modules may read for one location on one day."""

    location_id: str
    date_key: str
    profiles: list[CompetitorProfileInput] = field(default_factory=list)
    location_menu: MenuSnapshot | None = None
    previous_location_menu: MenuSnapshot | None = None
    location_site: SiteContentSnapshot | None = None
    competitor_content: list[CompetitorContent] = field(default_factory=list)
    events: NormalizedEventsSnapshot | None = None
    previous_events: NormalizedEventsSnapshot | None = None
    matches: list[EventMatchRecord] = field(default_factory=list)
    previous_matches: list[EventMatchRecord] | None = None
    correlation: CorrelationInputs = field(default_factory=CorrelationInputs)
    thresholds: CorrelationThresholds = field(default_factory=CorrelationThresholds)
    seo: SeoInputs = field(default_factory=SeoInputs)


# ── Modules ───────────────────────────────────────────────────────────

def competitor_module(ctx: InsightContext) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []
    for profile in sorted(ctx.profiles, key=lambda p: p.competitor_id):
        try:
            insights.extend(build_profile_insights(
                competitor_id=profile.competitor_id,
                competitor_name=profile.competitor_name,
                date_key=ctx.date_key,
                current=profile.current,
                previous=profile.previous,
                weekly=profile.weekly,
                previous_date_key=profile.previous_date_key,
            ))
        except Exception:
            logger.exception(
                "Profile rules failed for competitor %s (location %s, %s)",
                profile.competitor_id, ctx.location_id, ctx.date_key,
            )
    return insights


def content_module(ctx: InsightContext) -> list[GeneratedInsight]:
    return [
        *generate_menu_insights(ctx.location_menu, ctx.competitor_content, ctx.previous_location_menu),
        *generate_content_insights(ctx.location_site, ctx.competitor_content),
    ]


def event_module(ctx: InsightContext) -> list[GeneratedInsight]:
    if ctx.events is None:
        logger.debug("No events snapshot for location %s on %s", ctx.location_id, ctx.date_key)
        return []
    return generate_event_insights(ctx.events, ctx.previous_events, ctx.matches, ctx.previous_matches)


def cross_source_module(ctx: InsightContext) -> list[GeneratedInsight]:
    return generate_correlation_insights(ctx.correlation, ctx.thresholds)


def seo_module(ctx: InsightContext) -> list[GeneratedInsight]:
    return generate_seo_insights(ctx.seo)


InsightModule = Callable[[InsightContext], list[GeneratedInsight]]

INSIGHT_MODULES: dict[str, InsightModule] = {
    "competitor_insights": competitor_module,
    "content_insights": content_module,
    "event_insights": event_module,
    "cross_source_insights": cross_source_module,
    "seo_insights": seo_module,
}


# ── Orchestration ─────────────────────────────────────────────────────

def generate_insights(
    ctx: InsightContext,
    modules: list[str] | None = None,
) -> list[GeneratedInsight]:
    """Run the named modules (all of them by default) in registry order."""
    unknown = set(modules or ()) - set(INSIGHT_MODULES)
    if unknown:
        raise ValueError(f"Unknown insight modules: {sorted(unknown)}")
    insights: list[GeneratedInsight] = []
    for name, module in INSIGHT_MODULES.items():
        if modules and name not in modules:
            continue
        try:
            produced = module(ctx)
        except Exception:
            logger.exception(
                "Insight module %s failed for location %s on %s",
                name, ctx.location_id, ctx.date_key,
            )
            continue
        logger.debug("Module %s produced %d insights", name, len(produced))
        insights.extend(produced)
    return insights
