"""
Cross-source correlation rules.

Each rule joins two independent sources and only fires when every input
it reads is present; partial data skips the rule without emitting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from workers.insights.models import (
    AuthorityRiskEvidence,
    CompetitorMomentumEvidence,
    EventSeoOpportunityEvidence,
    GeneratedInsight,
    InsightType,
    Recommendation,
    Severity,
)
from workers.normalizer.models import (
    BacklinkSummary,
    Confidence,
    DomainRankSnapshot,
    NormalizedEventsSnapshot,
    TrafficHistory,
    TrafficPoint,
)
from workers.normalizer.text import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CorrelationThresholds:
    traffic_growth_pct: float = 5.0
    traffic_decline_points: int = 3
    keyword_gain: int = 10
    min_review_count: int = 50

    @classmethod
    def from_settings(cls, settings: Any) -> CorrelationThresholds:
        return cls(
            traffic_growth_pct=settings.correlation_traffic_growth_pct,
            traffic_decline_points=settings.correlation_traffic_decline_points,
            keyword_gain=settings.correlation_keyword_gain,
            min_review_count=settings.correlation_min_review_count,
        )


@dataclass(frozen=True, slots=True)
class CompetitorSeoSignal:
    competitor_id: str
    competitor_name: str
    current_rank: DomainRankSnapshot | None = None
    previous_rank: DomainRankSnapshot | None = None
    review_count: int | None = None


@dataclass(frozen=True, slots=True)
class CorrelationInputs:
    traffic: TrafficHistory | None = None
    events: NormalizedEventsSnapshot | None = None
    current_backlinks: BacklinkSummary | None = None
    previous_backlinks: BacklinkSummary | None = None
    competitors: list[CompetitorSeoSignal] = field(default_factory=list)


def _measured_points(traffic: TrafficHistory | None) -> list[TrafficPoint]:
    if traffic is None:
        return []
    return [p for p in traffic.history if p.organic_etv is not None]


# ── Rules ─────────────────────────────────────────────────────────────

def event_seo_opportunity(
    inputs: CorrelationInputs,
    thresholds: CorrelationThresholds,
) -> list[GeneratedInsight]:
    points = _measured_points(inputs.traffic)
    events = inputs.events.events if inputs.events else []
    if len(points) < 2 or not events:
        return []

    prev, last = points[-2], points[-1]
    if last.organic_etv <= prev.organic_etv:
        return []
    pct = (last.organic_etv - prev.organic_etv) / (prev.organic_etv or 1) * 100
    if pct < thresholds.traffic_growth_pct:
        return []

    growth = int(round_half_up(pct, 0))
    return [GeneratedInsight(
        insight_type=InsightType.EVENT_SEO_OPPORTUNITY,
        title="Event-driven traffic opportunity detected",
        summary=f"Organic traffic grew {growth}% while {len(events)} local events are upcoming.",
        confidence=Confidence.MEDIUM,
        severity=Severity.INFO,
        evidence=EventSeoOpportunityEvidence(
            traffic_growth_pct=growth,
            previous_etv=prev.organic_etv,
            current_etv=last.organic_etv,
            upcoming_event_count=len(events),
            upcoming_events=[e.title or "Untitled" for e in events[:3]],
        ),
        recommendations=[
            Recommendation(
                title="Create event-related content",
                rationale="Capitalize on event-related search demand.",
            ),
        ],
    )]


def is_monotonic_decline(points: list[TrafficPoint], length: int) -> bool:
    """The last ``length`` points strictly decrease one after another."""
    if length < 2 or len(points) < length:
        return False
    tail = [p.organic_etv for p in points[-length:]]
    return all(b < a for a, b in zip(tail, tail[1:]))


def authority_risk(
    inputs: CorrelationInputs,
    thresholds: CorrelationThresholds,
) -> list[GeneratedInsight]:
    current = inputs.current_backlinks.referring_domains if inputs.current_backlinks else None
    previous = inputs.previous_backlinks.referring_domains if inputs.previous_backlinks else None
    if current is None or previous is None or current >= previous:
        return []

    points = _measured_points(inputs.traffic)
    if not is_monotonic_decline(points, thresholds.traffic_decline_points):
        return []

    tail = points[-thresholds.traffic_decline_points:]
    lost = previous - current
    return [GeneratedInsight(
        insight_type=InsightType.AUTHORITY_RISK,
        title="Search authority is eroding",
        summary=(
            f"Referring domains fell from {previous} to {current} while organic traffic declined "
            f"for {len(tail)} consecutive months."
        ),
        confidence=Confidence.HIGH,
        severity=Severity.CRITICAL,
        evidence=AuthorityRiskEvidence(
            previous_referring_domains=previous,
            current_referring_domains=current,
            traffic_points=[{"date": p.date, "organic_etv": p.organic_etv} for p in tail],
        ),
        recommendations=[
            Recommendation(
                title="Audit lost backlinks",
                rationale=f"{lost} referring domain(s) dropped. Reach out to recover valuable links.",
            ),
            Recommendation(
                title="Refresh top landing pages",
                rationale="Sustained traffic loss alongside link loss usually precedes ranking drops.",
            ),
        ],
    )]


def competitor_momentum(
    inputs: CorrelationInputs,
    thresholds: CorrelationThresholds,
) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []
    for signal in sorted(inputs.competitors, key=lambda s: s.competitor_id):
        if signal.current_rank is None or signal.previous_rank is None or signal.review_count is None:
            continue
        current = signal.current_rank.organic.ranked_keywords
        previous = signal.previous_rank.organic.ranked_keywords
        gain = current - previous
        if gain < thresholds.keyword_gain or signal.review_count < thresholds.min_review_count:
            continue
        name = signal.competitor_name
        insights.append(GeneratedInsight(
            insight_type=InsightType.COMPETITOR_MOMENTUM,
            title=f"{name} is gaining momentum",
            summary=(
                f"{name} gained {gain} ranked keywords and has {signal.review_count} reviews. "
                "Strong search growth backed by social proof can pull customers away."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.WARNING,
            evidence=CompetitorMomentumEvidence(
                competitor_id=signal.competitor_id,
                competitor_name=name,
                previous_keywords=previous,
                current_keywords=current,
                keyword_gain=gain,
                review_count=signal.review_count,
            ),
            recommendations=[
                Recommendation(
                    title="Review the keywords they are winning",
                    rationale=f"Identify which searches {name} now ranks for and cover them on your site.",
                ),
            ],
            competitor_id=signal.competitor_id,
        ))
    return insights


CORRELATION_RULES = [
    event_seo_opportunity,
    authority_risk,
    competitor_momentum,
]


def generate_correlation_insights(
    inputs: CorrelationInputs,
    thresholds: CorrelationThresholds | None = None,
) -> list[GeneratedInsight]:
    thresholds = thresholds or CorrelationThresholds()
    insights: list[GeneratedInsight] = []
    for rule in CORRELATION_RULES:
        produced = rule(inputs, thresholds)
        if not produced:
            logger.debug("Correlation rule %s did not fire", rule.__name__)
        insights.extend(produced)
    return insights
