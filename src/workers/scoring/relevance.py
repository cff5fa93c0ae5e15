"""
Relevance Scoring — pure functions, no store access.

    score   = clamp(0, 100, round(severity_base × confidence_multiplier × weight))
    urgency = critical ≥ 75 > warning ≥ 45 > info

``weight`` is the consumer's learned preference for the insight type
(see ``workers.scoring.feedback``); unknown severities score as ``info``
and unknown confidences as ``low``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from workers.normalizer.text import round_half_up
from workers.scoring.feedback import DEFAULT_WEIGHT, InsightPreference, should_suppress

SEVERITY_BASE: dict[str, int] = {
    "critical": 90,
    "warning": 60,
    "info": 30,
}

CONFIDENCE_MULTIPLIER: dict[str, float] = {
    "high": 1.0,
    "medium": 0.8,
    "low": 0.5,
}

CRITICAL_AT = 75
WARNING_AT = 45


class Urgency(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class SourceCategory(StrEnum):
    COMPETITORS = "competitors"
    EVENTS = "events"
    SEO = "seo"
    CONTENT = "content"


SOURCE_LABELS: dict[SourceCategory, str] = {
    SourceCategory.COMPETITORS: "Google Business Profile",
    SourceCategory.EVENTS: "Local Events",
    SourceCategory.SEO: "Search Visibility",
    SourceCategory.CONTENT: "Website & Menu",
}


class Scorable(Protocol):
    insight_type: Any
    severity: Any
    confidence: Any


@dataclass(frozen=True, slots=True)
class ScoredInsight:
    insight: Any
    relevance_score: int
    urgency: Urgency
    suppressed: bool
    weight: float = DEFAULT_WEIGHT

    @property
    def source_category(self) -> SourceCategory:
        return source_category(str(self.insight.insight_type))


def compute_relevance_score(severity: str, confidence: str, weight: float = DEFAULT_WEIGHT) -> int:
    base = SEVERITY_BASE.get(str(severity), SEVERITY_BASE["info"])
    multiplier = CONFIDENCE_MULTIPLIER.get(str(confidence), CONFIDENCE_MULTIPLIER["low"])
    return int(min(100, max(0, round_half_up(base * multiplier * weight, 0))))


def urgency_level(score: int) -> Urgency:
    if score >= CRITICAL_AT:
        return Urgency.CRITICAL
    if score >= WARNING_AT:
        return Urgency.WARNING
    return Urgency.INFO


def source_category(insight_type: str) -> SourceCategory:
    if insight_type.startswith("events."):
        return SourceCategory.EVENTS
    if insight_type.startswith(("seo_", "cross_")):
        return SourceCategory.SEO
    if insight_type.startswith(("menu.", "content.")):
        return SourceCategory.CONTENT
    return SourceCategory.COMPETITORS


def score_insight(insight: Scorable, weight: float = DEFAULT_WEIGHT) -> ScoredInsight:
    score = compute_relevance_score(insight.severity, insight.confidence, weight)
    return ScoredInsight(
        insight=insight,
        relevance_score=score,
        urgency=urgency_level(score),
        suppressed=should_suppress(weight),
        weight=weight,
    )


def score_insights(
    insights: list[Any],
    preferences: list[InsightPreference],
) -> list[ScoredInsight]:
    """Score each insight with its type's weight; types without a preference weigh 1.0."""
    weights = {str(p.insight_type): p.weight for p in preferences}
    return [
        score_insight(insight, weights.get(str(insight.insight_type), DEFAULT_WEIGHT))
        for insight in insights
    ]
