"""
Insight envelope and per-type evidence.

Every generated insight shares one envelope (type, title, summary,
confidence, severity, recommendations) and carries an evidence dataclass
specific to its ``insight_type``. ``Evidence`` is the tagged union of all
of them; ``EVIDENCE_TYPES`` maps each insight type to the evidence class
it must carry.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from enum import StrEnum
from typing import Any

from workers.normalizer.models import (
    CONFIDENCE_RANK,
    Confidence,
    MenuSnapshot,
    NormalizedEvent,
    SiteContentSnapshot,
)

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 3,
    Severity.WARNING: 2,
    Severity.INFO: 1,
}


class InsightType(StrEnum):
    """Every insight the engine can emit."""

    # Profile (ratings / reviews / hours)
    BASELINE_SNAPSHOT = "baseline_snapshot"
    NO_SIGNIFICANT_CHANGE = "no_significant_change"
    RATING_CHANGE = "rating_change"
    REVIEW_VELOCITY = "review_velocity"
    HOURS_CHANGED = "hours_changed"
    WEEKLY_RATING_TREND = "weekly_rating_trend"
    WEEKLY_REVIEW_TREND = "weekly_review_trend"
    # Menu / pricing
    PRICE_POSITIONING_SHIFT = "menu.price_positioning_shift"
    CATERING_PRICE_GAP = "menu.catering_price_gap"
    CATEGORY_GAP = "menu.category_gap"
    SIGNATURE_ITEM_MISSING = "menu.signature_item_missing"
    PROMO_SIGNAL_DETECTED = "menu.promo_signal_detected"
    MENU_CHANGE_DETECTED = "menu.menu_change_detected"
    # Site content
    CONVERSION_FEATURE_GAP = "content.conversion_feature_gap"
    DELIVERY_PLATFORM_GAP = "content.delivery_platform_gap"
    # Events
    WEEKEND_DENSITY_SPIKE = "events.weekend_density_spike"
    UPCOMING_DENSE_DAY = "events.upcoming_dense_day"
    NEW_HIGH_SIGNAL_EVENT = "events.new_high_signal_event"
    COMPETITOR_HOSTING_EVENT = "events.competitor_hosting_event"
    COMPETITOR_EVENT_CADENCE_UP = "events.competitor_event_cadence_up"
    # Cross-source
    EVENT_SEO_OPPORTUNITY = "cross_event_seo_opportunity"
    AUTHORITY_RISK = "cross_authority_risk"
    COMPETITOR_MOMENTUM = "cross_competitor_momentum"
    # Search visibility
    SEO_ORGANIC_VISIBILITY_UP = "seo_organic_visibility_up"
    SEO_ORGANIC_VISIBILITY_DOWN = "seo_organic_visibility_down"
    SEO_KEYWORD_OPPORTUNITY_GAP = "seo_keyword_opportunity_gap"
    SEO_KEYWORD_WIN = "seo_keyword_win"
    SEO_COMPETITOR_OVERTAKE = "seo_competitor_overtake"
    SEO_PAID_VISIBILITY_CHANGE = "seo_paid_visibility_change"
    SEO_NEW_COMPETITOR_ADS = "seo_new_competitor_ads_detected"
    SEO_PAID_KEYWORD_OVERLAP_SPIKE = "seo_paid_keyword_overlap_spike"


@dataclass(frozen=True, slots=True)
class Recommendation:
    title: str
    rationale: str


# ══════════════════════════════════════════════════════════════════════
# EVIDENCE
# ══════════════════════════════════════════════════════════════════════

# ── Profile ───────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class BaselineEvidence:
    date_key: str
    field: str = "baseline"


@dataclass(frozen=True, slots=True)
class NoChangeEvidence:
    compared_with: str | None
    field: str = "snapshot"


@dataclass(frozen=True, slots=True)
class FieldDeltaEvidence:
    field: str
    delta: float
    before: float | int | None
    after: float | int | None
    window: str


@dataclass(frozen=True, slots=True)
class HoursChangedEvidence:
    before: dict[str, str]
    after: dict[str, str]
    field: str = "hours"


# ── Menu / content ────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class PricePositioningEvidence:
    competitor: str
    menu_type: str
    location_avg_price: float
    competitor_avg_price: float
    price_diff_pct: int
    location_item_count: int
    competitor_item_count: int


@dataclass(frozen=True, slots=True)
class CategoryGapEvidence:
    competitor: str
    missing_categories: list[str]


@dataclass(frozen=True, slots=True)
class SignatureItemEvidence:
    competitor: str
    unique_items: list[str]
    total_unique_count: int


@dataclass(frozen=True, slots=True)
class PromoSignalEvidence:
    competitor: str
    keyword: str


@dataclass(frozen=True, slots=True)
class MenuChangeEvidence:
    previous_item_count: int
    current_item_count: int
    delta: int
    added_items: list[str] = field(default_factory=list)
    removed_items: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ConversionGapEvidence:
    competitor: str
    missing_features: list[str]
    location_features: dict[str, Any]
    competitor_features: dict[str, Any]


@dataclass(frozen=True, slots=True)
class DeliveryGapEvidence:
    competitor: str
    missing_platforms: list[str]
    location_platforms: list[str]


# ── Events ────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class EventSummary:
    uid: str
    title: str | None
    start_datetime: str | None
    displayed_dates: str | None
    venue_name: str | None
    venue_address: str | None
    url: str | None

    @classmethod
    def of(cls, event: NormalizedEvent) -> EventSummary:
        return cls(
            uid=event.uid,
            title=event.title,
            start_datetime=event.start_datetime,
            displayed_dates=event.displayed_dates,
            venue_name=event.venue.name if event.venue else None,
            venue_address=event.venue.address if event.venue else None,
            url=event.url,
        )


@dataclass(frozen=True, slots=True)
class WeekendSpikeEvidence:
    current_weekend_count: int
    previous_weekend_count: int
    delta: int
    pct_change: float
    sample_events: list[EventSummary]


@dataclass(frozen=True, slots=True)
class DenseDayEvidence:
    date: str
    event_count: int
    sample_events: list[EventSummary]
    # dense days folded into this one (same natural key)
    collapsed_count: int = 1


@dataclass(frozen=True, slots=True)
class HighSignalEventEvidence:
    event: EventSummary
    matched_keywords: list[str]
    ticket_source_count: int
    is_new: bool = True
    collapsed_count: int = 1


@dataclass(frozen=True, slots=True)
class MatchedEventRef:
    event_uid: str
    event_title: str | None
    match_type: str
    confidence: str
    score: float


@dataclass(frozen=True, slots=True)
class CompetitorHostingEvidence:
    competitor_id: str
    competitor_name: str
    matched_events: list[MatchedEventRef]


@dataclass(frozen=True, slots=True)
class CadenceUpEvidence:
    competitor_id: str
    competitor_name: str
    current_count: int
    previous_count: int
    delta: int


# ── Cross-source ──────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class EventSeoOpportunityEvidence:
    traffic_growth_pct: int
    previous_etv: float
    current_etv: float
    upcoming_event_count: int
    upcoming_events: list[str]


@dataclass(frozen=True, slots=True)
class AuthorityRiskEvidence:
    previous_referring_domains: int
    current_referring_domains: int
    traffic_points: list[dict[str, Any]]


@dataclass(frozen=True, slots=True)
class CompetitorMomentumEvidence:
    competitor_id: str
    competitor_name: str
    previous_keywords: int
    current_keywords: int
    keyword_gain: int
    review_count: int



# ── Search visibility ────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class OrganicVisibilityEvidence:
    domain: str | None
    previous_etv: float
    current_etv: float
    etv_delta: float
    etv_pct_change: float | None
    previous_keywords: int
    current_keywords: int
    keyword_delta: int
    new_keywords: int
    lost_keywords: int


@dataclass(frozen=True, slots=True)
class GapKeyword:
    keyword: str
    search_volume: int
    cpc: float | None
    competitor_rank: int | None
    competitor_id: str | None


@dataclass(frozen=True, slots=True)
class KeywordGapEvidence:
    gap_keywords: list[GapKeyword]
    total_volume: int


@dataclass(frozen=True, slots=True)
class RankMove:
    keyword: str
    previous_rank: int
    current_rank: int


@dataclass(frozen=True, slots=True)
class KeywordWinEvidence:
    domain: str
    top_3: list[RankMove]
    top_10: list[RankMove]


@dataclass(frozen=True, slots=True)
class Overtake:
    keyword: str
    competitor_previous_rank: int
    competitor_current_rank: int
    your_previous_rank: int
    your_current_rank: int


@dataclass(frozen=True, slots=True)
class CompetitorOvertakeEvidence:
    competitor_id: str
    competitor_name: str
    competitor_domain: str
    keywords: list[Overtake]


@dataclass(frozen=True, slots=True)
class PaidVisibilityEvidence:
    domain: str | None
    previous_paid_etv: float
    current_paid_etv: float
    delta: float
    pct_change: float | None
    previous_paid_keywords: int
    current_paid_keywords: int


@dataclass(frozen=True, slots=True)
class AdSample:
    domain: str
    headline: str | None
    keyword: str


@dataclass(frozen=True, slots=True)
class NewCompetitorAdsEvidence:
    new_advertiser_domains: list[str]
    sample_ads: list[AdSample]


@dataclass(frozen=True, slots=True)
class KeywordOverlapEvidence:
    previous_overlap: int
    current_overlap: int
    delta: int


Evidence = (
    BaselineEvidence
    | NoChangeEvidence
    | FieldDeltaEvidence
    | HoursChangedEvidence
    | PricePositioningEvidence
    | CategoryGapEvidence
    | SignatureItemEvidence
    | PromoSignalEvidence
    | MenuChangeEvidence
    | ConversionGapEvidence
    | DeliveryGapEvidence
    | WeekendSpikeEvidence
    | DenseDayEvidence
    | HighSignalEventEvidence
    | CompetitorHostingEvidence
    | CadenceUpEvidence
    | EventSeoOpportunityEvidence
    | AuthorityRiskEvidence
    | CompetitorMomentumEvidence
    | OrganicVisibilityEvidence
    | KeywordGapEvidence
    | KeywordWinEvidence
    | CompetitorOvertakeEvidence
    | PaidVisibilityEvidence
    | NewCompetitorAdsEvidence
    | KeywordOverlapEvidence
)

EVIDENCE_TYPES: dict[InsightType, type] = {
    InsightType.BASELINE_SNAPSHOT: BaselineEvidence,
    InsightType.NO_SIGNIFICANT_CHANGE: NoChangeEvidence,
    InsightType.RATING_CHANGE: FieldDeltaEvidence,
    InsightType.REVIEW_VELOCITY: FieldDeltaEvidence,
    InsightType.HOURS_CHANGED: HoursChangedEvidence,
    InsightType.WEEKLY_RATING_TREND: FieldDeltaEvidence,
    InsightType.WEEKLY_REVIEW_TREND: FieldDeltaEvidence,
    InsightType.PRICE_POSITIONING_SHIFT: PricePositioningEvidence,
    InsightType.CATERING_PRICE_GAP: PricePositioningEvidence,
    InsightType.CATEGORY_GAP: CategoryGapEvidence,
    InsightType.SIGNATURE_ITEM_MISSING: SignatureItemEvidence,
    InsightType.PROMO_SIGNAL_DETECTED: PromoSignalEvidence,
    InsightType.MENU_CHANGE_DETECTED: MenuChangeEvidence,
    InsightType.CONVERSION_FEATURE_GAP: ConversionGapEvidence,
    InsightType.DELIVERY_PLATFORM_GAP: DeliveryGapEvidence,
    InsightType.WEEKEND_DENSITY_SPIKE: WeekendSpikeEvidence,
    InsightType.UPCOMING_DENSE_DAY: DenseDayEvidence,
    InsightType.NEW_HIGH_SIGNAL_EVENT: HighSignalEventEvidence,
    InsightType.COMPETITOR_HOSTING_EVENT: CompetitorHostingEvidence,
    InsightType.COMPETITOR_EVENT_CADENCE_UP: CadenceUpEvidence,
    InsightType.EVENT_SEO_OPPORTUNITY: EventSeoOpportunityEvidence,
    InsightType.AUTHORITY_RISK: AuthorityRiskEvidence,
    InsightType.COMPETITOR_MOMENTUM: CompetitorMomentumEvidence,
    InsightType.SEO_ORGANIC_VISIBILITY_UP: OrganicVisibilityEvidence,
    InsightType.SEO_ORGANIC_VISIBILITY_DOWN: OrganicVisibilityEvidence,
    InsightType.SEO_KEYWORD_OPPORTUNITY_GAP: KeywordGapEvidence,
    InsightType.SEO_KEYWORD_WIN: KeywordWinEvidence,
    InsightType.SEO_COMPETITOR_OVERTAKE: CompetitorOvertakeEvidence,
    InsightType.SEO_PAID_VISIBILITY_CHANGE: PaidVisibilityEvidence,
    InsightType.SEO_NEW_COMPETITOR_ADS: NewCompetitorAdsEvidence,
    InsightType.SEO_PAID_KEYWORD_OVERLAP_SPIKE: KeywordOverlapEvidence,
}


# ══════════════════════════════════════════════════════════════════════
# ENVELOPE
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class GeneratedInsight:
    insight_type: InsightType
    title: str
    summary: str
    confidence: Confidence
    severity: Severity
    evidence: Evidence
    recommendations: list[Recommendation] = field(default_factory=list)
    competitor_id: str | None = None

    def __post_init__(self) -> None:
        expected = EVIDENCE_TYPES[self.insight_type]
        if not isinstance(self.evidence, expected):
            raise TypeError(
                f"{self.insight_type} expects {expected.__name__}, got {type(self.evidence).__name__}"
            )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready body (everything except the storage key)."""
        return {
            "insight_type": str(self.insight_type),
            "title": self.title,
            "summary": self.summary,
            "confidence": str(self.confidence),
            "severity": str(self.severity),
            "evidence": asdict(self.evidence),
            "recommendations": [asdict(r) for r in self.recommendations],
        }


InsightKey = tuple[str | None, str]


def natural_key(insight: GeneratedInsight) -> InsightKey:
    """Per-job part of the upsert key; location and date are fixed by the job."""
    return (insight.competitor_id, str(insight.insight_type))


def _precedence(insight: GeneratedInsight) -> tuple:
    return (
        -SEVERITY_RANK[insight.severity],
        -CONFIDENCE_RANK[insight.confidence],
        insight.title,
        insight.summary,
    )


def collapse_by_key(insights: list[GeneratedInsight]) -> list[GeneratedInsight]:
    """
    Keep one insight per natural key.

    Rules such as dense-day or new-event can fire several times under the
    same ``(competitor, type)`` key; the most severe (then most confident,
    then alphabetically first title) survives. Output is sorted by key.
    Evidence that declares ``collapsed_count`` records how many insights
    the survivor stands for.
    """
    winners: dict[InsightKey, GeneratedInsight] = {}
    counts: dict[InsightKey, int] = {}
    for insight in insights:
        key = natural_key(insight)
        counts[key] = counts.get(key, 0) + 1
        current = winners.get(key)
        if current is None or _precedence(insight) < _precedence(current):
            winners[key] = insight

    dropped = len(insights) - len(winners)
    if dropped:
        logger.debug("Collapsed %d insights sharing a natural key", dropped)

    collapsed: list[GeneratedInsight] = []
    for key in sorted(winners, key=lambda k: (k[0] or "", k[1])):
        winner = winners[key]
        if counts[key] > 1 and "collapsed_count" in {f.name for f in fields(winner.evidence)}:
            winner = replace(winner, evidence=replace(winner.evidence, collapsed_count=counts[key]))
        collapsed.append(winner)
    return collapsed


# ══════════════════════════════════════════════════════════════════════
# RULE INPUTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CompetitorContent:
    """One competitor's latest menu and site scrape, either may be missing."""

    competitor_id: str
    competitor_name: str
    menu: MenuSnapshot | None = None
    site_content: SiteContentSnapshot | None = None
