"""
Local events rules.

Location-level (``competitor_id`` is ``None``):
    weekend density spike, upcoming dense day, new high-signal event
Competitor-level (fed by matcher output):
    competitor hosting event, competitor event cadence up
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone

from workers.event_matcher.matcher import EventMatchRecord, MatchType
from workers.insights.models import (
    CadenceUpEvidence,
    CompetitorHostingEvidence,
    DenseDayEvidence,
    EventSummary,
    GeneratedInsight,
    HighSignalEventEvidence,
    InsightType,
    MatchedEventRef,
    Recommendation,
    Severity,
    WeekendSpikeEvidence,
)
from workers.normalizer.models import Confidence, NormalizedEvent, NormalizedEventsSnapshot
from workers.normalizer.text import round_half_up

logger = logging.getLogger(__name__)

WEEKEND_SPIKE_PCT = 0.3
WEEKEND_SPIKE_WARNING_PCT = 0.5
WEEKEND_SPIKE_ABS = 5
DENSE_DAY_THRESHOLD = 8
DENSE_DAY_WARNING = 12
CADENCE_UP_THRESHOLD = 2
SAMPLE_SIZE = 5

HIGH_SIGNAL_KEYWORDS: list[str] = [
    "festival",
    "concert",
    "convention",
    "food",
    "wine",
    "beer",
    "taste",
    "chef",
    "sports",
    "game",
    "marathon",
    "parade",
    "expo",
    "fair",
    "market",
    "gala",
    "fundraiser",
    "block party",
    "music",
    "comedy",
    "pop-up",
]


# ── Helpers ───────────────────────────────────────────────────────────

def is_weekend_event(event: NormalizedEvent) -> bool:
    """Saturday or Sunday (UTC) from the start time, else from the query range or displayed dates."""
    if not event.start_datetime:
        if event.date_range == "weekend":
            return True
        if event.displayed_dates:
            lower = event.displayed_dates.lower()
            return "sat" in lower or "sun" in lower
        return False
    try:
        start = datetime.fromisoformat(event.start_datetime.replace("Z", "+00:00"))
    except ValueError:
        return False
    if start.tzinfo is not None:
        start = start.astimezone(timezone.utc)
    return start.weekday() >= 5


def weekend_events(snapshot: NormalizedEventsSnapshot) -> list[NormalizedEvent]:
    return [e for e in snapshot.events if is_weekend_event(e)]


def matched_keywords(title: str | None) -> list[str]:
    lower = (title or "").lower()
    return [kw for kw in HIGH_SIGNAL_KEYWORDS if kw in lower]


def _group_by_competitor(matches: list[EventMatchRecord]) -> dict[str, list[EventMatchRecord]]:
    grouped: dict[str, list[EventMatchRecord]] = defaultdict(list)
    for match in matches:
        if match.competitor_id:
            grouped[match.competitor_id].append(match)
    return {cid: sorted(grouped[cid], key=lambda m: m.event_uid) for cid in sorted(grouped)}


# ── Location-level rules ──────────────────────────────────────────────

def weekend_density_spike(
    current: NormalizedEventsSnapshot,
    previous: NormalizedEventsSnapshot | None,
) -> list[GeneratedInsight]:
    if previous is None:
        return []
    current_weekend = weekend_events(current)
    previous_count = len(weekend_events(previous))
    if previous_count == 0:
        logger.debug("No weekend events in previous snapshot, skipping density spike")
        return []

    current_count = len(current_weekend)
    delta = current_count - previous_count
    pct_change = delta / previous_count
    if delta < WEEKEND_SPIKE_ABS or pct_change < WEEKEND_SPIKE_PCT:
        return []

    return [GeneratedInsight(
        insight_type=InsightType.WEEKEND_DENSITY_SPIKE,
        title="Weekend event activity is surging",
        summary=(
            f"Weekend events increased from {previous_count} to {current_count} "
            f"(+{int(round_half_up(pct_change * 100, 0))}%). Higher foot traffic in your area is likely."
        ),
        confidence=Confidence.MEDIUM,
        severity=Severity.WARNING if pct_change >= WEEKEND_SPIKE_WARNING_PCT else Severity.INFO,
        evidence=WeekendSpikeEvidence(
            current_weekend_count=current_count,
            previous_weekend_count=previous_count,
            delta=delta,
            pct_change=round_half_up(pct_change * 100, 1),
            sample_events=[EventSummary.of(e) for e in current_weekend[:SAMPLE_SIZE]],
        ),
        recommendations=[
            Recommendation(
                title="Prepare for increased demand",
                rationale=(
                    "A spike in nearby weekend events typically correlates with higher area foot "
                    "traffic. Consider adjusting staffing, inventory, or promotions."
                ),
            ),
            Recommendation(
                title="Promote awareness on social media",
                rationale=(
                    "Event-goers often search for nearby dining options. Posting on social media "
                    "around event dates may capture their attention."
                ),
            ),
        ],
    )]


def upcoming_dense_days(current: NormalizedEventsSnapshot) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []
    for day, count in sorted(current.summary.by_date.items()):
        if count < DENSE_DAY_THRESHOLD:
            continue
        on_day = [e for e in current.events if e.start_datetime and e.start_datetime.startswith(day)]
        insights.append(GeneratedInsight(
            insight_type=InsightType.UPCOMING_DENSE_DAY,
            title=f"{count} events scheduled on {day}",
            summary=(
                f"An unusually high number of events ({count}) are happening on {day} near your "
                "location. This may drive increased foot traffic."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.WARNING if count >= DENSE_DAY_WARNING else Severity.INFO,
            evidence=DenseDayEvidence(
                date=day,
                event_count=count,
                sample_events=[EventSummary.of(e) for e in on_day[:SAMPLE_SIZE]],
            ),
            recommendations=[
                Recommendation(
                    title="Plan for a busier day",
                    rationale=(
                        f"{count} local events on a single day suggests above-average area "
                        "activity. Review staffing and supplies."
                    ),
                ),
            ],
        ))
    return insights


def new_high_signal_events(
    current: NormalizedEventsSnapshot,
    previous: NormalizedEventsSnapshot | None,
) -> list[GeneratedInsight]:
    previous_uids = {e.uid for e in previous.events} if previous else set()
    insights: list[GeneratedInsight] = []
    for event in current.events:
        if event.uid in previous_uids:
            continue
        keywords = matched_keywords(event.title)
        ticket_sources = len(event.tickets_and_info)
        multiple_sources = ticket_sources >= 2
        if not keywords and not multiple_sources:
            continue

        title = event.title or "Untitled"
        detail = f" (keywords: {', '.join(keywords)})" if keywords else ""
        if multiple_sources:
            detail += " with multiple ticket sources"
        insights.append(GeneratedInsight(
            insight_type=InsightType.NEW_HIGH_SIGNAL_EVENT,
            title=f"New notable event: {title}",
            summary=f'A new event "{title}" has appeared in your area{detail}.',
            confidence=Confidence.HIGH if len(keywords) >= 2 else Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=HighSignalEventEvidence(
                event=EventSummary.of(event),
                matched_keywords=keywords,
                ticket_source_count=ticket_sources,
            ),
            recommendations=[
                Recommendation(
                    title="Review the event for relevance",
                    rationale=(
                        "This event may attract your target demographic. Consider cross-promoting "
                        "or adjusting offerings around the event date."
                    ),
                ),
            ],
        ))
    return insights


# ── Competitor-level rules ────────────────────────────────────────────

def _is_hosting_signal(match: EventMatchRecord) -> bool:
    return match.confidence == Confidence.HIGH or (
        match.confidence == Confidence.LOW and match.match_type == MatchType.URL_DOMAIN
    )


def competitor_hosting_events(matches: list[EventMatchRecord]) -> list[GeneratedInsight]:
    relevant = [m for m in matches if _is_hosting_signal(m)]
    insights: list[GeneratedInsight] = []
    for competitor_id, comp_matches in _group_by_competitor(relevant).items():
        name = comp_matches[0].competitor_name or "A competitor"
        titles = [m.event_title for m in comp_matches if m.event_title][:SAMPLE_SIZE]
        insights.append(GeneratedInsight(
            insight_type=InsightType.COMPETITOR_HOSTING_EVENT,
            title=f"{name} appears linked to upcoming event(s)",
            summary=(
                f"{name} may be hosting or participating in {len(comp_matches)} upcoming "
                f"event(s): {', '.join(titles) or 'unnamed events'}."
            ),
            confidence=(
                Confidence.HIGH
                if any(m.confidence == Confidence.HIGH for m in comp_matches)
                else Confidence.MEDIUM
            ),
            severity=Severity.INFO,
            evidence=CompetitorHostingEvidence(
                competitor_id=competitor_id,
                competitor_name=name,
                matched_events=[
                    MatchedEventRef(
                        event_uid=m.event_uid,
                        event_title=m.event_title,
                        match_type=str(m.match_type),
                        confidence=str(m.confidence),
                        score=m.score,
                    )
                    for m in comp_matches
                ],
            ),
            recommendations=[
                Recommendation(
                    title="Monitor competitor event activity",
                    rationale=(
                        "Competitors hosting or sponsoring events may gain visibility. Consider "
                        "your own event partnerships or promotions to maintain competitive presence."
                    ),
                ),
            ],
            competitor_id=competitor_id,
        ))
    return insights


def competitor_cadence_up(
    matches: list[EventMatchRecord],
    previous_matches: list[EventMatchRecord] | None,
) -> list[GeneratedInsight]:
    if previous_matches is None:
        return []
    current = _group_by_competitor(matches)
    previous = _group_by_competitor(previous_matches)

    insights: list[GeneratedInsight] = []
    for competitor_id, comp_matches in current.items():
        current_count = len(comp_matches)
        previous_count = len(previous.get(competitor_id, []))
        delta = current_count - previous_count
        if delta < CADENCE_UP_THRESHOLD:
            continue
        name = comp_matches[0].competitor_name or "A competitor"
        insights.append(GeneratedInsight(
            insight_type=InsightType.COMPETITOR_EVENT_CADENCE_UP,
            title=f"{name} is linked to more events than before",
            summary=(
                f"{name} is now associated with {current_count} events (up from "
                f"{previous_count}, +{delta}). Their local visibility may be increasing."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=CadenceUpEvidence(
                competitor_id=competitor_id,
                competitor_name=name,
                current_count=current_count,
                previous_count=previous_count,
                delta=delta,
            ),
            recommendations=[
                Recommendation(
                    title="Evaluate your event strategy",
                    rationale=(
                        "An increase in competitor event associations suggests they may be investing "
                        "more in community engagement. Consider how you can maintain or increase "
                        "your local presence."
                    ),
                ),
            ],
            competitor_id=competitor_id,
        ))
    return insights


# ── Entry point ───────────────────────────────────────────────────────

def generate_event_insights(
    current: NormalizedEventsSnapshot,
    previous: NormalizedEventsSnapshot | None,
    matches: list[EventMatchRecord],
    previous_matches: list[EventMatchRecord] | None = None,
) -> list[GeneratedInsight]:
    return [
        *weekend_density_spike(current, previous),
        *upcoming_dense_days(current),
        *new_high_signal_events(current, previous),
        *competitor_hosting_events(matches),
        *competitor_cadence_up(matches, previous_matches),
    ]
