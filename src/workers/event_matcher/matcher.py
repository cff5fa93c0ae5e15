"""
Event–Competitor Matcher.

Each ``(event, competitor)`` pair walks an ordered list of match rules;
the first rule that returns a match wins and the remaining rules are not
evaluated for that pair:

    Unmatched ──► venue_name    (high,   0.95)
              ├─► venue_address (medium, 0.8 × token ratio)
              └─► url_domain    (low,    0.4)

No rule satisfied means no record at all. There is no explicit negative
result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from workers.normalizer.events import event_domains
from workers.normalizer.models import Confidence, NormalizedEvent
from workers.normalizer.text import canonicalize, round_half_up, website_domain

logger = logging.getLogger(__name__)

ADDRESS_MIN_TOKENS = 2
ADDRESS_MIN_RATIO = 0.6
ADDRESS_SCORE_FACTOR = 0.8


class MatchType(StrEnum):
    VENUE_NAME = "venue_name"
    VENUE_ADDRESS = "venue_address"
    URL_DOMAIN = "url_domain"


@dataclass(frozen=True, slots=True)
class MatchableCompetitor:
    id: str
    name: str | None = None
    address: str | None = None
    website: str | None = None


@dataclass(frozen=True, slots=True)
class RuleHit:
    """What a single rule reports when it fires."""

    match_type: MatchType
    confidence: Confidence
    score: float
    match_inputs: dict[str, str]


@dataclass(frozen=True, slots=True)
class EventMatchRecord:
    location_id: str
    competitor_id: str
    date_key: str
    event_uid: str
    match_type: MatchType
    confidence: Confidence
    evidence: dict[str, Any] = field(default_factory=dict)

    @property
    def score(self) -> float:
        return float(self.evidence.get("score", 0.0))

    @property
    def competitor_name(self) -> str | None:
        return self.evidence.get("competitor", {}).get("name")

    @property
    def event_title(self) -> str | None:
        return self.evidence.get("event", {}).get("title")

    def to_dict(self) -> dict[str, Any]:
        return {
            "location_id": self.location_id,
            "competitor_id": self.competitor_id,
            "date_key": self.date_key,
            "event_uid": self.event_uid,
            "match_type": str(self.match_type),
            "confidence": str(self.confidence),
            "evidence": self.evidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventMatchRecord:
        return cls(
            location_id=str(data["location_id"]),
            competitor_id=str(data["competitor_id"]),
            date_key=str(data["date_key"]),
            event_uid=str(data["event_uid"]),
            match_type=MatchType(data["match_type"]),
            confidence=Confidence(data["confidence"]),
            evidence=dict(data.get("evidence") or {}),
        )


# ── Rules ─────────────────────────────────────────────────────────────

def address_tokens(address: str | None) -> list[str]:
    """Canonical address tokens longer than 2 chars ("st", "dr" are noise)."""
    return [t for t in canonicalize(address).split(" ") if len(t) > 2]


def match_venue_name(event: NormalizedEvent, competitor: MatchableCompetitor) -> RuleHit | None:
    venue = canonicalize(event.venue.name if event.venue else None)
    name = canonicalize(competitor.name)
    if not venue or not name or venue != name:
        return None
    return RuleHit(
        MatchType.VENUE_NAME,
        Confidence.HIGH,
        0.95,
        {"venue_name": venue, "competitor_name": name},
    )


def match_venue_address(event: NormalizedEvent, competitor: MatchableCompetitor) -> RuleHit | None:
    venue_address = canonicalize(event.venue.address if event.venue else None)
    tokens = address_tokens(competitor.address)
    if not venue_address or len(tokens) < ADDRESS_MIN_TOKENS:
        return None
    matched = [t for t in tokens if t in venue_address]
    ratio = len(matched) / len(tokens)
    if ratio < ADDRESS_MIN_RATIO:
        return None
    return RuleHit(
        MatchType.VENUE_ADDRESS,
        Confidence.MEDIUM,
        round_half_up(ratio * ADDRESS_SCORE_FACTOR, 2),
        {
            "venue_address": venue_address,
            "competitor_address_tokens": ", ".join(tokens),
            "matched_tokens": ", ".join(matched),
            "match_ratio": f"{round_half_up(ratio, 2):.2f}",
        },
    )


def match_url_domain(event: NormalizedEvent, competitor: MatchableCompetitor) -> RuleHit | None:
    competitor_domain = website_domain(competitor.website)
    if not competitor_domain:
        return None
    hit = next((d for d in event_domains(event) if d == competitor_domain), None)
    if hit is None:
        return None
    return RuleHit(
        MatchType.URL_DOMAIN,
        Confidence.LOW,
        0.4,
        {"event_domain": hit, "competitor_domain": competitor_domain},
    )


MatchRule = Callable[[NormalizedEvent, MatchableCompetitor], "RuleHit | None"]

MATCH_RULES: list[MatchRule] = [
    match_venue_name,
    match_venue_address,
    match_url_domain,
]


def first_match(
    event: NormalizedEvent,
    competitor: MatchableCompetitor,
    rules: list[MatchRule] | None = None,
) -> RuleHit | None:
    for rule in rules or MATCH_RULES:
        hit = rule(event, competitor)
        if hit is not None:
            return hit
    return None


# ── Entry point ───────────────────────────────────────────────────────

def match_events_to_competitors(
    events: list[NormalizedEvent],
    competitors: list[MatchableCompetitor],
    *,
    location_id: str,
    date_key: str,
) -> list[EventMatchRecord]:
    """At most one record per ``(event_uid, competitor_id)``; output sorted by that pair."""
    records: dict[tuple[str, str], EventMatchRecord] = {}
    for event in events:
        for competitor in competitors:
            pair = (event.uid, competitor.id)
            if pair in records:
                continue
            hit = first_match(event, competitor)
            if hit is None:
                continue
            records[pair] = _build_record(event, competitor, hit, location_id, date_key)

    if records:
        logger.info(
            "Matched %d event/competitor pairs for location %s on %s",
            len(records), location_id, date_key,
        )
    return [records[pair] for pair in sorted(records)]


def _build_record(
    event: NormalizedEvent,
    competitor: MatchableCompetitor,
    hit: RuleHit,
    location_id: str,
    date_key: str,
) -> EventMatchRecord:
    venue = event.venue.to_dict() if event.venue else None
    return EventMatchRecord(
        location_id=location_id,
        competitor_id=competitor.id,
        date_key=date_key,
        event_uid=event.uid,
        match_type=hit.match_type,
        confidence=hit.confidence,
        evidence={
            "event": {
                "uid": event.uid,
                "title": event.title,
                "start": event.start_datetime,
                "venue": venue,
                "url": event.url,
            },
            "competitor": {
                "id": competitor.id,
                "name": competitor.name,
                "website": competitor.website,
            },
            "match_inputs": hit.match_inputs,
            "score": hit.score,
        },
    )
