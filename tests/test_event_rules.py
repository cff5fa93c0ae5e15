from factories import make_event, make_events

from workers.event_matcher.matcher import EventMatchRecord, MatchType
from workers.insights.event_rules import (
    competitor_cadence_up,
    competitor_hosting_events,
    generate_event_insights,
    is_weekend_event,
    new_high_signal_events,
    upcoming_dense_days,
    weekend_density_spike,
)
from workers.insights.models import InsightType, Severity
from workers.normalizer.models import Confidence, NormalizedEvent, TicketLink

SATURDAY = "2026-03-14T19:00:00"
WEDNESDAY = "2026-03-11T19:00:00"


def _weekend(prefix, count, start=SATURDAY):
    return [make_event(f"{prefix}{n:03d}", start=start) for n in range(count)]


def _match(competitor_id, event_uid, confidence=Confidence.HIGH, match_type=MatchType.VENUE_NAME, name="Taco Hermanos"):
    return EventMatchRecord(
        location_id="1",
        competitor_id=competitor_id,
        date_key="2026-03-14",
        event_uid=event_uid,
        match_type=match_type,
        confidence=confidence,
        evidence={
            "event": {"uid": event_uid, "title": f"Event {event_uid}"},
            "competitor": {"id": competitor_id, "name": name},
            "score": 0.95,
        },
    )


# ── weekend detection ────────────────────────────────────────────────

def test_weekend_from_start_time():
    assert is_weekend_event(make_event("a", start=SATURDAY))
    assert not is_weekend_event(make_event("a", start=WEDNESDAY))
    # Friday evening in UTC-5 is already Saturday in UTC
    assert is_weekend_event(make_event("a", start="2026-03-13T22:00:00-05:00"))


def test_weekend_fallbacks_without_start_time():
    assert is_weekend_event(NormalizedEvent(uid="a", date_range="weekend"))
    assert is_weekend_event(NormalizedEvent(uid="a", displayed_dates="Sun, Mar 15"))
    assert not is_weekend_event(NormalizedEvent(uid="a", displayed_dates="Mon, Mar 16"))
    assert not is_weekend_event(make_event("a", start="not a date"))


# ── location-level ───────────────────────────────────────────────────

def test_weekend_spike_ten_to_sixteen_is_a_warning():
    previous = make_events(_weekend("p", 10))
    current = make_events(_weekend("c", 16))

    [insight] = weekend_density_spike(current, previous)

    assert insight.severity == Severity.WARNING
    assert insight.evidence.previous_weekend_count == 10
    assert insight.evidence.current_weekend_count == 16
    assert insight.evidence.delta == 6
    assert insight.evidence.pct_change == 60.0
    assert len(insight.evidence.sample_events) == 5


def test_weekend_spike_needs_absolute_and_relative_growth():
    assert weekend_density_spike(make_events(_weekend("c", 14)), make_events(_weekend("p", 10))) == []
    assert weekend_density_spike(make_events(_weekend("c", 27)), make_events(_weekend("p", 21))) == []
    assert weekend_density_spike(make_events(_weekend("c", 16)), None) == []
    assert weekend_density_spike(make_events(_weekend("c", 16)), make_events([])) == []


def test_dense_days():
    events = make_events(_weekend("s", 12) + _weekend("w", 8, start=WEDNESDAY) + _weekend("x", 3, start="2026-03-12T10:00:00"))
    insights = upcoming_dense_days(events)
    assert [(i.evidence.date, i.severity) for i in insights] == [
        ("2026-03-11", Severity.INFO),
        ("2026-03-14", Severity.WARNING),
    ]


def test_new_high_signal_event():
    previous = make_events([make_event("old", title="Wine Festival")])
    current = make_events([
        make_event("old", title="Wine Festival"),
        make_event("new", title="Food & Wine Festival"),
        make_event("plain", title="Book club"),
        make_event("tix", title="Book signing", tickets_and_info=[TicketLink(url="a"), TicketLink(url="b")]),
    ])
    insights = new_high_signal_events(current, previous)
    assert [i.evidence.event.uid for i in insights] == ["new", "tix"]
    assert insights[0].confidence == Confidence.HIGH
    assert insights[0].evidence.matched_keywords == ["festival", "food", "wine"]
    assert insights[1].confidence == Confidence.MEDIUM
    assert insights[1].evidence.ticket_source_count == 2


# ── competitor-level ─────────────────────────────────────────────────

def test_hosting_uses_high_and_domain_matches_only():
    matches = [
        _match("11", "b"),
        _match("10", "a", Confidence.MEDIUM, MatchType.VENUE_ADDRESS),
        _match("10", "c", Confidence.LOW, MatchType.URL_DOMAIN),
    ]
    insights = competitor_hosting_events(matches)
    assert [i.competitor_id for i in insights] == ["10", "11"]
    assert insights[0].confidence == Confidence.MEDIUM
    assert [m.event_uid for m in insights[0].evidence.matched_events] == ["c"]
    assert insights[1].confidence == Confidence.HIGH


def test_cadence_up():
    previous = [_match("10", "a")]
    current = [_match("10", "a"), _match("10", "b"), _match("10", "c"), _match("11", "d")]
    [insight] = competitor_cadence_up(current, previous)
    assert insight.competitor_id == "10"
    assert insight.evidence.delta == 2
    assert competitor_cadence_up(current, None) == []


def test_generate_event_insights_combines_rules():
    current = make_events([make_event("new", title="Jazz Festival")])
    insights = generate_event_insights(current, None, [_match("10", "new")])
    assert {i.insight_type for i in insights} == {
        InsightType.NEW_HIGH_SIGNAL_EVENT,
        InsightType.COMPETITOR_HOSTING_EVENT,
    }
