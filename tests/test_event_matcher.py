from factories import make_event

from workers.event_matcher.matcher import (
    EventMatchRecord,
    MatchableCompetitor,
    MatchType,
    first_match,
    match_events_to_competitors,
)
from workers.normalizer.models import Confidence, TicketLink

TACOS = MatchableCompetitor(
    id="10",
    name="Taco Hermanos",
    address="415 Elm Street, Springfield",
    website="tacohermanos.com",
)


def test_venue_name_wins_over_address():
    event = make_event(
        "e1",
        venue_name="Taco Hermanos!",
        venue_address="415 Elm Street, Springfield IL",
    )
    hit = first_match(event, TACOS)
    assert hit.match_type == MatchType.VENUE_NAME
    assert hit.confidence == Confidence.HIGH
    assert hit.score == 0.95

    records = match_events_to_competitors([event], [TACOS], location_id="1", date_key="2026-03-14")
    assert len(records) == 1
    assert records[0].match_type == MatchType.VENUE_NAME


def test_name_match_and_neighbour_address_match_are_separate_records():
    barn = MatchableCompetitor(id="11", name="Burrito Barn", address="98 Oak Avenue, Springfield")
    event = make_event("e1", venue_name="Taco Hermanos", venue_address="98 Oak Avenue, Springfield")

    records = match_events_to_competitors([event], [barn, TACOS], location_id="1", date_key="2026-03-14")

    assert [(r.competitor_id, r.match_type) for r in records] == [
        ("10", MatchType.VENUE_NAME),
        ("11", MatchType.VENUE_ADDRESS),
    ]
    assert sum(1 for r in records if r.match_type == MatchType.VENUE_NAME) == 1
    assert records[1].score == 0.8


def test_address_match_scores_token_ratio():
    event = make_event("e1", venue_name="Elm Hall", venue_address="415 Elm Street, Springfield")
    hit = first_match(event, TACOS)
    assert hit.match_type == MatchType.VENUE_ADDRESS
    assert hit.confidence == Confidence.MEDIUM
    assert hit.score == 0.8


def test_address_below_ratio_does_not_match():
    event = make_event("e1", venue_name="Elm Hall", venue_address="Elm Street, Shelbyville")
    assert first_match(event, TACOS) is None


def test_url_domain_through_ticket_link():
    event = make_event(
        "e1",
        venue_name="City Park",
        tickets_and_info=[TicketLink(url="https://www.tacohermanos.com/events/fiesta")],
    )
    hit = first_match(event, TACOS)
    assert hit.match_type == MatchType.URL_DOMAIN
    assert hit.confidence == Confidence.LOW
    assert hit.score == 0.4


def test_no_rule_means_no_record():
    event = make_event("e1", venue_name="City Park", url="https://citypark.org/e")
    assert match_events_to_competitors([event], [TACOS], location_id="1", date_key="2026-03-14") == []


def test_records_sorted_and_unique_per_pair():
    barn = MatchableCompetitor(id="11", name="Burrito Barn")
    events = [
        make_event("bb", venue_name="Burrito Barn"),
        make_event("aa", venue_name="Taco Hermanos"),
        make_event("aa", venue_name="Taco Hermanos"),
    ]
    records = match_events_to_competitors(events, [barn, TACOS], location_id="1", date_key="2026-03-14")
    assert [(r.event_uid, r.competitor_id) for r in records] == [("aa", "10"), ("bb", "11")]
    assert records[0].competitor_name == "Taco Hermanos"
    assert records[0].score == 0.95


def test_match_record_survives_storage():
    event = make_event("aa", title="Fiesta", venue_name="Taco Hermanos")
    record = match_events_to_competitors([event], [TACOS], location_id="1", date_key="2026-03-14")[0]
    restored = EventMatchRecord.from_dict(record.to_dict())
    assert restored == record
    assert restored.event_title == "Fiesta"
