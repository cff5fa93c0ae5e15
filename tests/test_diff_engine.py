from factories import make_menu, make_profile

from workers.diff_engine.analyzer import diff_menus, diff_snapshots
from workers.diff_engine.fingerprint import (
    EVENT_UID_LENGTH,
    compute_event_uid,
    hash_payload,
    menu_diff_hash,
    profile_diff_hash,
)
from workers.normalizer.models import NormalizedSnapshot, ReviewSnippet


# ── fingerprints ──────────────────────────────────────────────────────

def test_hash_payload_ignores_key_order():
    assert hash_payload({"a": 1, "b": [1, 2]}) == hash_payload({"b": [1, 2], "a": 1})
    assert hash_payload({"a": 1}) != hash_payload({"a": 2})


def test_profile_hash_ignores_reviews_but_not_hours():
    base = make_profile(hours={"Monday": "11 AM - 9 PM"})
    with_reviews = NormalizedSnapshot(
        profile=base.profile,
        hours=base.hours,
        recent_reviews=[ReviewSnippet(text="Great tacos")],
    )
    assert profile_diff_hash(base) == profile_diff_hash(with_reviews)
    assert profile_diff_hash(base) != profile_diff_hash(make_profile(hours={"Monday": "11 AM - 10 PM"}))


def test_menu_hash_ignores_item_and_category_order():
    a = make_menu({"Tacos": [("Al Pastor", 4.5), ("Carnitas", 4.0)], "Drinks": [("Horchata", 3.0)]})
    b = make_menu({"Drinks": [("Horchata", 3.0)], "Tacos": [("Carnitas", 4.0), ("Al Pastor", 4.5)]})
    assert menu_diff_hash(a) == menu_diff_hash(b)


def test_event_uid_is_stable_across_refetches():
    first = compute_event_uid(
        title="Jazz Night!",
        start_datetime="2026-03-14T19:00:00",
        venue_name="Elm Hall",
        url="https://tickets.com/e?utm_source=a",
    )
    second = compute_event_uid(
        title="jazz   night",
        start_datetime="2026-03-14T19:00:00",
        venue_name="ELM HALL",
        url="https://tickets.com/e?utm_source=b",
    )
    assert first == second
    assert len(first) == EVENT_UID_LENGTH


def test_structured_and_fallback_uids_never_collide():
    structured = compute_event_uid(title="Fair", start_datetime="2026-03-14", venue_name="Park")
    fallback = compute_event_uid(title="Fair", start_datetime="2026-03-14")
    assert structured != fallback


def test_fallback_uid_prefers_displayed_dates():
    a = compute_event_uid(title="Fair", displayed_dates="Sat, Mar 14", start_datetime="2026-03-14")
    b = compute_event_uid(title="Fair", displayed_dates="Sat, Mar 14", start_datetime="2026-03-15")
    assert a == b


# ── snapshot diff ─────────────────────────────────────────────────────

def test_diff_snapshots_deltas():
    diff = diff_snapshots(make_profile(4.5, 200), make_profile(4.3, 207))
    assert diff.rating_delta == -0.2
    assert diff.review_count_delta == 7
    assert {c.field for c in diff.changes} == {"rating", "review_count"}
    assert not diff.hours_changed


def test_diff_without_previous_has_no_deltas():
    diff = diff_snapshots(None, make_profile())
    assert diff.rating_delta is None
    assert diff.review_count_delta is None


def test_missing_hours_equal_empty_hours():
    diff = diff_snapshots(make_profile(hours=None), make_profile(hours={}))
    assert not diff.hours_changed
    assert not diff.has_changes


def test_diff_menus():
    previous = make_menu({"Tacos": [("Al Pastor", 4.5), ("Carnitas", 4.0)]})
    current = make_menu({"Tacos": [("Al Pastor", 4.5), ("Birria", 5.0), ("Fish", 5.0)]})
    diff = diff_menus(previous, current)
    assert diff.items_delta == 1
    assert diff.added_items == ["birria", "fish"]
    assert diff.removed_items == ["carnitas"]
    assert diff_menus(None, current) is None
