import json
import math

import pytest

from workers.normalizer.events import normalize_events_payload
from workers.normalizer.menu import (
    classify_menu_category,
    merge_menus,
    normalize_extracted_menu,
    normalize_menu_payload,
)
from workers.normalizer.models import Confidence, KeywordGap, MenuType, ProfileFields
from workers.normalizer.profile import normalize_business_listing, normalize_place_details
from workers.normalizer.registry import (
    SnapshotKind,
    UnknownProviderError,
    get_provider,
    load_snapshot,
)
from workers.normalizer.seo import (
    normalize_ads_search,
    normalize_backlinks_summary,
    normalize_domain_intersection,
    normalize_domain_rank_overview,
    normalize_historical_rank,
    normalize_serp_rankings,
)
from workers.normalizer.site_content import normalize_site_payload
from workers.normalizer.text import (
    canonicalize,
    clean_text,
    money,
    non_negative_int,
    price_level_text,
    round_half_up,
    strip_query_params,
    website_domain,
)


# ── text helpers ──────────────────────────────────────────────────────

def test_round_half_up_matches_cash_register_rounding():
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.5, 0) == 3
    assert round_half_up(-2.5, 0) == -2


def test_money_and_counts_reject_non_numbers():
    assert money(4.456) == 4.46
    assert money(math.nan) is None
    assert money(True) is None
    assert money("4.5") is None
    assert non_negative_int(-3) == 0
    assert non_negative_int(12.6) == 13


def test_clean_text_strips_markdown():
    assert clean_text("**Al Pastor** _taco_ [menu](https://x.com)") == "Al Pastor taco menu"
    assert clean_text(None) == ""


def test_canonicalize_and_url_helpers():
    assert canonicalize("  Jazz   Night!! ") == "jazz night"
    assert strip_query_params("https://x.com/e?utm=1#top") == "https://x.com/e"
    assert website_domain("www.tacohermanos.com") == "tacohermanos.com"
    assert website_domain("https://www.tacohermanos.com/menu") == "tacohermanos.com"
    assert website_domain("") is None


# ── profile ───────────────────────────────────────────────────────────

def test_business_listing_normalization():
    snapshot = normalize_business_listing({
        "title": " Taco Hermanos ",
        "rating": 4.456,
        "reviews_count": 212,
        "price_level": 2,
        "site": "https://tacohermanos.com",
        "work_hours": {"Monday": "11 AM   -  9 PM", "Tuesday": None},
        "reviews_data": [{"review_text": "Great tacos", "review_rating": 5}, {"review_text": ""}],
    })

    assert snapshot.profile.title == "Taco Hermanos"
    assert snapshot.profile.rating == 4.46
    assert snapshot.profile.review_count == 212
    assert snapshot.profile.price_level == "2"
    assert snapshot.hours == {"Monday": "11 AM - 9 PM"}
    assert [r.text for r in snapshot.recent_reviews] == ["Great tacos"]


def test_business_listing_tolerates_garbage():
    snapshot = normalize_business_listing({"rating": math.inf, "reviews_count": "lots"})
    assert snapshot.profile.rating is None
    assert snapshot.profile.review_count is None
    assert normalize_business_listing(None).profile.title is None



@pytest.mark.parametrize("price_level", [math.nan, math.inf, -math.inf])
def test_non_finite_price_level_becomes_none(price_level):
    raw = json.loads(json.dumps({"title": "X", "price_level": price_level}))
    snapshot = normalize_business_listing(raw)
    assert snapshot.profile.title == "X"
    assert snapshot.profile.price_level is None
    assert ProfileFields.from_dict({"price_level": price_level}).price_level is None


def test_price_level_text():
    assert price_level_text(2) == "2"
    assert price_level_text(3.0) == "3"
    assert price_level_text(" $$ ") == "$$"
    assert price_level_text(True) is None
    assert price_level_text(None) is None


def test_place_details_normalization():
    snapshot = normalize_place_details({
        "displayName": {"text": "Burrito Barn"},
        "rating": 4.2,
        "userRatingCount": 88,
        "nationalPhoneNumber": "(555) 010-0199",
        "regularOpeningHours": {"weekdayDescriptions": ["Monday: 11 AM – 9 PM", "garbage"]},
    })
    assert snapshot.profile.title == "Burrito Barn"
    assert snapshot.profile.review_count == 88
    assert snapshot.profile.phone == "(555) 010-0199"
    assert snapshot.hours == {"Monday": "11 AM – 9 PM"}


# ── menu ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Catering Trays", MenuType.CATERING),
        ("Happy Hour Specials", MenuType.HAPPY_HOUR),
        ("Kids Menu", MenuType.KIDS),
        ("Banquet Packages", MenuType.BANQUET),
        ("Tacos", MenuType.DINE_IN),
    ],
)
def test_classify_menu_category(name, expected):
    assert classify_menu_category(name) == expected


def test_extracted_menu_drops_empty_categories_and_items():
    result = normalize_extracted_menu({
        "categories": [
            {"name": "**Tacos**", "items": [{"name": "Al Pastor", "priceValue": 4.5}, {"name": ""}]},
            {"name": "Empty", "items": []},
        ],
    })
    assert [c.name for c in result.categories] == ["Tacos"]
    assert result.items_total == 1
    assert result.currency == "USD"
    assert result.confidence == Confidence.LOW


def test_extracted_menu_without_categories_is_empty_not_an_error():
    result = normalize_extracted_menu("not a menu")
    assert result.categories == []
    assert result.notes == ["No menu data extracted from page"]


def test_menu_merge_is_order_independent():
    a = normalize_extracted_menu({
        "categories": [{"name": "Tacos", "items": [{"name": "Al Pastor", "price": "$4.50"}]}],
    }, source="firecrawl")
    b = normalize_extracted_menu({
        "categories": [
            {"name": "tacos", "items": [{"name": "Al Pastor", "price": "$4.50", "description": "Pork"}]},
            {"name": "Catering", "items": [{"name": "Taco Bar", "priceValue": 120}]},
        ],
    }, source="gemini")

    merged = merge_menus([a, b])
    assert merged == merge_menus([b, a])
    tacos = next(c for c in merged.categories if c.name.lower() == "tacos")
    assert tacos.items[0].description == "Pork"
    assert merged.source == "firecrawl,gemini"


def test_menu_payload_with_sources():
    snapshot = normalize_menu_payload({
        "menu_url": "https://x.com/menu",
        "sources": [
            {"source": "firecrawl", "menu": {"categories": [{"name": "Tacos", "items": [{"name": "Carnitas"}]}]}},
        ],
    })
    assert snapshot.menu_url == "https://x.com/menu"
    assert snapshot.parse_meta.items_total == 1
    assert snapshot.parse_meta.sources == ["firecrawl"]


# ── site content ──────────────────────────────────────────────────────

def test_site_payload_detects_features_across_pages():
    snapshot = normalize_site_payload({
        "website": "https://tacohermanos.com",
        "markdown": "Book a table on OpenTable.",
        "pages": [{"url": "https://tacohermanos.com/order", "type": "order",
                   "markdown": "Order online or get it on DoorDash and Uber Eats."}],
    })
    detected = snapshot.detected
    assert detected.reservation is True
    assert detected.online_ordering is True
    assert detected.catering is False
    assert detected.delivery_platforms == ["doordash", "ubereats"]
    assert [p.url for p in snapshot.core_pages] == ["https://tacohermanos.com/order"]


# ── events ────────────────────────────────────────────────────────────

def _event_item(title, url, **extra):
    return {
        "type": "event_item",
        "title": title,
        "url": url,
        "event_dates": {"start_datetime": "2026-03-14T19:00:00"},
        "location_info": {"name": "Elm Hall", "address": "415 Elm Street"},
        **extra,
    }


def test_events_are_deduplicated_across_queries():
    snapshot = normalize_events_payload({
        "queries": [{"keyword": "jazz"}, {"keyword": "music"}],
        "batches": [
            {"keyword": "jazz", "items": [
                _event_item("Jazz Night!", "https://tickets.com/e?utm=jazz"),
                {"type": "ads_item", "title": "Ad"},
            ]},
            {"keyword": "music", "items": [_event_item("JAZZ NIGHT", "https://tickets.com/e")]},
        ],
    })
    assert len(snapshot.events) == 1
    assert snapshot.events[0].keyword == "jazz"
    assert snapshot.summary.total_events == 1
    assert snapshot.summary.by_date == {"2026-03-14": 1}
    assert snapshot.summary.by_domain == {"tickets.com": 1}


# ── seo ───────────────────────────────────────────────────────────────

def test_historical_rank_sorted_and_invalid_months_dropped():
    history = normalize_historical_rank({
        "target": "casaverde.com",
        "items": [
            {"year": 2026, "month": 2, "metrics": {"organic": {"etv": 130.0, "count": 40}}},
            {"year": 2026, "month": 1, "metrics": {"organic": {"etv": 120.0, "count": 38}}},
            {"year": 2026, "month": 13, "metrics": {"organic": {"etv": 1.0}}},
        ],
    })
    assert history.domain == "casaverde.com"
    assert [p.date for p in history.history] == ["2026-01", "2026-02"]


def test_domain_rank_folds_position_buckets():
    rank = normalize_domain_rank_overview({
        "items": [{"metrics": {"organic": {"etv": 55.5, "count": 30, "pos_21_30": 2, "pos_31_40": 3}}}],
    }, domain="tacohermanos.com")
    assert rank.organic.ranked_keywords == 30
    assert rank.organic.distribution["pos_21_50"] == 5
    assert rank.paid.etv == 0.0


def test_backlinks_summary():
    summary = normalize_backlinks_summary({"target": "casaverde.com", "referring_domains": 120, "backlinks": 900})
    assert summary.referring_domains == 120
    assert summary.domain == "casaverde.com"


def test_serp_rankings_keep_first_organic_position_per_domain():
    rankings = normalize_serp_rankings({
        "domains": ["https://www.casaverde.com", "tacohermanos.com"],
        "results": [
            {
                "keyword": "tacos near me",
                "item_types": ["local_pack", "organic"],
                "items": [
                    {"type": "local_pack", "domain": "casaverde.com", "rank_group": 1},
                    {"type": "organic", "domain": "www.tacohermanos.com", "rank_group": 2},
                    {"type": "organic", "domain": "casaverde.com", "rank_group": 4},
                    {"type": "organic", "domain": "casaverde.com", "rank_group": 9},
                ],
            },
            {"items": [{"type": "organic", "domain": "casaverde.com", "rank_group": 1}]},
        ],
    })
    [entry] = rankings.entries
    assert entry.positions == {"casaverde.com": 4, "tacohermanos.com": 2}
    assert entry.serp_features == ["local_pack", "organic"]


def test_domain_intersection_labels_gaps():
    snapshot = normalize_domain_intersection({
        "target2": "https://tacohermanos.com",
        "items": [
            {
                "keyword_data": {"keyword": "birria tacos", "keyword_info": {"search_volume": 880, "cpc": 1.2}},
                "second_domain_serp_element": {"serp_item": {"rank_group": 3}},
            },
            {
                "keyword_data": {"keyword": "green salsa"},
                "first_domain_serp_element": {"rank_group": 2},
                "second_domain_serp_element": {"rank_group": 7},
            },
            {"keyword_data": {}},
        ],
    })
    assert snapshot.competitor_domain == "tacohermanos.com"
    assert [(r.keyword, r.gap) for r in snapshot.rows] == [
        ("birria tacos", KeywordGap.LOSS),
        ("green salsa", KeywordGap.SHARED),
    ]
    assert snapshot.rows[0].competitor_rank == 3


def test_ads_search_flattens_creatives():
    ads = normalize_ads_search({"results": [
        {"keyword": "tacos", "items": [{"title": "Tacos all night", "domain": "www.tacohermanos.com", "rank_group": 1}]},
        {"items": [{"title": "orphan"}]},
    ]})
    [creative] = ads.creatives
    assert (creative.keyword, creative.domain, creative.headline, creative.position) == (
        "tacos", "tacohermanos.com", "Tacos all night", 1,
    )


# ── registry ──────────────────────────────────────────────────────────

def test_unknown_provider():
    with pytest.raises(UnknownProviderError):
        get_provider("carrier_pigeon")


def test_profile_providers_share_a_kind():
    assert get_provider("google_business_listing").kind == SnapshotKind.PROFILE
    assert get_provider("google_place_details").kind == SnapshotKind.PROFILE


def test_stored_snapshot_reloads_unchanged():
    spec = get_provider("menu_extract")
    snapshot = spec.normalize({"categories": [{"name": "Tacos", "items": [{"name": "Carnitas", "priceValue": 4}]}]})
    reloaded = load_snapshot(spec.kind, snapshot.to_dict())
    assert reloaded == snapshot
    assert spec.diff_hash(reloaded) == spec.diff_hash(snapshot)
    assert load_snapshot(spec.kind, None) is None
