from workers.insights.models import InsightType, Severity
from workers.insights.seo_rules import (
    SeoCompetitor,
    SeoInputs,
    competitor_overtakes,
    generate_seo_insights,
    keyword_opportunity_gap,
    keyword_overlap_spike,
    keyword_wins,
    new_competitor_ads,
    organic_visibility,
    paid_visibility_change,
)
from workers.normalizer.models import (
    AdCreative,
    AdsSnapshot,
    Confidence,
    DomainRankSnapshot,
    IntersectionRow,
    KeywordIntersectionSnapshot,
    OrganicMetrics,
    PaidMetrics,
    SerpRankEntry,
    SerpRankingsSnapshot,
)

OWN = "casaverde.com"
TACOS = "tacohermanos.com"
BARN = "burritobarn.com"


def _rank(etv=0.0, keywords=0, paid_etv=0.0, paid_keywords=0):
    return DomainRankSnapshot(
        domain=OWN,
        organic=OrganicMetrics(etv=etv, ranked_keywords=keywords),
        paid=PaidMetrics(etv=paid_etv, ranked_keywords=paid_keywords),
    )


def _serp(**keywords):
    return SerpRankingsSnapshot(entries=[
        SerpRankEntry(keyword=k.replace("_", " "), positions=positions) for k, positions in keywords.items()
    ])


def _inputs(**kwargs):
    return SeoInputs(location_name="Casa Verde", location_domain=OWN, **kwargs)


def _competitor(competitor_id="10", name="Taco Hermanos", domain=TACOS, rows=None, previous_rows=None):
    return SeoCompetitor(
        competitor_id=competitor_id,
        name=name,
        domain=domain,
        intersection=KeywordIntersectionSnapshot(domain, rows) if rows is not None else None,
        previous_intersection=KeywordIntersectionSnapshot(domain, previous_rows) if previous_rows is not None else None,
    )


def _shared(count):
    return [IntersectionRow(f"kw {n}", search_volume=10, own_rank=5, competitor_rank=7) for n in range(count)]


# ── organic visibility ───────────────────────────────────────────────

def test_organic_traffic_growth_is_info_with_high_confidence():
    [insight] = organic_visibility(_inputs(previous_rank=_rank(500.0, 40), current_rank=_rank(600.0, 42)))

    assert insight.insight_type == InsightType.SEO_ORGANIC_VISIBILITY_UP
    assert insight.title == "Casa Verde's organic traffic is growing"
    assert (insight.severity, insight.confidence) == (Severity.INFO, Confidence.HIGH)
    assert insight.evidence.etv_delta == 100.0
    assert insight.evidence.etv_pct_change == 20.0
    assert insight.competitor_id is None


def test_small_traffic_move_falls_back_to_keyword_count():
    [insight] = organic_visibility(_inputs(previous_rank=_rank(500.0, 40), current_rank=_rank(520.0, 34)))

    assert insight.insight_type == InsightType.SEO_ORGANIC_VISIBILITY_DOWN
    assert insight.title == "Casa Verde lost rankings on 6 keywords"
    assert (insight.severity, insight.confidence) == (Severity.WARNING, Confidence.MEDIUM)
    assert insight.evidence.keyword_delta == -6


def test_organic_visibility_needs_both_snapshots_and_a_real_move():
    assert organic_visibility(_inputs(current_rank=_rank(600.0, 40))) == []
    assert organic_visibility(_inputs(previous_rank=_rank(500.0, 40), current_rank=_rank(530.0, 42))) == []
    # traffic from nothing has no percentage to judge
    assert organic_visibility(_inputs(previous_rank=_rank(0.0, 40), current_rank=_rank(300.0, 41))) == []


# ── keyword gap ──────────────────────────────────────────────────────

def test_gap_lists_competitor_only_keywords_by_volume():
    tacos = _competitor(rows=[
        IntersectionRow("birria tacos", search_volume=900, cpc=1.25, competitor_rank=3),
        IntersectionRow("taco tuesday", search_volume=100, competitor_rank=8),
        IntersectionRow("no volume", search_volume=0, competitor_rank=1),
        IntersectionRow("we win this", search_volume=5000, own_rank=2),
    ])
    barn = _competitor("11", "Burrito Barn", BARN, rows=[
        IntersectionRow("Birria Tacos", search_volume=900, competitor_rank=6),
        IntersectionRow("breakfast burrito", search_volume=300, competitor_rank=4),
    ])

    [insight] = keyword_opportunity_gap(_inputs(competitors=[tacos, barn]))

    assert insight.insight_type == InsightType.SEO_KEYWORD_OPPORTUNITY_GAP
    assert [(g.keyword, g.competitor_id) for g in insight.evidence.gap_keywords] == [
        ("birria tacos", "10"),
        ("breakfast burrito", "11"),
        ("taco tuesday", "10"),
    ]
    assert insight.evidence.total_volume == 1300
    assert insight.recommendations[0].rationale == "900 monthly searches and $1.25 CPC."


def test_gap_caps_at_five_keywords():
    rows = [IntersectionRow(f"kw {n}", search_volume=100 + n, competitor_rank=5) for n in range(8)]
    [insight] = keyword_opportunity_gap(_inputs(competitors=[_competitor(rows=rows)]))
    assert [g.keyword for g in insight.evidence.gap_keywords] == ["kw 7", "kw 6", "kw 5", "kw 4", "kw 3"]


# ── keyword wins / overtakes ─────────────────────────────────────────

def test_keyword_wins_split_top_3_and_page_1():
    inputs = _inputs(
        previous_serp=_serp(tacos_near_me={OWN: 5}, burritos={OWN: 14}, salsa={OWN: 2}, nachos={OWN: None}),
        serp=_serp(tacos_near_me={OWN: 2}, burritos={OWN: 8}, salsa={OWN: 1}, nachos={OWN: 1}),
    )

    [insight] = keyword_wins(inputs)

    assert insight.title == '"tacos near me" reached Top 3'
    assert insight.confidence == Confidence.HIGH
    assert [(m.keyword, m.previous_rank, m.current_rank) for m in insight.evidence.top_3] == [("tacos near me", 5, 2)]
    assert [m.keyword for m in insight.evidence.top_10] == ["burritos"]


def test_page_one_only_win_is_medium_confidence():
    inputs = _inputs(previous_serp=_serp(burritos={OWN: 14}), serp=_serp(burritos={OWN: 8}))
    [insight] = keyword_wins(inputs)
    assert insight.title == '"burritos" entered page 1'
    assert insight.confidence == Confidence.MEDIUM


def test_keyword_wins_need_a_domain_and_history():
    serp = _serp(burritos={OWN: 1})
    assert keyword_wins(_inputs(serp=serp)) == []
    assert keyword_wins(SeoInputs(serp=serp, previous_serp=_serp(burritos={OWN: 30}))) == []


def test_competitor_overtake_is_per_competitor():
    inputs = _inputs(
        previous_serp=_serp(tacos_near_me={OWN: 3, TACOS: 6}, late_night_food={OWN: 28, TACOS: 40}),
        serp=_serp(tacos_near_me={OWN: 5, TACOS: 2}, late_night_food={OWN: 30, TACOS: 25}),
        competitors=[_competitor(), _competitor("11", "Burrito Barn", BARN)],
    )

    [insight] = competitor_overtakes(inputs)

    assert insight.competitor_id == "10"
    assert insight.title == 'Taco Hermanos overtook you on "tacos near me"'
    assert (insight.severity, insight.confidence) == (Severity.WARNING, Confidence.HIGH)
    [overtake] = insight.evidence.keywords
    assert (overtake.competitor_previous_rank, overtake.competitor_current_rank) == (6, 2)
    assert (overtake.your_previous_rank, overtake.your_current_rank) == (3, 5)


# ── paid ─────────────────────────────────────────────────────────────

def test_paid_visibility_drop_is_a_warning():
    [insight] = paid_visibility_change(_inputs(
        previous_rank=_rank(paid_etv=200.0, paid_keywords=12),
        current_rank=_rank(paid_etv=100.0, paid_keywords=6),
    ))
    assert insight.insight_type == InsightType.SEO_PAID_VISIBILITY_CHANGE
    assert insight.title == "Casa Verde's paid visibility decreased"
    assert insight.severity == Severity.WARNING
    assert insight.evidence.pct_change == -50.0


def test_paid_visibility_skips_unpaid_and_new_spend():
    assert paid_visibility_change(_inputs(previous_rank=_rank(), current_rank=_rank())) == []
    assert paid_visibility_change(_inputs(previous_rank=_rank(), current_rank=_rank(paid_etv=300.0))) == []


def test_new_competitor_ads_ignore_known_advertisers():
    previous = AdsSnapshot([AdCreative("burritos", BARN, "Big burritos")])
    current = AdsSnapshot([
        AdCreative("tacos", TACOS, "Tacos all night"),
        AdCreative("birria", TACOS, "Birria Fridays"),
        AdCreative("burritos", BARN, "Big burritos"),
        AdCreative("tacos", "unrelated.com", "Buy a franchise"),
    ])

    [insight] = new_competitor_ads(_inputs(
        ads=current, previous_ads=previous,
        competitors=[_competitor(), _competitor("11", "Burrito Barn", BARN)],
    ))

    assert insight.insight_type == InsightType.SEO_NEW_COMPETITOR_ADS
    assert insight.evidence.new_advertiser_domains == [TACOS]
    assert [a.headline for a in insight.evidence.sample_ads] == ["Tacos all night", "Birria Fridays"]
    assert new_competitor_ads(_inputs(ads=current, competitors=[_competitor()])) == []


def test_overlap_spike_counts_keywords_both_sides_rank_for():
    competitor = _competitor(
        rows=_shared(8) + [IntersectionRow("gap", search_volume=50, competitor_rank=2)],
        previous_rows=_shared(2),
    )
    [insight] = keyword_overlap_spike(_inputs(competitors=[competitor]))
    assert insight.insight_type == InsightType.SEO_PAID_KEYWORD_OVERLAP_SPIKE
    assert (insight.evidence.previous_overlap, insight.evidence.current_overlap, insight.evidence.delta) == (2, 8, 6)

    assert keyword_overlap_spike(_inputs(competitors=[_competitor(rows=_shared(6), previous_rows=_shared(2))])) == []
    assert keyword_overlap_spike(_inputs(competitors=[_competitor(rows=_shared(8))])) == []


def test_no_search_data_generates_nothing():
    assert generate_seo_insights(SeoInputs()) == []
