import pytest
from factories import make_profile

from workers.diff_engine.analyzer import diff_snapshots
from workers.insights.models import InsightType, Severity
from workers.insights.profile_rules import (
    build_daily_insights,
    build_profile_insights,
    build_weekly_insights,
)
from workers.normalizer.models import Confidence


def _types(insights):
    return [str(i.insight_type) for i in insights]


@pytest.mark.parametrize(
    ("before", "after", "fires"),
    [
        (4.5, 4.59, False),
        (4.5, 4.6, True),
        (4.5, 4.4, True),
    ],
)
def test_daily_rating_threshold(before, after, fires):
    insights = build_daily_insights(diff_snapshots(make_profile(rating=before), make_profile(rating=after)))
    assert ("rating_change" in _types(insights)) is fires


def test_rating_drop_is_a_warning():
    [insight] = build_daily_insights(diff_snapshots(make_profile(rating=4.5), make_profile(rating=4.3)), "10")
    assert insight.title == "Rating decreased"
    assert insight.severity == Severity.WARNING
    assert insight.confidence == Confidence.HIGH
    assert insight.evidence.delta == -0.2
    assert insight.evidence.window == "t-1"
    assert insight.competitor_id == "10"


@pytest.mark.parametrize(("delta", "fires"), [(1, False), (2, True), (-2, True)])
def test_daily_review_threshold(delta, fires):
    diff = diff_snapshots(make_profile(review_count=100), make_profile(review_count=100 + delta))
    assert ("review_velocity" in _types(build_daily_insights(diff))) is fires


@pytest.mark.parametrize(("delta", "fires"), [(4, False), (5, True)])
def test_weekly_review_threshold(delta, fires):
    diff = diff_snapshots(make_profile(review_count=100), make_profile(review_count=100 + delta))
    assert ("weekly_review_trend" in _types(build_weekly_insights(diff))) is fires


def test_weekly_rating_threshold():
    diff = diff_snapshots(make_profile(rating=4.3), make_profile(rating=4.5))
    [insight] = build_weekly_insights(diff)
    assert insight.insight_type == InsightType.WEEKLY_RATING_TREND
    assert insight.evidence.window == "t-7"
    assert build_weekly_insights(diff_snapshots(make_profile(rating=4.3), make_profile(rating=4.4))) == []


def test_hours_change():
    diff = diff_snapshots(
        make_profile(hours={"Monday": "11 AM - 9 PM"}),
        make_profile(hours={"Monday": "11 AM - 10 PM"}),
    )
    [insight] = build_daily_insights(diff)
    assert insight.insight_type == InsightType.HOURS_CHANGED
    assert insight.confidence == Confidence.MEDIUM
    assert insight.evidence.after == {"Monday": "11 AM - 10 PM"}


def test_first_snapshot_emits_single_baseline_snapshot():
    insights = build_profile_insights(
        competitor_id="10",
        competitor_name="Taco Hermanos",
        date_key="2026-03-14",
        current=make_profile(rating=3.0, review_count=5),
        previous=None,
        weekly=None,
    )
    assert _types(insights) == ["baseline_snapshot"]
    assert insights[0].title == "Baseline snapshot captured for Taco Hermanos"
    assert insights[0].evidence.date_key == "2026-03-14"
    assert insights[0].competitor_id == "10"


def test_weekly_history_alone_is_not_a_baseline():
    insights = build_profile_insights(
        competitor_id="10",
        competitor_name="Taco Hermanos",
        date_key="2026-03-14",
        current=make_profile(rating=4.5),
        previous=None,
        weekly=make_profile(rating=4.2),
    )
    assert _types(insights) == ["weekly_rating_trend"]


def test_unchanged_profile_emits_no_significant_change():
    insights = build_profile_insights(
        competitor_id="10",
        competitor_name="Taco Hermanos",
        date_key="2026-03-14",
        current=make_profile(),
        previous=make_profile(),
        weekly=None,
        previous_date_key="2026-03-13",
    )
    assert _types(insights) == ["no_significant_change"]
    assert insights[0].evidence.compared_with == "2026-03-13"


def test_missing_current_snapshot_emits_nothing():
    insights = build_profile_insights(
        competitor_id="10",
        competitor_name=None,
        date_key="2026-03-14",
        current=None,
        previous=make_profile(),
        weekly=make_profile(),
    )
    assert insights == []


def test_daily_and_weekly_rules_combine():
    insights = build_profile_insights(
        competitor_id="10",
        competitor_name="Taco Hermanos",
        date_key="2026-03-14",
        current=make_profile(rating=4.6, review_count=110),
        previous=make_profile(rating=4.5, review_count=108),
        weekly=make_profile(rating=4.3, review_count=100),
    )
    assert _types(insights) == [
        "rating_change",
        "review_velocity",
        "weekly_rating_trend",
        "weekly_review_trend",
    ]
