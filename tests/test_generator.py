import logging

from factories import make_event, make_events, make_menu, make_profile

from workers.insights import generator
from workers.insights.generator import CompetitorProfileInput, InsightContext, generate_insights
from workers.insights.models import CompetitorContent, InsightType


def _context():
    return InsightContext(
        location_id="1",
        date_key="2026-03-14",
        profiles=[CompetitorProfileInput(
            competitor_id="10",
            competitor_name="Taco Hermanos",
            current=make_profile(rating=4.7),
            previous=make_profile(rating=4.5),
        )],
        location_menu=make_menu({"Mains": [("Burger", 10.0)]}),
        competitor_content=[CompetitorContent(
            competitor_id="10",
            competitor_name="Taco Hermanos",
            menu=make_menu({"Mains": [("Burger", 15.0)]}),
        )],
        events=make_events([make_event("e1", title="Food Truck Festival")]),
    )


def test_all_modules_contribute():
    types = {i.insight_type for i in generate_insights(_context())}
    assert InsightType.RATING_CHANGE in types
    assert InsightType.PRICE_POSITIONING_SHIFT in types
    assert InsightType.NEW_HIGH_SIGNAL_EVENT in types


def test_selected_modules_only():
    insights = generate_insights(_context(), ["competitor_insights"])
    assert {i.insight_type for i in insights} == {InsightType.RATING_CHANGE}


def test_failing_module_is_isolated(monkeypatch, caplog):
    def boom(ctx):
        raise RuntimeError("menu parser exploded")

    monkeypatch.setitem(generator.INSIGHT_MODULES, "content_insights", boom)
    with caplog.at_level(logging.ERROR, logger="workers.insights.generator"):
        insights = generate_insights(_context())

    types = {i.insight_type for i in insights}
    assert InsightType.RATING_CHANGE in types
    assert InsightType.NEW_HIGH_SIGNAL_EVENT in types
    assert InsightType.PRICE_POSITIONING_SHIFT not in types
    assert "content_insights failed for location 1 on 2026-03-14" in caplog.text


def test_missing_events_snapshot_skips_event_rules():
    ctx = _context()
    ctx.events = None
    assert generate_insights(ctx, ["event_insights"]) == []
