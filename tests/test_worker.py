import asyncio
from contextlib import asynccontextmanager

import pytest

from workers import worker_settings
from workers.insights.correlation_rules import CorrelationThresholds


@pytest.fixture()
def ctx(store, monkeypatch):
    @asynccontextmanager
    async def fake_scope():
        yield None

    monkeypatch.setattr(worker_settings, "session_scope", fake_scope)
    monkeypatch.setattr(worker_settings, "SqlAlchemyStore", lambda session: store)
    return {"job_try": 2, "thresholds": CorrelationThresholds()}


def test_run_job_stores_and_reports(ctx, store, monkeypatch):
    alerts = []

    async def fake_notify(name, date_key, insights):
        alerts.append((name, date_key, len(insights)))
        return False

    monkeypatch.setattr(worker_settings, "notify_critical_insights", fake_notify)

    async def scenario():
        for competitor_id, title in (("10", "Taco Hermanos"), ("11", "Burrito Barn")):
            await worker_settings.run_job(
                ctx,
                job_type="ingest_snapshot",
                location_id="1",
                competitor_id=competitor_id,
                date_key="2026-03-14",
                provider="google_business_listing",
                raw={"title": title, "rating": 4.4, "reviews_count": 120},
            )
        return await worker_settings.run_job(
            ctx, job_type="competitor_insights", location_id="1", date_key="2026-03-14",
        )

    result = asyncio.run(scenario())

    assert result == {"status": "SUCCESS", "items_processed": 2, "errors": []}
    assert store.job_log[-1].attempt == 2
    assert {i.insight_type for i in store.insights.values()} == {"baseline_snapshot"}
    assert alerts == [("Casa Verde", "2026-03-14", 2)]


def test_daily_cron_enqueues_one_job_per_location(ctx, monkeypatch):
    enqueued = []

    class FakeRedis:
        async def enqueue_job(self, name, **kwargs):
            enqueued.append((name, kwargs))

    monkeypatch.setattr(worker_settings, "today_key", lambda: "2026-03-14")
    ctx["redis"] = FakeRedis()

    assert asyncio.run(worker_settings.enqueue_daily_insights(ctx)) == 1
    [(name, kwargs)] = enqueued
    assert name == "run_job"
    assert kwargs == {
        "job_type": "generate_insights",
        "location_id": "1",
        "date_key": "2026-03-14",
        "_job_id": "generate_insights:1:2026-03-14",
    }


def test_startup_builds_process_state():
    ctx = {}
    asyncio.run(worker_settings.startup(ctx))
    assert "briefing_cache" not in ctx
    assert ctx["thresholds"] == CorrelationThresholds.from_settings(worker_settings.settings)
