import asyncio

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_store
from api.main import app
from core.store import StoredInsight

TODAY = "2026-03-14"


def _insight(insight_type, severity, competitor_id="10"):
    return StoredInsight(
        location_id="1",
        competitor_id=competitor_id,
        date_key=TODAY,
        insight_type=insight_type,
        title=f"{insight_type} title",
        summary=f"{insight_type} summary",
        confidence="high",
        severity=severity,
        recommendations=[{"title": "Check it", "rationale": "Soon."}],
    )


@pytest.fixture()
def client(store):
    asyncio.run(store.upsert_insights([
        _insight("rating_change", "info"),
        _insight("cross_authority_risk", "critical", competitor_id=None),
        _insight("hours_changed", "warning"),
    ]))
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "competitive-signal-insights"}


def test_feed_is_ranked(client):
    response = client.get("/api/locations/1/insights", params={"date_key": TODAY})
    assert response.status_code == 200
    body = response.json()
    assert [i["insight_type"] for i in body] == ["cross_authority_risk", "hours_changed", "rating_change"]
    assert body[0]["urgency"] == "critical"
    assert body[0]["source"] == "seo"
    assert body[0]["competitor_id"] is None


def test_feedback_moves_weight_and_mutes_feed(client):
    vote = {"date_key": TODAY, "insight_type": "rating_change", "competitor_id": "10", "feedback": "not_useful"}
    for _ in range(7):
        response = client.post("/api/locations/1/insights/feedback", json=vote)
        assert response.status_code == 200

    body = response.json()
    assert body["weight"] == 0.3
    assert body["dismissed_count"] == 7
    assert body["suppressed"] is True

    feed = client.get("/api/locations/1/insights", params={"date_key": TODAY}).json()
    assert "rating_change" not in [i["insight_type"] for i in feed]
    full = client.get("/api/locations/1/insights", params={"date_key": TODAY, "include_suppressed": True}).json()
    muted = next(i for i in full if i["insight_type"] == "rating_change")
    assert muted["user_feedback"] == "not_useful"


def test_feedback_on_unknown_insight_is_404(client):
    vote = {"date_key": TODAY, "insight_type": "rating_change", "competitor_id": "99", "feedback": "useful"}
    assert client.post("/api/locations/1/insights/feedback", json=vote).status_code == 404


def test_briefing_and_cache_invalidation(client):
    first = client.get("/api/locations/1/briefing", params={"date_key": TODAY, "limit": 2}).json()
    assert [i["insight_type"] for i in first["content_json"]["items"]] == ["cross_authority_risk", "hours_changed"]
    assert len(app.state.briefing_cache) == 1

    vote = {"date_key": TODAY, "insight_type": "hours_changed", "competitor_id": "10", "feedback": "useful"}
    client.post("/api/locations/1/insights/feedback", json=vote)
    assert len(app.state.briefing_cache) == 0


def test_job_trigger(client):
    bad = client.post("/api/locations/1/jobs", json={"job_type": "ingest_snapshot", "date_key": TODAY})
    assert bad.status_code == 422

    ingest = {
        "job_type": "ingest_snapshot",
        "date_key": TODAY,
        "competitor_id": "11",
        "provider": "google_business_listing",
        "raw": {"title": "Burrito Barn", "rating": 4.1, "reviews_count": 64},
    }
    assert client.post("/api/locations/1/jobs", json=ingest).json()["items_processed"] == 1

    ok = client.post("/api/locations/1/jobs", json={"job_type": "competitor_insights", "date_key": TODAY})
    assert ok.status_code == 200
    assert ok.json() == {"status": "SUCCESS", "items_processed": 1, "errors": []}


def test_briefing_refreshes_when_another_process_rewrites_the_day(client, store):
    params = {"date_key": TODAY, "limit": 5}
    first = client.get("/api/locations/1/briefing", params=params).json()
    assert "review_velocity" not in [i["insight_type"] for i in first["content_json"]["items"]]

    asyncio.run(store.upsert_insights([_insight("review_velocity", "critical")]))

    second = client.get("/api/locations/1/briefing", params=params).json()
    assert "review_velocity" in [i["insight_type"] for i in second["content_json"]["items"]]
