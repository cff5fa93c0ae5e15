import asyncio
import json

import httpx

from core.config import settings
from core.notifications import slack
from core.store import StoredInsight


def _stored(insight_type, urgency, score, suppressed=False):
    return StoredInsight(
        location_id="1",
        competitor_id=None,
        date_key="2026-03-14",
        insight_type=insight_type,
        title=f"{insight_type} title",
        summary="summary",
        confidence="high",
        severity="critical",
        relevance_score=score,
        urgency=urgency,
        suppressed=suppressed,
    )


def test_alert_lists_unsuppressed_critical_insights_best_first():
    text, blocks = slack.build_critical_alert("Casa Verde", "2026-03-14", [
        _stored("cross_authority_risk", "critical", 80),
        _stored("rating_change", "warning", 60),
        _stored("hours_changed", "critical", 90),
        _stored("review_velocity", "critical", 95, suppressed=True),
    ])
    assert text == "🚨 2 critical insight(s) for Casa Verde on 2026-03-14"
    assert [b["text"]["text"].split("*")[1] for b in blocks[1:]] == [
        "hours_changed title",
        "cross_authority_risk title",
    ]


def test_no_alert_without_critical_insights():
    assert slack.build_critical_alert("Casa Verde", "2026-03-14", [_stored("rating_change", "info", 30)]) is None
    assert asyncio.run(slack.notify_critical_insights("Casa Verde", "2026-03-14", [])) is False


def test_send_skipped_without_webhook(monkeypatch):
    monkeypatch.setattr(settings, "slack_webhook_url", "")
    assert asyncio.run(slack.send_slack_alert("hello")) is False


def test_send_posts_blocks(monkeypatch):
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    real_client = httpx.AsyncClient
    monkeypatch.setattr(settings, "slack_webhook_url", "https://hooks.slack.test/T000")
    monkeypatch.setattr(
        slack.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    delivered = asyncio.run(slack.notify_critical_insights(
        "Casa Verde", "2026-03-14", [_stored("cross_authority_risk", "critical", 90)],
    ))
    assert delivered is True
    assert sent[0]["text"].startswith("🚨 1 critical insight(s)")
    assert sent[0]["blocks"][0]["type"] == "header"


def test_send_failure_returns_false(monkeypatch):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(settings, "slack_webhook_url", "https://hooks.slack.test/T000")
    monkeypatch.setattr(
        slack.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda r: httpx.Response(500)), **kwargs),
    )
    assert asyncio.run(slack.send_slack_alert("hello")) is False
