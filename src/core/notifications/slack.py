"""
Slack webhook notification sender.

Posts critical-urgency insights to a Slack channel via an incoming
webhook once an insight job has stored them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import httpx

from core.config import settings

logger = logging.getLogger(__name__)


def build_critical_alert(location_name: str, date_key: str, insights: Iterable) -> tuple[str, list[dict]] | None:
    """
    Build the fallback text and Block Kit blocks for critical insights.

    Returns None when none of ``insights`` is critical and unsuppressed.
    """
    critical = [
        i for i in insights
        if i.urgency == "critical" and not i.suppressed
    ]
    if not critical:
        return None

    critical.sort(key=lambda i: (-(i.relevance_score or 0), i.insight_type))
    text = f"🚨 {len(critical)} critical insight(s) for {location_name} on {date_key}"
    blocks: list[dict] = [
        {"type": "header", "text": {"type": "plain_text", "text": text}},
    ]
    for insight in critical:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{insight.title}* (score {insight.relevance_score})\n{insight.summary}",
            },
        })
    return text, blocks


async def send_slack_alert(
    text: str,
    *,
    blocks: list[dict] | None = None,
) -> bool:
    """
    Send a message to the configured Slack webhook.

    Args:
        text: Fallback text for notifications.
        blocks: Optional Slack Block Kit blocks for rich formatting.

    Returns:
        True if sent successfully, False otherwise.
    """
    if not settings.slack_webhook_url:
        logger.warning("SLACK_WEBHOOK_URL not configured. Alert skipped.")
        return False

    payload: dict = {"text": text}
    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                settings.slack_webhook_url,
                json=payload,
            )
            response.raise_for_status()
            logger.info("Slack alert sent successfully.")
            return True
    except httpx.HTTPError as exc:
        logger.error("Failed to send Slack alert: %s", exc)
        return False


async def notify_critical_insights(location_name: str, date_key: str, insights: Iterable) -> bool:
    alert = build_critical_alert(location_name, date_key, insights)
    if alert is None:
        return False
    text, blocks = alert
    return await send_slack_alert(text, blocks=blocks)
