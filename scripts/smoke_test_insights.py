"""Smoke test: ingest two days of snapshots into a MemoryStore and print the briefing."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://localhost/insights")

from core.store import CompetitorRecord, LocationRecord, MemoryStore  # noqa: E402
from workers.briefing.cache import BriefingCache  # noqa: E402
from workers.briefing.generator import get_priority_briefing  # noqa: E402
from workers.jobs.contract import JobPayload  # noqa: E402
from workers.jobs.runner import process_job  # noqa: E402

LOCATION = "1"
COMPETITOR = "10"
YESTERDAY = "2026-03-13"
TODAY = "2026-03-14"


def _listing(rating: float, reviews: int, hours: str) -> dict:
    return {
        "title": "Taco Hermanos",
        "rating": rating,
        "reviews_count": reviews,
        "address": "415 Elm St, Springfield",
        "site": "https://tacohermanos.com",
        "work_hours": {"Monday": hours, "Saturday": "10 AM - 11 PM"},
    }


def _menu(price: float) -> dict:
    return {
        "menu_url": "https://example.com/menu",
        "categories": [{
            "name": "Tacos",
            "items": [
                {"name": "Al Pastor", "price": f"${price:.2f}", "priceValue": price},
                {"name": "Carnitas", "price": f"${price:.2f}", "priceValue": price},
            ],
        }],
    }


def _events() -> dict:
    return {
        "queries": [{"keyword": "events near springfield", "date_range": "week"}],
        "batches": [{
            "keyword": "events near springfield",
            "date_range": "week",
            "items": [{
                "type": "event_item",
                "title": "Live Mariachi Night",
                "url": "https://tacohermanos.com/events/mariachi",
                "event_dates": {"start_datetime": "2026-03-14T19:00:00"},
                "location_info": {"name": "Taco Hermanos", "address": "415 Elm St, Springfield"},
            }],
        }],
    }


async def main():
    print("🚀 Starting Smoke Test: Insight Pipeline")

    store = MemoryStore()
    store.add_location(LocationRecord(LOCATION, "Casa Verde", "12 Main St, Springfield"))
    store.add_competitor(CompetitorRecord(COMPETITOR, LOCATION, "Taco Hermanos", "415 Elm St", "https://tacohermanos.com"))

    jobs = [
        {"job_type": "ingest_snapshot", "competitor_id": COMPETITOR, "date_key": YESTERDAY,
         "provider": "google_business_listing", "raw": _listing(4.3, 210, "11 AM - 9 PM")},
        {"job_type": "ingest_snapshot", "competitor_id": COMPETITOR, "date_key": TODAY,
         "provider": "google_business_listing", "raw": _listing(4.5, 218, "11 AM - 10 PM")},
        {"job_type": "ingest_snapshot", "date_key": TODAY, "provider": "menu_extract", "raw": _menu(12.0)},
        {"job_type": "ingest_snapshot", "competitor_id": COMPETITOR, "date_key": TODAY,
         "provider": "menu_extract", "raw": _menu(14.4)},
        {"job_type": "ingest_snapshot", "date_key": TODAY, "provider": "dataforseo_google_events", "raw": _events()},
        {"job_type": "generate_insights", "date_key": TODAY},
    ]

    for job in jobs:
        payload = JobPayload.model_validate({"location_id": LOCATION, **job})
        result = await process_job(store, payload)
        print(f"  ✅ {payload.job_type}: {result.status.value} ({result.items_processed} items)")

    print("\n📋 Stored insights:")
    for insight in await store.list_insights(LOCATION, TODAY):
        print(f"  - [{insight.urgency} {insight.relevance_score}] {insight.insight_type}: {insight.title}")

    briefing = await get_priority_briefing(
        store, BriefingCache(), location_id=LOCATION, date_key=TODAY, consumer_id="default",
    )
    print("\n" + briefing.content_markdown)


if __name__ == "__main__":
    asyncio.run(main())
