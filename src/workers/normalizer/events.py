"""
Events normalizer — DataForSEO Google Events batches → ``NormalizedEventsSnapshot``.

Several keyword queries usually return overlapping events; items are
deduplicated by content UID across the whole batch, so the first query
that sees an event owns it.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any

from workers.diff_engine.fingerprint import compute_event_uid
from workers.normalizer.models import (
    EventsQuery,
    EventsSummary,
    EventVenue,
    NormalizedEvent,
    NormalizedEventsSnapshot,
    TicketLink,
    as_dict,
    as_list,
)
from workers.normalizer.text import extract_domain, optional_text, strip_www

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def event_date(start_datetime: str | None) -> str | None:
    """``YYYY-MM-DD`` prefix of an ISO timestamp."""
    if not start_datetime:
        return None
    match = _ISO_DATE.match(start_datetime)
    return match.group(1) if match else None


def event_domains(event: NormalizedEvent) -> list[str]:
    """Domains an event is reachable through: its own URL, then each ticket link."""
    domains: list[str] = []
    own = extract_domain(event.url)
    if own:
        domains.append(own)
    for ticket in event.tickets_and_info:
        domain = ticket.domain or extract_domain(ticket.url)
        if domain:
            domains.append(strip_www(domain))
    return domains


def _map_venue(raw: Any) -> EventVenue | None:
    if not isinstance(raw, dict):
        return None
    return EventVenue(
        name=optional_text(raw.get("name")),
        address=optional_text(raw.get("address")),
        maps_url=optional_text(raw.get("url")),
    )


def _map_tickets(raw: Any) -> list[TicketLink]:
    return [
        TicketLink(
            title=optional_text(t.get("title")),
            description=optional_text(t.get("description")),
            url=optional_text(t.get("url")),
            domain=optional_text(t.get("domain")),
        )
        for t in as_list(raw)
        if isinstance(t, dict)
    ]


def build_summary(events: list[NormalizedEvent]) -> EventsSummary:
    by_date: Counter[str] = Counter()
    by_venue: Counter[str] = Counter()
    by_domain: Counter[str] = Counter()
    for ev in events:
        day = event_date(ev.start_datetime)
        if day:
            by_date[day] += 1
        if ev.venue and ev.venue.name:
            by_venue[ev.venue.name.strip().lower()] += 1
        by_domain.update(event_domains(ev))
    return EventsSummary(
        total_events=len(events),
        by_date=dict(sorted(by_date.items())),
        by_venue_name=dict(sorted(by_venue.items())),
        by_domain=dict(sorted(by_domain.items())),
    )


def normalize_events_snapshot(
    batches: list[dict[str, Any]],
    queries: list[EventsQuery] | None = None,
) -> NormalizedEventsSnapshot:
    """
    ``batches`` is ``[{"keyword", "date_range", "items": [event_item, ...]}, ...]``.

    Items whose ``type`` is set to anything other than ``event_item`` are
    skipped (ads, carousels).
    """
    queries = queries or []
    seen: set[str] = set()
    events: list[NormalizedEvent] = []
    skipped = 0

    for batch in batches:
        batch = as_dict(batch)
        keyword = optional_text(batch.get("keyword")) or ""
        date_range = optional_text(batch.get("date_range")) or "week"
        for item in as_list(batch.get("items")):
            if not isinstance(item, dict):
                skipped += 1
                continue
            item_type = item.get("type")
            if item_type and item_type != "event_item":
                skipped += 1
                continue

            dates = as_dict(item.get("event_dates"))
            venue = _map_venue(item.get("location_info"))
            title = optional_text(item.get("title"))
            url = optional_text(item.get("url"))
            start = optional_text(dates.get("start_datetime"))
            displayed = optional_text(dates.get("displayed_dates"))

            uid = compute_event_uid(
                title=title,
                start_datetime=start,
                displayed_dates=displayed,
                venue_name=venue.name if venue else None,
                venue_address=venue.address if venue else None,
                url=url,
            )
            if uid in seen:
                continue
            seen.add(uid)

            events.append(
                NormalizedEvent(
                    uid=uid,
                    title=title,
                    description=optional_text(item.get("description")),
                    url=url,
                    start_datetime=start,
                    end_datetime=optional_text(dates.get("end_datetime")),
                    displayed_dates=displayed,
                    venue=venue,
                    tickets_and_info=_map_tickets(item.get("information_and_tickets")),
                    keyword=keyword,
                    date_range=date_range,
                )
            )

    if skipped:
        logger.debug("Skipped %d non-event items while normalizing events", skipped)

    horizon = queries[0].date_range if queries else "week"
    return NormalizedEventsSnapshot(
        horizon=horizon,
        queries=list(queries),
        events=events,
        summary=build_summary(events),
    )


def normalize_events_payload(raw: Any) -> NormalizedEventsSnapshot:
    """Provider entry point: ``{"queries": [...], "batches": [...]}``."""
    data = as_dict(raw)
    queries = [EventsQuery.from_dict(q) for q in as_list(data.get("queries"))]
    batches = [b for b in as_list(data.get("batches")) if isinstance(b, dict)]
    return normalize_events_snapshot(batches, [q for q in queries if q.keyword])
