"""Builders for normalized snapshots used across the tests."""

from workers.normalizer.models import (
    EventVenue,
    EventsSummary,
    MenuCategory,
    MenuItem,
    MenuSnapshot,
    MenuType,
    NormalizedEvent,
    NormalizedEventsSnapshot,
    NormalizedSnapshot,
    ParseMeta,
    ProfileFields,
)

LOCATION_ID = "1"
COMPETITOR_ID = "10"
OTHER_COMPETITOR_ID = "11"


def make_profile(rating=4.5, review_count=200, hours=None) -> NormalizedSnapshot:
    return NormalizedSnapshot(
        profile=ProfileFields(title="Taco Hermanos", rating=rating, review_count=review_count),
        hours=hours,
    )


def make_menu(categories, menu_type=MenuType.DINE_IN) -> MenuSnapshot:
    """``categories`` maps category name to ``[(item name, price), ...]``."""
    built = [
        MenuCategory(
            name=name,
            menu_type=menu_type,
            items=[MenuItem(name=item, price_value=price) for item, price in items],
        )
        for name, items in categories.items()
    ]
    total = sum(len(c.items) for c in built)
    return MenuSnapshot(categories=built, parse_meta=ParseMeta(items_total=total))


def make_event(uid, title="Community Meetup", start="2026-03-14T19:00:00", venue_name=None,
               venue_address=None, url=None, **kwargs) -> NormalizedEvent:
    venue = EventVenue(name=venue_name, address=venue_address) if (venue_name or venue_address) else None
    return NormalizedEvent(uid=uid, title=title, start_datetime=start, venue=venue, url=url, **kwargs)


def make_events(events) -> NormalizedEventsSnapshot:
    by_date: dict[str, int] = {}
    for event in events:
        if event.start_datetime:
            day = event.start_datetime[:10]
            by_date[day] = by_date.get(day, 0) + 1
    return NormalizedEventsSnapshot(
        events=list(events),
        summary=EventsSummary(total_events=len(events), by_date=dict(sorted(by_date.items()))),
    )
