"""
Profile normalizers — business listing payloads → ``NormalizedSnapshot``.

Two upstream shapes are understood:
  - DataForSEO / Outscraper business info items
    (``title, rating, reviews_count, price_level, address, site, phone, work_hours``)
  - Google Places "place details" responses
    (``displayName.text, userRatingCount, regularOpeningHours.weekdayDescriptions`` ...)

Both end in :func:`normalize_snapshot`, which owns the numeric and
whitespace canonicalization so a snapshot read back from the store can be
re-normalized idempotently.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from workers.normalizer.models import (
    NormalizedSnapshot,
    ProfileFields,
    ReviewSnippet,
    as_dict,
    as_list,
)
from workers.normalizer.text import (
    collapse_whitespace,
    finite_number,
    money,
    non_negative_int,
    optional_text,
    price_level_text,
)

_MAX_REVIEWS = 6


def normalize_snapshot(snapshot: NormalizedSnapshot) -> NormalizedSnapshot:
    """Round rating to 2 decimals, clamp review count, collapse hours whitespace."""
    profile = snapshot.profile
    rating = money(profile.rating)
    review_count = non_negative_int(profile.review_count)
    hours = None
    if snapshot.hours is not None:
        hours = {day: collapse_whitespace(value) for day, value in snapshot.hours.items()}
    return replace(
        snapshot,
        profile=replace(profile, rating=rating, review_count=review_count),
        hours=hours,
    )


def normalize_business_listing(raw: Any) -> NormalizedSnapshot:
    """DataForSEO ``my_business_info`` / Outscraper item → snapshot."""
    item = as_dict(raw)

    reviews = [
        ReviewSnippet(
            rating=finite_number(r.get("review_rating", r.get("rating"))),
            text=optional_text(r.get("review_text", r.get("text"))),
            date=optional_text(r.get("review_datetime_utc", r.get("date"))),
            author=optional_text(r.get("author_title", r.get("author"))),
        )
        for r in as_list(item.get("reviews_data"))
        if isinstance(r, dict)
    ]

    snapshot = NormalizedSnapshot(
        profile=ProfileFields(
            title=optional_text(item.get("title")),
            rating=finite_number(item.get("rating")),
            review_count=non_negative_int(item.get("reviews_count")),
            price_level=price_level_text(item.get("price_level")),
            address=optional_text(item.get("address")),
            website=optional_text(item.get("site")),
            phone=optional_text(item.get("phone")),
        ),
        hours=_string_map(item.get("work_hours")),
        recent_reviews=[r for r in reviews if r.text][:_MAX_REVIEWS],
    )
    return normalize_snapshot(snapshot)


def normalize_place_details(raw: Any) -> NormalizedSnapshot:
    """Google Places (New) place details → snapshot."""
    details = as_dict(raw)
    phone = optional_text(details.get("internationalPhoneNumber")) or optional_text(
        details.get("nationalPhoneNumber")
    )

    hours: dict[str, str] | None = None
    descriptions = as_list(as_dict(details.get("regularOpeningHours")).get("weekdayDescriptions"))
    if descriptions:
        hours = {}
        for line in descriptions:
            if not isinstance(line, str) or ":" not in line:
                continue
            day, rest = line.split(":", 1)
            if day.strip() and rest.strip():
                hours[day.strip()] = rest.strip()

    reviews = [
        ReviewSnippet(
            rating=finite_number(r.get("rating")),
            text=optional_text(as_dict(r.get("text")).get("text")),
            date=optional_text(r.get("relativePublishTimeDescription")),
            author=optional_text(as_dict(r.get("authorAttribution")).get("displayName")),
        )
        for r in as_list(details.get("reviews"))
        if isinstance(r, dict)
    ]

    snapshot = NormalizedSnapshot(
        profile=ProfileFields(
            title=optional_text(as_dict(details.get("displayName")).get("text")),
            rating=finite_number(details.get("rating")),
            review_count=non_negative_int(details.get("userRatingCount")),
            price_level=price_level_text(details.get("priceLevel")),
            address=optional_text(details.get("formattedAddress")),
            website=optional_text(details.get("websiteUri")),
            phone=phone,
        ),
        hours=hours,
        recent_reviews=[r for r in reviews if r.text][:_MAX_REVIEWS],
    )
    return normalize_snapshot(snapshot)


def _string_map(value: Any) -> dict[str, str] | None:
    if not isinstance(value, dict):
        return None
    return {str(k): v for k, v in value.items() if isinstance(v, str)}
