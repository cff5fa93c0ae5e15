"""
Content fingerprints — stable event UIDs and snapshot diff hashes.

Diff hashes only cover fields that matter for change detection; capture
timestamps and raw provider blobs never enter the payload, so fetching an
unchanged entity twice yields the same hash. Payloads are serialized as
canonical JSON (sorted keys, compact separators).
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from workers.normalizer.models import (
    DomainRankSnapshot,
    MenuSnapshot,
    NormalizedEventsSnapshot,
    NormalizedSnapshot,
    SiteContentSnapshot,
)
from workers.normalizer.text import canonicalize, strip_query_params

EVENT_UID_LENGTH = 16

# Tags keep the two UID layouts in disjoint hash domains.
_STRUCTURED_TAG = "s"
_FALLBACK_TAG = "f"


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def hash_payload(payload: Any) -> str:
    return sha256_hex(canonical_json(payload))


# ── Event UID ─────────────────────────────────────────────────────────

def compute_event_uid(
    *,
    title: str | None = None,
    start_datetime: str | None = None,
    displayed_dates: str | None = None,
    venue_name: str | None = None,
    venue_address: str | None = None,
    url: str | None = None,
) -> str:
    """
    Stable 16-hex identifier for a real-world event.

    With a structured start time and a venue the UID covers
    ``title | start | venue name | venue address | url``; otherwise it
    falls back to ``title | displayed dates (or start) | url``. Text parts
    are canonicalized (case, punctuation, whitespace) and the URL loses its
    query string, so refetches through different keywords collapse.
    """
    if start_datetime and (venue_name or venue_address):
        parts = [
            _STRUCTURED_TAG,
            canonicalize(title),
            start_datetime,
            canonicalize(venue_name),
            canonicalize(venue_address),
            strip_query_params(url),
        ]
    else:
        parts = [
            _FALLBACK_TAG,
            canonicalize(title),
            displayed_dates or start_datetime or "",
            strip_query_params(url),
        ]
    return sha256_hex("|".join(parts))[:EVENT_UID_LENGTH]


# ── Snapshot diff hashes ──────────────────────────────────────────────

def profile_diff_hash(snapshot: NormalizedSnapshot) -> str:
    profile = snapshot.profile
    return hash_payload({
        "profile": {
            "rating": profile.rating,
            "review_count": profile.review_count,
            "price_level": profile.price_level,
            "address": profile.address,
            "website": profile.website,
            "phone": profile.phone,
        },
        "hours": snapshot.hours or {},
    })


def events_diff_hash(snapshot: NormalizedEventsSnapshot) -> str:
    fingerprints = sorted(
        (
            {
                "uid": ev.uid,
                "start_datetime": ev.start_datetime,
                "venue_name": ev.venue.name if ev.venue else None,
                "venue_address": ev.venue.address if ev.venue else None,
                "url": ev.url,
            }
            for ev in snapshot.events
        ),
        key=lambda fp: fp["uid"],
    )
    return hash_payload({
        "events": fingerprints,
        "summary": {
            "total_events": snapshot.summary.total_events,
            "by_date": snapshot.summary.by_date,
        },
    })


def menu_diff_hash(snapshot: MenuSnapshot) -> str:
    categories = [
        {
            "name": category.name,
            "items": sorted(
                ({"name": i.name, "price": i.price, "price_value": i.price_value} for i in category.items),
                key=lambda i: i["name"],
            ),
        }
        for category in sorted(snapshot.categories, key=lambda c: c.name)
    ]
    return hash_payload({"categories": categories})


def site_content_diff_hash(snapshot: SiteContentSnapshot) -> str:
    detected = snapshot.detected.to_dict()
    detected["delivery_platforms"] = sorted(snapshot.detected.delivery_platforms)
    return hash_payload({
        "website": snapshot.website,
        "detected": detected,
        "core_pages": sorted((p.url, p.type) for p in snapshot.core_pages),
    })


def domain_rank_diff_hash(snapshot: DomainRankSnapshot) -> str:
    return hash_payload({
        "domain": snapshot.domain,
        "organic": snapshot.organic.to_dict(),
        "paid": {
            "etv": snapshot.paid.etv,
            "ranked_keywords": snapshot.paid.ranked_keywords,
        },
    })
