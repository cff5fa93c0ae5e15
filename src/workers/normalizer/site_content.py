"""
Site-content normalizer — scraped page markdown → ``SiteContentSnapshot``.

Feature flags are detected with small regex signature tables, the same
way platform fingerprints are matched: each feature is "on" as soon as
one of its patterns hits anywhere in the page text.
"""

from __future__ import annotations

import re
from typing import Any

from workers.normalizer.models import (
    CorePage,
    DetectedFeatures,
    SiteContentSnapshot,
    as_dict,
    as_list,
)
from workers.normalizer.text import optional_text

# ──────────────────────────────────────────────────────────────────────
# Feature signatures
# ──────────────────────────────────────────────────────────────────────

FEATURE_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "reservation": [
        re.compile(r"reserv(ation|e)", re.I),
        re.compile(r"book\s*a?\s*table", re.I),
        re.compile(r"opentable", re.I),
        re.compile(r"resy\.com", re.I),
        re.compile(r"yelp\.com/reservations", re.I),
    ],
    "online_ordering": [
        re.compile(r"order\s*online", re.I),
        re.compile(r"online\s*order", re.I),
        re.compile(r"place\s*an?\s*order", re.I),
        re.compile(r"toast(tab)?\.com", re.I),
        re.compile(r"chownow", re.I),
        re.compile(r"square\s*online", re.I),
    ],
    "private_dining": [
        re.compile(r"private\s*dining", re.I),
        re.compile(r"private\s*event", re.I),
        re.compile(r"private\s*room", re.I),
        re.compile(r"banquet", re.I),
    ],
    "catering": [
        re.compile(r"cater", re.I),
        re.compile(r"large\s*order", re.I),
        re.compile(r"group\s*order", re.I),
    ],
    "happy_hour": [
        re.compile(r"happy\s*hour", re.I),
        re.compile(r"drink\s*special", re.I),
        re.compile(r"weekday\s*special", re.I),
        re.compile(r"kids\s*eat\s*free", re.I),
    ],
}

DELIVERY_PLATFORMS: list[tuple[str, re.Pattern[str]]] = [
    ("doordash", re.compile(r"doordash", re.I)),
    ("ubereats", re.compile(r"uber\s*eats", re.I)),
    ("grubhub", re.compile(r"grubhub", re.I)),
    ("postmates", re.compile(r"postmates", re.I)),
    ("seamless", re.compile(r"seamless", re.I)),
    ("caviar", re.compile(r"caviar", re.I)),
]


def detect_features(text: str | None) -> DetectedFeatures:
    """Run every signature table over ``text``."""
    text = text or ""
    flags = {
        feature: any(p.search(text) for p in patterns)
        for feature, patterns in FEATURE_PATTERNS.items()
    }
    platforms = [name for name, pattern in DELIVERY_PLATFORMS if pattern.search(text)]
    return DetectedFeatures(delivery_platforms=platforms, **flags)


def normalize_site_content(
    website: str | None,
    markdown: str | None,
    core_pages: list[Any] | None = None,
) -> SiteContentSnapshot:
    pages = [CorePage.from_dict(p) for p in (core_pages or [])]
    return SiteContentSnapshot(
        website=optional_text(website),
        detected=detect_features(markdown),
        core_pages=sorted((p for p in pages if p.url), key=lambda p: (p.url, p.type)),
    )


def normalize_site_payload(raw: Any) -> SiteContentSnapshot:
    """Provider entry point: ``{"website", "markdown" | "pages": [{"url", "type", "markdown"}]}``."""
    data = as_dict(raw)
    pages = [as_dict(p) for p in as_list(data.get("pages"))]
    chunks = [data.get("markdown")] + [p.get("markdown") for p in pages]
    text = "\n".join(c for c in chunks if isinstance(c, str))
    return normalize_site_content(data.get("website"), text, pages)
