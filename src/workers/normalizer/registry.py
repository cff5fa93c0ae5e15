"""
Provider registry — provider name → (snapshot kind, normalizer, diff hasher).

Several providers can feed the same snapshot kind (two profile sources
both produce a ``NormalizedSnapshot``); snapshots are stored and read
back under their kind, so the rules never care which provider filled it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from workers.diff_engine.fingerprint import (
    domain_rank_diff_hash,
    events_diff_hash,
    hash_payload,
    menu_diff_hash,
    profile_diff_hash,
    site_content_diff_hash,
)
from workers.normalizer.events import normalize_events_payload
from workers.normalizer.menu import normalize_menu_payload
from workers.normalizer.models import (
    AdsSnapshot,
    BacklinkSummary,
    DomainRankSnapshot,
    KeywordIntersectionSnapshot,
    MenuSnapshot,
    NormalizedEventsSnapshot,
    NormalizedSnapshot,
    SerpRankingsSnapshot,
    SiteContentSnapshot,
    TrafficHistory,
)
from workers.normalizer.profile import normalize_business_listing, normalize_place_details
from workers.normalizer.seo import (
    normalize_ads_search,
    normalize_backlinks_summary,
    normalize_domain_intersection,
    normalize_domain_rank_overview,
    normalize_historical_rank,
    normalize_serp_rankings,
)
from workers.normalizer.site_content import normalize_site_payload


class SnapshotKind(StrEnum):
    PROFILE = "profile"
    MENU = "menu"
    SITE_CONTENT = "site_content"
    EVENTS = "events"
    DOMAIN_RANK = "seo_domain_rank"
    TRAFFIC_HISTORY = "seo_traffic_history"
    BACKLINKS = "seo_backlinks"
    SERP_RANKINGS = "seo_serp_rankings"
    KEYWORD_INTERSECTION = "seo_keyword_intersection"
    ADS = "seo_ads"


@dataclass(frozen=True, slots=True)
class ProviderSpec:
    kind: SnapshotKind
    normalize: Callable[[Any], Any]
    diff_hash: Callable[[Any], str]


def _full_hash(snapshot: Any) -> str:
    return hash_payload(snapshot.to_dict())


PROVIDERS: dict[str, ProviderSpec] = {
    "google_business_listing": ProviderSpec(SnapshotKind.PROFILE, normalize_business_listing, profile_diff_hash),
    "google_place_details": ProviderSpec(SnapshotKind.PROFILE, normalize_place_details, profile_diff_hash),
    "menu_extract": ProviderSpec(SnapshotKind.MENU, normalize_menu_payload, menu_diff_hash),
    "site_content": ProviderSpec(SnapshotKind.SITE_CONTENT, normalize_site_payload, site_content_diff_hash),
    "dataforseo_google_events": ProviderSpec(SnapshotKind.EVENTS, normalize_events_payload, events_diff_hash),
    "seo_domain_rank_overview": ProviderSpec(SnapshotKind.DOMAIN_RANK, normalize_domain_rank_overview, domain_rank_diff_hash),
    "seo_historical_rank": ProviderSpec(SnapshotKind.TRAFFIC_HISTORY, normalize_historical_rank, _full_hash),
    "seo_backlinks_summary": ProviderSpec(SnapshotKind.BACKLINKS, normalize_backlinks_summary, _full_hash),
    "seo_serp_organic": ProviderSpec(SnapshotKind.SERP_RANKINGS, normalize_serp_rankings, _full_hash),
    "seo_domain_intersection": ProviderSpec(
        SnapshotKind.KEYWORD_INTERSECTION, normalize_domain_intersection, _full_hash,
    ),
    "seo_ads_search": ProviderSpec(SnapshotKind.ADS, normalize_ads_search, _full_hash),
}

# kind → class that rehydrates stored ``raw_data``
SNAPSHOT_TYPES: dict[SnapshotKind, type] = {
    SnapshotKind.PROFILE: NormalizedSnapshot,
    SnapshotKind.MENU: MenuSnapshot,
    SnapshotKind.SITE_CONTENT: SiteContentSnapshot,
    SnapshotKind.EVENTS: NormalizedEventsSnapshot,
    SnapshotKind.DOMAIN_RANK: DomainRankSnapshot,
    SnapshotKind.TRAFFIC_HISTORY: TrafficHistory,
    SnapshotKind.BACKLINKS: BacklinkSummary,
    SnapshotKind.SERP_RANKINGS: SerpRankingsSnapshot,
    SnapshotKind.KEYWORD_INTERSECTION: KeywordIntersectionSnapshot,
    SnapshotKind.ADS: AdsSnapshot,
}


class UnknownProviderError(KeyError):
    pass


def get_provider(name: str) -> ProviderSpec:
    try:
        return PROVIDERS[name]
    except KeyError:
        raise UnknownProviderError(name) from None


def load_snapshot(kind: SnapshotKind, raw_data: dict[str, Any] | None) -> Any | None:
    if raw_data is None:
        return None
    return SNAPSHOT_TYPES[kind].from_dict(raw_data)
