"""
Search-visibility normalizers (DataForSEO Labs / Backlinks).

Shapes kept: the domain rank overview, the monthly historical rank
series, the backlinks summary, per-keyword SERP positions of the tracked
domains, the domain intersection against one competitor, and the paid
ads seen for tracked keywords.
"""

from __future__ import annotations

from typing import Any

from workers.normalizer.models import (
    AdCreative,
    AdsSnapshot,
    BacklinkSummary,
    DomainRankSnapshot,
    IntersectionRow,
    KeywordIntersectionSnapshot,
    OrganicMetrics,
    PaidMetrics,
    SerpRankEntry,
    SerpRankingsSnapshot,
    TrafficHistory,
    TrafficPoint,
    as_dict,
    as_list,
)
from workers.normalizer.text import money, non_negative_int, optional_text, website_domain

# (bucket, DataForSEO position keys folded into it)
_DISTRIBUTION_BUCKETS: list[tuple[str, tuple[str, ...]]] = [
    ("pos_1", ("pos_1",)),
    ("pos_2_3", ("pos_2_3",)),
    ("pos_4_10", ("pos_4_10",)),
    ("pos_11_20", ("pos_11_20",)),
    ("pos_21_50", ("pos_21_30", "pos_31_40", "pos_41_50")),
    ("pos_51_100", ("pos_51_60", "pos_61_70", "pos_71_80", "pos_81_90", "pos_91_100")),
]


def _first_item(result: Any) -> dict[str, Any]:
    items = as_list(as_dict(result).get("items"))
    return as_dict(items[0]) if items else {}


def _count(value: Any) -> int:
    return non_negative_int(value) or 0


def rank_distribution(metrics: Any) -> dict[str, int]:
    metrics = as_dict(metrics)
    return {
        bucket: sum(_count(metrics.get(key)) for key in keys)
        for bucket, keys in _DISTRIBUTION_BUCKETS
    }


def normalize_domain_rank_overview(result: Any, domain: str | None = None) -> DomainRankSnapshot:
    item = _first_item(result)
    metrics = as_dict(item.get("metrics", item))
    organic = as_dict(metrics.get("organic"))
    paid = as_dict(metrics.get("paid"))
    return DomainRankSnapshot(
        domain=optional_text(domain) or optional_text(as_dict(result).get("target")),
        organic=OrganicMetrics(
            etv=money(organic.get("etv")) or 0.0,
            ranked_keywords=_count(organic.get("count")),
            new_keywords=_count(organic.get("is_new")),
            lost_keywords=_count(organic.get("is_lost")),
            up_keywords=_count(organic.get("is_up")),
            down_keywords=_count(organic.get("is_down")),
            distribution=rank_distribution(organic),
        ),
        paid=PaidMetrics(
            etv=money(paid.get("etv")) or 0.0,
            ranked_keywords=_count(paid.get("count")),
            estimated_cost=money(paid.get("estimated_paid_traffic_cost")) or 0.0,
        ),
    )


def normalize_historical_rank(result: Any, domain: str | None = None) -> TrafficHistory:
    """Monthly items (``year``, ``month``, ``metrics.organic``) → sorted traffic points."""
    points: dict[str, TrafficPoint] = {}
    for raw in as_list(as_dict(result).get("items")):
        item = as_dict(raw)
        year = non_negative_int(item.get("year"))
        month = non_negative_int(item.get("month"))
        if not year or not month or month > 12:
            continue
        organic = as_dict(as_dict(item.get("metrics", item)).get("organic"))
        key = f"{year:04d}-{month:02d}"
        points[key] = TrafficPoint(
            date=key,
            organic_etv=money(organic.get("etv")),
            organic_keywords=non_negative_int(organic.get("count")),
        )
    return TrafficHistory(
        domain=optional_text(domain) or optional_text(as_dict(result).get("target")),
        history=[points[key] for key in sorted(points)],
    )


def normalize_backlinks_summary(result: Any, domain: str | None = None) -> BacklinkSummary:
    data = as_dict(result)
    item = _first_item(data) or data
    return BacklinkSummary(
        domain=optional_text(domain) or optional_text(item.get("target")) or optional_text(data.get("target")),
        referring_domains=non_negative_int(item.get("referring_domains")),
        backlinks=non_negative_int(item.get("backlinks")),
        rank=non_negative_int(item.get("rank")),
    )


def _serp_rank(item: dict[str, Any]) -> int | None:
    rank = non_negative_int(item.get("rank_group", item.get("rank_absolute")))
    return rank or None


def normalize_serp_keyword(result: Any, domains: list[str]) -> SerpRankEntry:
    """One organic SERP → the first organic position of each tracked domain."""
    data = as_dict(result)
    organic = [as_dict(i) for i in as_list(data.get("items")) if as_dict(i).get("type") == "organic"]
    positions: dict[str, int | None] = {}
    for domain in domains:
        found = next((i for i in organic if website_domain(optional_text(i.get("domain"))) == domain), None)
        positions[domain] = _serp_rank(found) if found else None
    return SerpRankEntry(
        keyword=optional_text(data.get("keyword")) or "",
        positions=positions,
        serp_features=[t for t in as_list(data.get("item_types")) if isinstance(t, str)],
    )


def normalize_serp_rankings(payload: Any) -> SerpRankingsSnapshot:
    """``{"domains": [...], "results": [serp, ...]}`` → one entry per keyword."""
    data = as_dict(payload)
    domains = sorted({d for d in (website_domain(optional_text(x)) for x in as_list(data.get("domains"))) if d})
    entries: dict[str, SerpRankEntry] = {}
    for result in as_list(data.get("results")):
        entry = normalize_serp_keyword(result, domains)
        if entry.keyword:
            entries[entry.keyword.lower()] = entry
    return SerpRankingsSnapshot(entries=[entries[k] for k in sorted(entries)])


def _domain_rank(element: Any) -> int | None:
    element = as_dict(element)
    return _serp_rank(as_dict(element.get("serp_item")) or element)


def normalize_domain_intersection(result: Any, competitor_domain: str | None = None) -> KeywordIntersectionSnapshot:
    """Labs domain intersection (target1 = location, target2 = competitor)."""
    data = as_dict(result)
    rows: dict[str, IntersectionRow] = {}
    for raw in as_list(data.get("items")):
        item = as_dict(raw)
        keyword_data = as_dict(item.get("keyword_data"))
        keyword = optional_text(keyword_data.get("keyword"))
        if not keyword:
            continue
        info = as_dict(keyword_data.get("keyword_info"))
        rows[keyword.lower()] = IntersectionRow(
            keyword=keyword,
            search_volume=non_negative_int(info.get("search_volume")),
            cpc=money(info.get("cpc")),
            own_rank=_domain_rank(item.get("first_domain_serp_element")),
            competitor_rank=_domain_rank(item.get("second_domain_serp_element")),
        )
    return KeywordIntersectionSnapshot(
        competitor_domain=website_domain(optional_text(competitor_domain) or optional_text(data.get("target2"))),
        rows=[rows[k] for k in sorted(rows)],
    )


def normalize_ads_search(payload: Any) -> AdsSnapshot:
    """``{"results": [{"keyword": ..., "items": [...]}]}`` → paid creatives per keyword."""
    creatives: list[AdCreative] = []
    for raw in as_list(as_dict(payload).get("results")):
        result = as_dict(raw)
        keyword = optional_text(result.get("keyword"))
        if not keyword:
            continue
        for item in map(as_dict, as_list(result.get("items"))):
            creatives.append(AdCreative(
                keyword=keyword,
                domain=website_domain(optional_text(item.get("domain"))),
                headline=optional_text(item.get("title")),
                description=optional_text(item.get("description")),
                position=_serp_rank(item),
            ))
    return AdsSnapshot(creatives=creatives)
