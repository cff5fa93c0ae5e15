"""
Canonical snapshot shapes produced by the normalizers.

Every shape is a frozen dataclass with a tolerant ``from_dict`` (used to
rehydrate ``raw_data`` read back from the store) and ``to_dict`` (what
gets persisted). ``from_dict`` never raises: unknown or malformed fields
degrade to ``None`` / empty collections.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from workers.normalizer.text import (
    finite_number,
    money,
    non_negative_int,
    optional_text,
    price_level_text,
)


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


CONFIDENCE_RANK: dict[Confidence, int] = {
    Confidence.HIGH: 3,
    Confidence.MEDIUM: 2,
    Confidence.LOW: 1,
}


class MenuType(StrEnum):
    DINE_IN = "dine_in"
    CATERING = "catering"
    BANQUET = "banquet"
    HAPPY_HOUR = "happy_hour"
    KIDS = "kids"
    OTHER = "other"


# ── Tolerant readers ──────────────────────────────────────────────────

def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def as_enum(enum_cls: type[StrEnum], value: Any, default: StrEnum) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def count_map(value: Any) -> dict[str, int]:
    return {
        str(key): count
        for key, raw in as_dict(value).items()
        if (count := non_negative_int(raw)) is not None
    }


class _Serializable:
    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


# ══════════════════════════════════════════════════════════════════════
# PROFILE (Places / Outscraper)
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class ProfileFields(_Serializable):
    title: str | None = None
    rating: float | None = None
    review_count: int | None = None
    price_level: str | None = None
    address: str | None = None
    website: str | None = None
    phone: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ProfileFields:
        data = as_dict(data)
        return cls(
            title=optional_text(data.get("title")),
            rating=money(data.get("rating")),
            review_count=non_negative_int(data.get("review_count")),
            price_level=price_level_text(data.get("price_level")),
            address=optional_text(data.get("address")),
            website=optional_text(data.get("website")),
            phone=optional_text(data.get("phone")),
        )


@dataclass(frozen=True, slots=True)
class ReviewSnippet(_Serializable):
    rating: float | None = None
    text: str | None = None
    date: str | None = None
    author: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ReviewSnippet:
        data = as_dict(data)
        return cls(
            rating=finite_number(data.get("rating")),
            text=optional_text(data.get("text")),
            date=optional_text(data.get("date")),
            author=optional_text(data.get("author")),
        )


@dataclass(frozen=True, slots=True)
class NormalizedSnapshot(_Serializable):
    """Profile snapshot of a business listing."""

    profile: ProfileFields = field(default_factory=ProfileFields)
    hours: dict[str, str] | None = None
    recent_reviews: list[ReviewSnippet] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> NormalizedSnapshot:
        data = as_dict(data)
        hours_raw = data.get("hours")
        hours = None
        if isinstance(hours_raw, dict):
            hours = {str(k): v for k, v in hours_raw.items() if isinstance(v, str)}
        return cls(
            profile=ProfileFields.from_dict(data.get("profile")),
            hours=hours,
            recent_reviews=[ReviewSnippet.from_dict(r) for r in as_list(data.get("recent_reviews"))],
        )


# ══════════════════════════════════════════════════════════════════════
# MENU
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class MenuItem(_Serializable):
    name: str
    description: str | None = None
    price: str | None = None
    price_value: float | None = None
    tags: list[str] = field(default_factory=list)

    @property
    def richness(self) -> int:
        """How many optional facts the record carries (price, description, tags)."""
        return int(bool(self.price)) + int(bool(self.description)) + int(bool(self.tags))

    @classmethod
    def from_dict(cls, data: Any) -> MenuItem:
        data = as_dict(data)
        return cls(
            name=optional_text(data.get("name")) or "",
            description=optional_text(data.get("description")),
            price=optional_text(data.get("price")),
            price_value=money(data.get("price_value")),
            tags=[str(t).lower().strip() for t in as_list(data.get("tags")) if str(t).strip()],
        )


@dataclass(frozen=True, slots=True)
class MenuCategory(_Serializable):
    name: str
    menu_type: MenuType = MenuType.DINE_IN
    items: list[MenuItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> MenuCategory:
        data = as_dict(data)
        items = [MenuItem.from_dict(i) for i in as_list(data.get("items"))]
        return cls(
            name=optional_text(data.get("name")) or "",
            menu_type=as_enum(MenuType, data.get("menu_type"), MenuType.DINE_IN),
            items=[i for i in items if i.name],
        )


@dataclass(frozen=True, slots=True)
class ParseMeta(_Serializable):
    items_total: int = 0
    confidence: Confidence = Confidence.LOW
    notes: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ParseMeta:
        data = as_dict(data)
        return cls(
            items_total=non_negative_int(data.get("items_total")) or 0,
            confidence=as_enum(Confidence, data.get("confidence"), Confidence.LOW),
            notes=[n for n in as_list(data.get("notes")) if isinstance(n, str)],
            sources=[s for s in as_list(data.get("sources")) if isinstance(s, str)],
        )


@dataclass(frozen=True, slots=True)
class MenuSnapshot(_Serializable):
    menu_url: str | None = None
    currency: str | None = None
    categories: list[MenuCategory] = field(default_factory=list)
    parse_meta: ParseMeta = field(default_factory=ParseMeta)

    def items(self, menu_type: MenuType | None = None) -> list[MenuItem]:
        return [
            item
            for category in self.categories
            if menu_type is None or category.menu_type == menu_type
            for item in category.items
        ]

    @classmethod
    def from_dict(cls, data: Any) -> MenuSnapshot:
        data = as_dict(data)
        categories = [MenuCategory.from_dict(c) for c in as_list(data.get("categories"))]
        return cls(
            menu_url=optional_text(data.get("menu_url")),
            currency=optional_text(data.get("currency")),
            categories=[c for c in categories if c.name],
            parse_meta=ParseMeta.from_dict(data.get("parse_meta")),
        )


# ══════════════════════════════════════════════════════════════════════
# SITE CONTENT
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class DetectedFeatures(_Serializable):
    reservation: bool = False
    online_ordering: bool = False
    private_dining: bool = False
    catering: bool = False
    happy_hour: bool = False
    delivery_platforms: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> DetectedFeatures:
        data = as_dict(data)
        return cls(
            reservation=data.get("reservation") is True,
            online_ordering=data.get("online_ordering") is True,
            private_dining=data.get("private_dining") is True,
            catering=data.get("catering") is True,
            happy_hour=data.get("happy_hour") is True,
            delivery_platforms=[p for p in as_list(data.get("delivery_platforms")) if isinstance(p, str)],
        )


@dataclass(frozen=True, slots=True)
class CorePage(_Serializable):
    url: str
    type: str = "other"
    title: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CorePage:
        data = as_dict(data)
        return cls(
            url=optional_text(data.get("url")) or "",
            type=optional_text(data.get("type")) or "other",
            title=optional_text(data.get("title")),
        )


@dataclass(frozen=True, slots=True)
class SiteContentSnapshot(_Serializable):
    website: str | None = None
    detected: DetectedFeatures = field(default_factory=DetectedFeatures)
    core_pages: list[CorePage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> SiteContentSnapshot:
        data = as_dict(data)
        pages = [CorePage.from_dict(p) for p in as_list(data.get("core_pages"))]
        return cls(
            website=optional_text(data.get("website")),
            detected=DetectedFeatures.from_dict(data.get("detected")),
            core_pages=[p for p in pages if p.url],
        )


# ══════════════════════════════════════════════════════════════════════
# EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class EventVenue(_Serializable):
    name: str | None = None
    address: str | None = None
    maps_url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> EventVenue:
        data = as_dict(data)
        return cls(
            name=optional_text(data.get("name")),
            address=optional_text(data.get("address")),
            maps_url=optional_text(data.get("maps_url")),
        )


@dataclass(frozen=True, slots=True)
class TicketLink(_Serializable):
    title: str | None = None
    description: str | None = None
    url: str | None = None
    domain: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> TicketLink:
        data = as_dict(data)
        return cls(
            title=optional_text(data.get("title")),
            description=optional_text(data.get("description")),
            url=optional_text(data.get("url")),
            domain=optional_text(data.get("domain")),
        )


@dataclass(frozen=True, slots=True)
class NormalizedEvent(_Serializable):
    uid: str
    title: str | None = None
    description: str | None = None
    url: str | None = None
    start_datetime: str | None = None
    end_datetime: str | None = None
    displayed_dates: str | None = None
    venue: EventVenue | None = None
    tickets_and_info: list[TicketLink] = field(default_factory=list)
    keyword: str = ""
    date_range: str = "week"

    @classmethod
    def from_dict(cls, data: Any) -> NormalizedEvent:
        data = as_dict(data)
        venue = data.get("venue")
        return cls(
            uid=optional_text(data.get("uid")) or "",
            title=optional_text(data.get("title")),
            description=optional_text(data.get("description")),
            url=optional_text(data.get("url")),
            start_datetime=optional_text(data.get("start_datetime")),
            end_datetime=optional_text(data.get("end_datetime")),
            displayed_dates=optional_text(data.get("displayed_dates")),
            venue=EventVenue.from_dict(venue) if isinstance(venue, dict) else None,
            tickets_and_info=[TicketLink.from_dict(t) for t in as_list(data.get("tickets_and_info"))],
            keyword=optional_text(data.get("keyword")) or "",
            date_range=optional_text(data.get("date_range")) or "week",
        )


@dataclass(frozen=True, slots=True)
class EventsQuery(_Serializable):
    keyword: str
    location_name: str = ""
    date_range: str = "week"
    depth: int = 10

    @classmethod
    def from_dict(cls, data: Any) -> EventsQuery:
        data = as_dict(data)
        return cls(
            keyword=optional_text(data.get("keyword")) or "",
            location_name=optional_text(data.get("location_name")) or "",
            date_range=optional_text(data.get("date_range")) or "week",
            depth=non_negative_int(data.get("depth")) or 10,
        )


@dataclass(frozen=True, slots=True)
class EventsSummary(_Serializable):
    total_events: int = 0
    by_date: dict[str, int] = field(default_factory=dict)
    by_venue_name: dict[str, int] = field(default_factory=dict)
    by_domain: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> EventsSummary:
        data = as_dict(data)
        return cls(
            total_events=non_negative_int(data.get("total_events")) or 0,
            by_date=count_map(data.get("by_date")),
            by_venue_name=count_map(data.get("by_venue_name")),
            by_domain=count_map(data.get("by_domain")),
        )


@dataclass(frozen=True, slots=True)
class NormalizedEventsSnapshot(_Serializable):
    version: str = "1.0"
    horizon: str = "week"
    queries: list[EventsQuery] = field(default_factory=list)
    events: list[NormalizedEvent] = field(default_factory=list)
    summary: EventsSummary = field(default_factory=EventsSummary)

    @classmethod
    def from_dict(cls, data: Any) -> NormalizedEventsSnapshot:
        data = as_dict(data)
        events = [NormalizedEvent.from_dict(e) for e in as_list(data.get("events"))]
        return cls(
            version=optional_text(data.get("version")) or "1.0",
            horizon=optional_text(data.get("horizon")) or "week",
            queries=[EventsQuery.from_dict(q) for q in as_list(data.get("queries"))],
            events=[e for e in events if e.uid],
            summary=EventsSummary.from_dict(data.get("summary")),
        )


# ══════════════════════════════════════════════════════════════════════
# SEARCH VISIBILITY (DataForSEO)
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class OrganicMetrics(_Serializable):
    etv: float = 0.0
    ranked_keywords: int = 0
    new_keywords: int = 0
    lost_keywords: int = 0
    up_keywords: int = 0
    down_keywords: int = 0
    distribution: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> OrganicMetrics:
        data = as_dict(data)
        return cls(
            etv=money(data.get("etv")) or 0.0,
            ranked_keywords=non_negative_int(data.get("ranked_keywords")) or 0,
            new_keywords=non_negative_int(data.get("new_keywords")) or 0,
            lost_keywords=non_negative_int(data.get("lost_keywords")) or 0,
            up_keywords=non_negative_int(data.get("up_keywords")) or 0,
            down_keywords=non_negative_int(data.get("down_keywords")) or 0,
            distribution=count_map(data.get("distribution")),
        )


@dataclass(frozen=True, slots=True)
class PaidMetrics(_Serializable):
    etv: float = 0.0
    ranked_keywords: int = 0
    estimated_cost: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> PaidMetrics:
        data = as_dict(data)
        return cls(
            etv=money(data.get("etv")) or 0.0,
            ranked_keywords=non_negative_int(data.get("ranked_keywords")) or 0,
            estimated_cost=money(data.get("estimated_cost")) or 0.0,
        )


@dataclass(frozen=True, slots=True)
class DomainRankSnapshot(_Serializable):
    domain: str | None = None
    organic: OrganicMetrics = field(default_factory=OrganicMetrics)
    paid: PaidMetrics = field(default_factory=PaidMetrics)

    @classmethod
    def from_dict(cls, data: Any) -> DomainRankSnapshot:
        data = as_dict(data)
        return cls(
            domain=optional_text(data.get("domain")),
            organic=OrganicMetrics.from_dict(data.get("organic")),
            paid=PaidMetrics.from_dict(data.get("paid")),
        )


@dataclass(frozen=True, slots=True)
class TrafficPoint(_Serializable):
    date: str
    organic_etv: float | None = None
    organic_keywords: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> TrafficPoint:
        data = as_dict(data)
        return cls(
            date=optional_text(data.get("date")) or "",
            organic_etv=money(data.get("organic_etv")),
            organic_keywords=non_negative_int(data.get("organic_keywords")),
        )


@dataclass(frozen=True, slots=True)
class TrafficHistory(_Serializable):
    """Monthly organic traffic points, oldest first."""

    domain: str | None = None
    history: list[TrafficPoint] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> TrafficHistory:
        data = as_dict(data)
        points = [TrafficPoint.from_dict(p) for p in as_list(data.get("history"))]
        return cls(
            domain=optional_text(data.get("domain")),
            history=sorted((p for p in points if p.date), key=lambda p: p.date),
        )


@dataclass(frozen=True, slots=True)
class BacklinkSummary(_Serializable):
    domain: str | None = None
    referring_domains: int | None = None
    backlinks: int | None = None
    rank: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> BacklinkSummary:
        data = as_dict(data)
        return cls(
            domain=optional_text(data.get("domain")),
            referring_domains=non_negative_int(data.get("referring_domains")),
            backlinks=non_negative_int(data.get("backlinks")),
            rank=non_negative_int(data.get("rank")),
        )


# ── Keyword positions, intersections, ads ──

def _rank(value: Any) -> int | None:
    """SERP position: a positive whole number, anything else is "not ranked"."""
    rank = non_negative_int(value)
    return rank if rank else None


@dataclass(frozen=True, slots=True)
class SerpRankEntry(_Serializable):
    """Organic position of each tracked domain for one keyword (None = not found)."""

    keyword: str
    positions: dict[str, int | None] = field(default_factory=dict)
    serp_features: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> SerpRankEntry:
        data = as_dict(data)
        return cls(
            keyword=optional_text(data.get("keyword")) or "",
            positions={
                domain: _rank(rank)
                for domain, rank in as_dict(data.get("positions")).items()
                if isinstance(domain, str) and domain
            },
            serp_features=[f for f in as_list(data.get("serp_features")) if isinstance(f, str)],
        )


@dataclass(frozen=True, slots=True)
class SerpRankingsSnapshot(_Serializable):
    entries: list[SerpRankEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> SerpRankingsSnapshot:
        entries = [SerpRankEntry.from_dict(e) for e in as_list(as_dict(data).get("entries"))]
        return cls(entries=[e for e in entries if e.keyword])


class KeywordGap(StrEnum):
    WIN = "win"        # we rank, they don't
    LOSS = "loss"      # they rank, we don't
    SHARED = "shared"


@dataclass(frozen=True, slots=True)
class IntersectionRow(_Serializable):
    keyword: str
    search_volume: int | None = None
    cpc: float | None = None
    own_rank: int | None = None
    competitor_rank: int | None = None

    @property
    def gap(self) -> KeywordGap:
        if self.own_rank is not None and self.competitor_rank is None:
            return KeywordGap.WIN
        if self.own_rank is None and self.competitor_rank is not None:
            return KeywordGap.LOSS
        return KeywordGap.SHARED

    @classmethod
    def from_dict(cls, data: Any) -> IntersectionRow:
        data = as_dict(data)
        return cls(
            keyword=optional_text(data.get("keyword")) or "",
            search_volume=non_negative_int(data.get("search_volume")),
            cpc=money(data.get("cpc")),
            own_rank=_rank(data.get("own_rank")),
            competitor_rank=_rank(data.get("competitor_rank")),
        )


@dataclass(frozen=True, slots=True)
class KeywordIntersectionSnapshot(_Serializable):
    """Keywords the location and one competitor domain are compared on."""

    competitor_domain: str | None = None
    rows: list[IntersectionRow] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> KeywordIntersectionSnapshot:
        data = as_dict(data)
        rows = [IntersectionRow.from_dict(r) for r in as_list(data.get("rows"))]
        return cls(
            competitor_domain=optional_text(data.get("competitor_domain")),
            rows=[r for r in rows if r.keyword],
        )


@dataclass(frozen=True, slots=True)
class AdCreative(_Serializable):
    keyword: str
    domain: str | None = None
    headline: str | None = None
    description: str | None = None
    position: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> AdCreative:
        data = as_dict(data)
        return cls(
            keyword=optional_text(data.get("keyword")) or "",
            domain=optional_text(data.get("domain")),
            headline=optional_text(data.get("headline")),
            description=optional_text(data.get("description")),
            position=_rank(data.get("position")),
        )


@dataclass(frozen=True, slots=True)
class AdsSnapshot(_Serializable):
    creatives: list[AdCreative] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> AdsSnapshot:
        return cls(creatives=[AdCreative.from_dict(c) for c in as_list(as_dict(data).get("creatives"))])
