"""
Menu normalization and multi-source merge.

Extractors (Firecrawl JSON mode, search-grounded LLM answers, ...) each
produce a loose ``{"categories": [{"name", "items": [...]}], "currency"}``
document. :func:`normalize_extracted_menu` turns one of those into a
:class:`MenuParseResult`; :func:`merge_menus` reduces any number of them
into one. The reduction is commutative: feeding the same sources in a
different order yields the same merged menu.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from workers.normalizer.models import (
    CONFIDENCE_RANK,
    Confidence,
    MenuCategory,
    MenuItem,
    MenuSnapshot,
    MenuType,
    ParseMeta,
    as_dict,
    as_list,
    as_enum,
)
from workers.normalizer.text import clean_text, money, normalize_key, optional_text

# ── Category classification ───────────────────────────────────────────
# Checked in declaration order; first family with a hit wins.

_MENU_TYPE_PATTERNS: list[tuple[MenuType, list[re.Pattern[str]]]] = [
    (MenuType.BANQUET, [
        re.compile(r"\bbanquet", re.I),
        re.compile(r"\bevent\s*package", re.I),
        re.compile(r"\bprivate\s*dining\s*menu", re.I),
    ]),
    (MenuType.CATERING, [
        re.compile(r"\bcater", re.I),
        re.compile(r"\bgroup\s*dining", re.I),
        re.compile(r"\bparty\s*pack", re.I),
        re.compile(r"\bparty\s*platter", re.I),
        re.compile(r"\bbuffet\s*package", re.I),
        re.compile(r"\blarge\s*party", re.I),
        re.compile(r"\bcorporate\s*(lunch|dinner|event)", re.I),
    ]),
    (MenuType.HAPPY_HOUR, [
        re.compile(r"\bhappy\s*hour", re.I),
        re.compile(r"\bhh\s*special", re.I),
        re.compile(r"\bdrink\s*special", re.I),
    ]),
    (MenuType.KIDS, [
        re.compile(r"\bkid", re.I),
        re.compile(r"\bchild", re.I),
        re.compile(r"\blittle\s*ones", re.I),
        re.compile(r"\bjunior", re.I),
    ]),
]


def classify_menu_category(category_name: str) -> MenuType:
    for menu_type, patterns in _MENU_TYPE_PATTERNS:
        if any(p.search(category_name) for p in patterns):
            return menu_type
    return MenuType.DINE_IN


def confidence_for_item_count(total_items: int) -> Confidence:
    if total_items >= 10:
        return Confidence.HIGH
    if total_items >= 3:
        return Confidence.MEDIUM
    return Confidence.LOW


@dataclass(frozen=True, slots=True)
class MenuParseResult:
    """One source's menu after cleanup, before merging."""

    categories: list[MenuCategory] = field(default_factory=list)
    currency: str | None = None
    confidence: Confidence = Confidence.LOW
    notes: list[str] = field(default_factory=list)
    source: str | None = None

    @property
    def items_total(self) -> int:
        return sum(len(c.items) for c in self.categories)


# ── Single source ─────────────────────────────────────────────────────

def normalize_menu_item(raw: Any) -> MenuItem:
    data = as_dict(raw)
    description = clean_text(data.get("description"))
    return MenuItem(
        name=clean_text(data.get("name")),
        description=description or None,
        price=optional_text(data.get("price")),
        price_value=money(data.get("priceValue", data.get("price_value"))),
        tags=[str(t).lower().strip() for t in as_list(data.get("tags")) if str(t).strip()],
    )


def normalize_extracted_menu(extracted: Any, *, source: str | None = None) -> MenuParseResult:
    """Clean one extractor's output; never raises on malformed input."""
    data = as_dict(extracted)
    raw_categories = [c for c in as_list(data.get("categories")) if isinstance(c, dict)]
    if not raw_categories:
        return MenuParseResult(notes=["No menu data extracted from page"], source=source)

    categories: list[MenuCategory] = []
    for raw in raw_categories:
        name = clean_text(raw.get("name"))
        items = [normalize_menu_item(i) for i in as_list(raw.get("items"))]
        items = [i for i in items if i.name]
        if not name or not items:
            continue
        declared = raw.get("menuType", raw.get("menu_type"))
        menu_type = (
            as_enum(MenuType, declared, MenuType.DINE_IN)
            if declared
            else classify_menu_category(name)
        )
        categories.append(MenuCategory(name=name, menu_type=menu_type, items=items))

    total = sum(len(c.items) for c in categories)
    currency = optional_text(data.get("currency")) or ("USD" if categories else None)
    return MenuParseResult(
        categories=categories,
        currency=currency,
        confidence=confidence_for_item_count(total),
        notes=[f"Extracted {total} items across {len(categories)} categories"],
        source=source,
    )


# ── Merge ─────────────────────────────────────────────────────────────

def _item_order(item: MenuItem) -> tuple:
    return (
        item.richness,
        item.price or "",
        item.price_value if item.price_value is not None else -1.0,
        item.description or "",
        tuple(item.tags),
        item.name,
    )


def _pick_item(current: MenuItem, candidate: MenuItem) -> MenuItem:
    """Strictly richer wins; equal richness falls back to a content ordering."""
    return candidate if _item_order(candidate) > _item_order(current) else current


def merge_menus(results: list[MenuParseResult]) -> MenuParseResult:
    """Merge several parsed menus, deduplicating categories and items by normalized key."""
    if not results:
        return MenuParseResult(notes=["No menu results to merge"])
    if len(results) == 1:
        return results[0]

    names: dict[str, str] = {}
    menu_types: dict[str, MenuType] = {}
    items: dict[str, dict[str, MenuItem]] = {}

    for result in results:
        for category in result.categories:
            key = normalize_key(category.name)
            if not key:
                continue
            names[key] = min(names.get(key, category.name), category.name)
            known = menu_types.get(key, MenuType.DINE_IN)
            if known == MenuType.DINE_IN and category.menu_type != MenuType.DINE_IN:
                known = category.menu_type
            elif known != MenuType.DINE_IN and category.menu_type != MenuType.DINE_IN:
                known = min(known, category.menu_type)
            menu_types[key] = known

            bucket = items.setdefault(key, {})
            for item in category.items:
                item_key = normalize_key(item.name)
                if not item_key:
                    continue
                existing = bucket.get(item_key)
                bucket[item_key] = item if existing is None else _pick_item(existing, item)

    categories = [
        MenuCategory(
            name=names[key],
            menu_type=menu_types[key],
            items=[bucket[item_key] for item_key in sorted(bucket)],
        )
        for key, bucket in sorted(items.items())
        if bucket
    ]
    total = sum(len(c.items) for c in categories)

    source_confidence = max(
        (r.confidence for r in results), key=lambda c: CONFIDENCE_RANK[c]
    )
    count_confidence = confidence_for_item_count(total)
    confidence = max(source_confidence, count_confidence, key=lambda c: CONFIDENCE_RANK[c])

    currencies = sorted({r.currency for r in results if r.currency})
    notes = sorted({note for r in results for note in r.notes})
    notes.append(f"Merged from {len(results)} sources ({total} items across {len(categories)} categories)")

    return MenuParseResult(
        categories=categories,
        currency=currencies[0] if currencies else None,
        confidence=confidence,
        notes=notes,
        source=",".join(sorted({r.source for r in results if r.source})) or None,
    )


def build_menu_snapshot(result: MenuParseResult, *, menu_url: str | None = None) -> MenuSnapshot:
    sources = sorted(set(result.source.split(","))) if result.source else []
    return MenuSnapshot(
        menu_url=menu_url,
        currency=result.currency,
        categories=sorted(result.categories, key=lambda c: c.name),
        parse_meta=ParseMeta(
            items_total=result.items_total,
            confidence=result.confidence,
            notes=list(result.notes),
            sources=sources,
        ),
    )


def normalize_menu_payload(raw: Any) -> MenuSnapshot:
    """
    Provider entry point: ``{"menu_url", "sources": [extracted, ...]}`` or a
    single extracted document.
    """
    data = as_dict(raw)
    raw_sources = as_list(data.get("sources"))
    if raw_sources:
        parsed = [
            normalize_extracted_menu(as_dict(s).get("menu", s), source=optional_text(as_dict(s).get("source")))
            for s in raw_sources
        ]
        merged = merge_menus(parsed)
    else:
        merged = normalize_extracted_menu(data, source=optional_text(data.get("source")))
    return build_menu_snapshot(merged, menu_url=optional_text(data.get("menu_url")))
