"""
Menu & pricing rules.

Compares the location's menu with every competitor's menu:

    price positioning   dine-in average price gap (≥ 15 %, warning ≥ 30 %)
    catering price gap  catering average price gap (≥ 10 %, warning ≥ 25 %)
    category gap        categories the competitor lists and the location lacks
    signature items     ≥ 3 competitor item names absent from the location menu
    promo signal        first promotional keyword the competitor uses and the location doesn't
    menu change         the location's own item count moved by ≥ 3 since its last menu
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from workers.diff_engine.analyzer import diff_menus
from workers.insights.models import (
    CategoryGapEvidence,
    CompetitorContent,
    GeneratedInsight,
    InsightType,
    MenuChangeEvidence,
    PricePositioningEvidence,
    PromoSignalEvidence,
    Recommendation,
    Severity,
    SignatureItemEvidence,
)
from workers.normalizer.models import Confidence, MenuSnapshot, MenuType
from workers.normalizer.text import round_half_up

logger = logging.getLogger(__name__)

SIGNATURE_ITEM_MIN = 3
MENU_CHANGE_MIN = 3

PROMO_KEYWORDS: list[str] = [
    "happy hour",
    "weekday special",
    "kids eat free",
    "early bird",
    "lunch special",
    "brunch special",
    "prix fixe",
    "tasting menu",
    "all you can eat",
    "bottomless",
    "free dessert",
    "free appetizer",
]


@dataclass(frozen=True, slots=True)
class PriceGapRule:
    insight_type: InsightType
    menu_type: MenuType
    label: str
    threshold: float
    warning_at: float


PRICE_GAP_RULES: list[PriceGapRule] = [
    PriceGapRule(InsightType.PRICE_POSITIONING_SHIFT, MenuType.DINE_IN, "", 0.15, 0.30),
    PriceGapRule(InsightType.CATERING_PRICE_GAP, MenuType.CATERING, "catering ", 0.10, 0.25),
]


# ── Helpers ───────────────────────────────────────────────────────────

def average_price(menu: MenuSnapshot, menu_type: MenuType) -> tuple[float | None, int]:
    """Mean ``price_value`` over priced items of one menu type, plus how many were priced."""
    prices = [
        item.price_value
        for item in menu.items(menu_type)
        if item.price_value is not None and item.price_value > 0
    ]
    if not prices:
        return None, 0
    return sum(prices) / len(prices), len(prices)


def category_names(menu: MenuSnapshot) -> set[str]:
    return {c.name.lower().strip() for c in menu.categories}


def item_names(menu: MenuSnapshot) -> set[str]:
    return {item.name.lower().strip() for item in menu.items()}


def menu_text(menu: MenuSnapshot | None) -> str:
    if menu is None:
        return ""
    return " ".join(
        f"{item.name} {item.description or ''}".lower()
        for item in menu.items()
    )


def _pct(value: float) -> int:
    return int(round_half_up(value * 100, 0))


# ── Rules ─────────────────────────────────────────────────────────────

def price_gap_insights(
    location_menu: MenuSnapshot,
    competitors: list[CompetitorContent],
    rule: PriceGapRule,
) -> list[GeneratedInsight]:
    own_avg, own_count = average_price(location_menu, rule.menu_type)
    if own_avg is None:
        logger.debug("Location has no priced %s items, skipping %s", rule.menu_type, rule.insight_type)
        return []

    insights: list[GeneratedInsight] = []
    for comp in competitors:
        if comp.menu is None:
            continue
        comp_avg, comp_count = average_price(comp.menu, rule.menu_type)
        if comp_avg is None:
            continue
        diff = comp_avg - own_avg
        pct_diff = abs(diff) / own_avg
        if pct_diff < rule.threshold:
            continue

        pct = _pct(pct_diff)
        higher = diff > 0
        name = comp.competitor_name
        insights.append(GeneratedInsight(
            insight_type=rule.insight_type,
            title=f"{name} {rule.label}prices are {pct}% {'higher' if higher else 'lower'}",
            summary=(
                f"Your average {rule.label}price (${own_avg:.2f}) "
                f"{'is lower than' if higher else 'exceeds'} {name}'s (${comp_avg:.2f}). "
                + ("You may have room to increase prices." if higher
                   else "Consider whether your pricing remains competitive.")
            ),
            confidence=Confidence.HIGH,
            severity=Severity.WARNING if pct_diff >= rule.warning_at else Severity.INFO,
            evidence=PricePositioningEvidence(
                competitor=name,
                menu_type=str(rule.menu_type),
                location_avg_price=round_half_up(own_avg, 2),
                competitor_avg_price=round_half_up(comp_avg, 2),
                price_diff_pct=pct,
                location_item_count=own_count,
                competitor_item_count=comp_count,
            ),
            recommendations=[
                Recommendation(
                    title="Evaluate a price increase" if higher else "Review your pricing strategy",
                    rationale=(
                        f"{name} charges {pct}% more. Test raising prices on high-margin items."
                        if higher else
                        f"{name} is {pct}% cheaper. Ensure your value proposition justifies the premium."
                    ),
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def category_gap_insights(
    location_menu: MenuSnapshot,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    own = category_names(location_menu)
    insights: list[GeneratedInsight] = []
    for comp in competitors:
        if comp.menu is None or not comp.menu.categories:
            continue
        missing = sorted(category_names(comp.menu) - own)
        if not missing:
            continue
        name = comp.competitor_name
        insights.append(GeneratedInsight(
            insight_type=InsightType.CATEGORY_GAP,
            title=f"{name} offers categories you don't",
            summary=(
                f"{name} has menu categories that you lack: {', '.join(missing)}. "
                "Consider whether adding similar offerings could attract more customers."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=CategoryGapEvidence(competitor=name, missing_categories=missing),
            recommendations=[
                Recommendation(
                    title=f"Consider adding {' or '.join(missing[:2])}",
                    rationale="Competitor menu analysis shows demand for these categories in your market.",
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def signature_item_insights(
    location_menu: MenuSnapshot,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    own = item_names(location_menu)
    insights: list[GeneratedInsight] = []
    for comp in competitors:
        if comp.menu is None or not comp.menu.categories:
            continue
        unique = sorted(item_names(comp.menu) - own)
        if len(unique) < SIGNATURE_ITEM_MIN:
            continue
        name = comp.competitor_name
        insights.append(GeneratedInsight(
            insight_type=InsightType.SIGNATURE_ITEM_MISSING,
            title=f"{name} offers {len(unique)} items you don't",
            summary=(
                f"{name} has {len(unique)} menu items not on your menu. "
                f"Examples: {', '.join(unique[:5])}."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=SignatureItemEvidence(
                competitor=name,
                unique_items=unique[:10],
                total_unique_count=len(unique),
            ),
            recommendations=[
                Recommendation(
                    title="Explore adding popular competitor items",
                    rationale=f"Review whether items like {', '.join(unique[:3])} could be adapted for your menu.",
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def promo_signal_insights(
    location_menu: MenuSnapshot | None,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    """At most one insight per competitor: the first keyword in ``PROMO_KEYWORDS`` order."""
    own_text = menu_text(location_menu)
    insights: list[GeneratedInsight] = []
    for comp in competitors:
        comp_text = menu_text(comp.menu)
        if not comp_text:
            continue
        keyword = next(
            (kw for kw in PROMO_KEYWORDS if kw in comp_text and kw not in own_text),
            None,
        )
        if keyword is None:
            continue
        name = comp.competitor_name
        insights.append(GeneratedInsight(
            insight_type=InsightType.PROMO_SIGNAL_DETECTED,
            title=f'{name} promotes "{keyword}"',
            summary=(
                f"{name}'s menu features \"{keyword}\" which isn't on your menu. "
                "Promotional offerings like this can drive foot traffic during slower periods."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=PromoSignalEvidence(competitor=name, keyword=keyword),
            recommendations=[
                Recommendation(
                    title=f'Consider adding a "{keyword}" offering',
                    rationale=(
                        f'Competitors are leveraging "{keyword}" to attract customers. '
                        "Evaluate if this fits your business model."
                    ),
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def menu_change_insights(
    location_menu: MenuSnapshot,
    previous_menu: MenuSnapshot | None,
) -> list[GeneratedInsight]:
    diff = diff_menus(previous_menu, location_menu)
    if diff is None or abs(diff.items_delta) < MENU_CHANGE_MIN:
        return []
    delta = diff.items_delta
    return [GeneratedInsight(
        insight_type=InsightType.MENU_CHANGE_DETECTED,
        title=(
            f"Your menu grew by {delta} items" if delta > 0
            else f"Your menu shrank by {abs(delta)} items"
        ),
        summary=(
            f"Your menu changed from {diff.previous_items} to {diff.current_items} items. "
            + ("New additions detected." if delta > 0 else "Some items appear to have been removed.")
        ),
        confidence=Confidence.HIGH,
        severity=Severity.INFO,
        evidence=MenuChangeEvidence(
            previous_item_count=diff.previous_items,
            current_item_count=diff.current_items,
            delta=delta,
            added_items=diff.added_items[:10],
            removed_items=diff.removed_items[:10],
        ),
        recommendations=[
            Recommendation(
                title="Update your online presence",
                rationale=(
                    "Ensure your Google Business Profile, website, and delivery platform "
                    "menus all reflect the latest changes."
                ),
            ),
        ],
    )]


# ── Entry point ───────────────────────────────────────────────────────

def generate_menu_insights(
    location_menu: MenuSnapshot | None,
    competitors: list[CompetitorContent],
    previous_location_menu: MenuSnapshot | None = None,
) -> list[GeneratedInsight]:
    competitors = sorted(competitors, key=lambda c: c.competitor_id)
    insights = promo_signal_insights(location_menu, competitors)

    if location_menu is None or not location_menu.categories:
        logger.debug("No location menu, only promo signals evaluated")
        return insights

    for rule in PRICE_GAP_RULES:
        insights.extend(price_gap_insights(location_menu, competitors, rule))
    insights.extend(category_gap_insights(location_menu, competitors))
    insights.extend(signature_item_insights(location_menu, competitors))
    insights.extend(menu_change_insights(location_menu, previous_location_menu))
    return insights
