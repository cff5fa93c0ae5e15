"""
Site-feature rules: conversion features and delivery platforms a competitor
advertises on its website while the location does not.
"""

from __future__ import annotations

import logging

from workers.insights.models import (
    CompetitorContent,
    ConversionGapEvidence,
    DeliveryGapEvidence,
    GeneratedInsight,
    InsightType,
    Recommendation,
    Severity,
)
from workers.normalizer.models import Confidence, DetectedFeatures, SiteContentSnapshot

logger = logging.getLogger(__name__)

GAP_WARNING_AT = 2

# (feature flag, how it reads in a sentence), in report order
CONVERSION_FEATURES: list[tuple[str, str]] = [
    ("reservation", "online reservations"),
    ("online_ordering", "online ordering"),
    ("private_dining", "private dining page"),
    ("catering", "catering services"),
]


def feature_gaps(location: DetectedFeatures, competitor: DetectedFeatures) -> list[str]:
    return [
        label
        for flag, label in CONVERSION_FEATURES
        if getattr(competitor, flag) and not getattr(location, flag)
    ]


def conversion_gap_insights(
    location_site: SiteContentSnapshot,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    own = location_site.detected
    insights: list[GeneratedInsight] = []
    for comp in competitors:
        if comp.site_content is None:
            continue
        theirs = comp.site_content.detected
        gaps = feature_gaps(own, theirs)
        if not gaps:
            continue
        name = comp.competitor_name
        listed = ", ".join(gaps)
        insights.append(GeneratedInsight(
            insight_type=InsightType.CONVERSION_FEATURE_GAP,
            title=f"{name} offers {listed} on their website",
            summary=(
                f"{name}'s website includes {listed} which your site lacks. "
                "These features can convert visitors into customers."
            ),
            confidence=Confidence.HIGH,
            severity=Severity.WARNING if len(gaps) >= GAP_WARNING_AT else Severity.INFO,
            evidence=ConversionGapEvidence(
                competitor=name,
                missing_features=gaps,
                location_features=own.to_dict(),
                competitor_features=theirs.to_dict(),
            ),
            recommendations=[
                Recommendation(
                    title=f"Add {gap} to your website",
                    rationale=f"{name} offers {gap}. Adding this could improve your conversion rate.",
                )
                for gap in gaps
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def delivery_gap_insights(
    location_site: SiteContentSnapshot,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    own = sorted(set(location_site.detected.delivery_platforms))
    insights: list[GeneratedInsight] = []
    for comp in competitors:
        if comp.site_content is None:
            continue
        missing = sorted(set(comp.site_content.detected.delivery_platforms) - set(own))
        if not missing:
            continue
        name = comp.competitor_name
        insights.append(GeneratedInsight(
            insight_type=InsightType.DELIVERY_PLATFORM_GAP,
            title=f"{name} is on {', '.join(missing)}",
            summary=(
                f"{name} is listed on delivery platforms ({', '.join(missing)}) where you're "
                "not present. This could mean lost delivery revenue."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=DeliveryGapEvidence(
                competitor=name,
                missing_platforms=missing,
                location_platforms=own,
            ),
            recommendations=[
                Recommendation(
                    title=f"Consider joining {' and '.join(missing[:2])}",
                    rationale=(
                        "Competitors are capturing delivery orders on these platforms. "
                        "Evaluate the commission structure and potential revenue."
                    ),
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


def generate_content_insights(
    location_site: SiteContentSnapshot | None,
    competitors: list[CompetitorContent],
) -> list[GeneratedInsight]:
    if location_site is None:
        logger.debug("No location site content, skipping content rules")
        return []
    competitors = sorted(competitors, key=lambda c: c.competitor_id)
    return [
        *conversion_gap_insights(location_site, competitors),
        *delivery_gap_insights(location_site, competitors),
    ]
