"""
Competitor profile rules: ratings, review counts and opening hours.

Daily rules read the diff against t-1, weekly rules the diff against t-7.
"""

from __future__ import annotations

import logging

from workers.diff_engine.analyzer import SnapshotDiff, diff_snapshots
from workers.insights.models import (
    BaselineEvidence,
    FieldDeltaEvidence,
    GeneratedInsight,
    HoursChangedEvidence,
    InsightType,
    NoChangeEvidence,
    Severity,
)
from workers.normalizer.models import Confidence, NormalizedSnapshot

logger = logging.getLogger(__name__)

DAILY_RATING_DELTA = 0.1
DAILY_REVIEW_DELTA = 2
WEEKLY_RATING_DELTA = 0.2
WEEKLY_REVIEW_DELTA = 5


def _points(value: float) -> str:
    return f"{value:g}"


def build_daily_insights(diff: SnapshotDiff, competitor_id: str | None = None) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []

    before = diff.before_profile
    after = diff.after_profile

    if diff.rating_delta is not None and abs(diff.rating_delta) >= DAILY_RATING_DELTA:
        direction = "increased" if diff.rating_delta >= 0 else "decreased"
        insights.append(GeneratedInsight(
            insight_type=InsightType.RATING_CHANGE,
            title=f"Rating {direction}",
            summary=f"Rating {direction} by {_points(abs(diff.rating_delta))} points.",
            confidence=Confidence.HIGH,
            severity=Severity.WARNING if diff.rating_delta < 0 else Severity.INFO,
            evidence=FieldDeltaEvidence(
                field="rating",
                delta=diff.rating_delta,
                before=before.rating,
                after=after.rating,
                window="t-1",
            ),
            competitor_id=competitor_id,
        ))

    if diff.review_count_delta is not None and abs(diff.review_count_delta) >= DAILY_REVIEW_DELTA:
        direction = "up" if diff.review_count_delta >= 0 else "down"
        insights.append(GeneratedInsight(
            insight_type=InsightType.REVIEW_VELOCITY,
            title="Review velocity changed",
            summary=f"Review count is {direction} by {abs(diff.review_count_delta)}.",
            confidence=Confidence.HIGH,
            severity=Severity.INFO,
            evidence=FieldDeltaEvidence(
                field="review_count",
                delta=diff.review_count_delta,
                before=before.review_count,
                after=after.review_count,
                window="t-1",
            ),
            competitor_id=competitor_id,
        ))

    if diff.hours_changed:
        change = next(c for c in diff.changes if c.field == "hours")
        insights.append(GeneratedInsight(
            insight_type=InsightType.HOURS_CHANGED,
            title="Hours updated",
            summary="Business hours were updated since the last snapshot.",
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=HoursChangedEvidence(before=dict(change.before), after=dict(change.after)),
            competitor_id=competitor_id,
        ))

    return insights


def build_weekly_insights(diff: SnapshotDiff, competitor_id: str | None = None) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []

    if diff.rating_delta is not None and abs(diff.rating_delta) >= WEEKLY_RATING_DELTA:
        insights.append(GeneratedInsight(
            insight_type=InsightType.WEEKLY_RATING_TREND,
            title="Weekly rating trend",
            summary=f"Rating shifted {_points(diff.rating_delta)} points over the last week.",
            confidence=Confidence.MEDIUM,
            severity=Severity.WARNING if diff.rating_delta < 0 else Severity.INFO,
            evidence=FieldDeltaEvidence(
                field="rating",
                delta=diff.rating_delta,
                before=diff.before_profile.rating,
                after=diff.after_profile.rating,
                window="t-7",
            ),
            competitor_id=competitor_id,
        ))

    if diff.review_count_delta is not None and abs(diff.review_count_delta) >= WEEKLY_REVIEW_DELTA:
        insights.append(GeneratedInsight(
            insight_type=InsightType.WEEKLY_REVIEW_TREND,
            title="Weekly review trend",
            summary=f"Review count changed by {diff.review_count_delta} over the last week.",
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO,
            evidence=FieldDeltaEvidence(
                field="review_count",
                delta=diff.review_count_delta,
                before=diff.before_profile.review_count,
                after=diff.after_profile.review_count,
                window="t-7",
            ),
            competitor_id=competitor_id,
        ))

    return insights


def build_profile_insights(
    *,
    competitor_id: str,
    competitor_name: str | None,
    date_key: str,
    current: NormalizedSnapshot | None,
    previous: NormalizedSnapshot | None,
    weekly: NormalizedSnapshot | None,
    previous_date_key: str | None = None,
) -> list[GeneratedInsight]:
    """
    All profile insights for one competitor on one day.

    A competitor seen for the first time (no t-1 or t-7 snapshot) gets a
    single ``baseline_snapshot`` and no diff rule runs. With a previous
    snapshot but nothing notable, a ``no_significant_change`` marker is
    emitted instead. Without a current snapshot nothing is emitted.
    """
    label = competitor_name or "competitor"

    if current is None:
        logger.debug("No snapshot for competitor %s on %s", competitor_id, date_key)
        return []

    if previous is None and weekly is None:
        logger.debug("First snapshot for competitor %s on %s, emitting baseline", competitor_id, date_key)
        return [GeneratedInsight(
            insight_type=InsightType.BASELINE_SNAPSHOT,
            title=f"Baseline snapshot captured for {label}",
            summary="First snapshot. Future runs will compare against this baseline.",
            confidence=Confidence.LOW,
            severity=Severity.INFO,
            evidence=BaselineEvidence(date_key=date_key),
            competitor_id=competitor_id,
        )]

    insights: list[GeneratedInsight] = []
    if previous is not None:
        insights.extend(build_daily_insights(diff_snapshots(previous, current), competitor_id))
    if weekly is not None:
        insights.extend(build_weekly_insights(diff_snapshots(weekly, current), competitor_id))

    if not insights and previous is not None:
        insights.append(GeneratedInsight(
            insight_type=InsightType.NO_SIGNIFICANT_CHANGE,
            title=f"No significant changes for {label}",
            summary="No meaningful changes detected.",
            confidence=Confidence.LOW,
            severity=Severity.INFO,
            evidence=NoChangeEvidence(compared_with=previous_date_key),
            competitor_id=competitor_id,
        ))

    return insights
