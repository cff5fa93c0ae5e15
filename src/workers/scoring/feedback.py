"""
Consumer feedback → per-insight-type weight.

Every "useful" vote nudges the type's weight up by 0.1, every "not
useful" down by 0.1, within ``[0.1, 2.0]``. A type at or below 0.3 is
suppressed from the feed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum

from workers.normalizer.text import round_half_up

DEFAULT_WEIGHT = 1.0
WEIGHT_FLOOR = 0.1
WEIGHT_CEILING = 2.0
WEIGHT_STEP = 0.1
SUPPRESS_AT = 0.3


class Feedback(StrEnum):
    USEFUL = "useful"
    NOT_USEFUL = "not_useful"


@dataclass(frozen=True, slots=True)
class InsightPreference:
    consumer_id: str
    insight_type: str
    weight: float = DEFAULT_WEIGHT
    useful_count: int = 0
    dismissed_count: int = 0

    @property
    def suppressed(self) -> bool:
        return should_suppress(self.weight)


def update_weight(current: float, feedback: Feedback) -> float:
    if feedback == Feedback.USEFUL:
        moved = min(WEIGHT_CEILING, current + WEIGHT_STEP)
    else:
        moved = max(WEIGHT_FLOOR, current - WEIGHT_STEP)
    # two decimals, 0.2 + 0.1 must compare equal to 0.3
    return round_half_up(moved, 2)


def should_suppress(weight: float) -> bool:
    return weight <= SUPPRESS_AT


def apply_feedback(
    preference: InsightPreference | None,
    feedback: Feedback,
    *,
    consumer_id: str,
    insight_type: str,
) -> InsightPreference:
    """Next preference row after one vote; a missing row starts at the default weight."""
    preference = preference or InsightPreference(consumer_id=consumer_id, insight_type=insight_type)
    return replace(
        preference,
        weight=update_weight(preference.weight, feedback),
        useful_count=preference.useful_count + int(feedback == Feedback.USEFUL),
        dismissed_count=preference.dismissed_count + int(feedback == Feedback.NOT_USEFUL),
    )
