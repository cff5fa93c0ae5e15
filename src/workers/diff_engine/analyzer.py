"""
Diff Engine — field-level comparison between two snapshots of one entity.

The same function serves both baselines: call it with yesterday's
snapshot for daily rules and with the snapshot from seven days ago for
weekly rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from workers.normalizer.models import MenuSnapshot, NormalizedSnapshot, ProfileFields
from workers.normalizer.text import round_half_up

logger = logging.getLogger(__name__)

# Scalar profile fields compared one by one, in report order.
_COMPARED_FIELDS: tuple[str, ...] = (
    "rating",
    "review_count",
    "price_level",
    "address",
    "website",
    "phone",
)


@dataclass(frozen=True, slots=True)
class FieldChange:
    field: str
    before: Any
    after: Any


@dataclass(frozen=True, slots=True)
class SnapshotDiff:
    changes: list[FieldChange] = field(default_factory=list)
    rating_delta: float | None = None
    review_count_delta: int | None = None
    hours_changed: bool = False
    before_profile: ProfileFields = field(default_factory=ProfileFields)
    after_profile: ProfileFields = field(default_factory=ProfileFields)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)


def diff_snapshots(
    previous: NormalizedSnapshot | None,
    current: NormalizedSnapshot,
) -> SnapshotDiff:
    """
    Compare ``previous.profile`` with ``current.profile`` field by field.

    Deltas are only set when both sides carry a number; ``rating_delta`` is
    rounded to 2 decimals. ``hours_changed`` is structural equality of the
    whole hours map (a missing map equals an empty one).
    """
    before = previous.profile if previous else ProfileFields()
    after = current.profile

    changes = [
        FieldChange(name, getattr(before, name), getattr(after, name))
        for name in _COMPARED_FIELDS
        if getattr(before, name) != getattr(after, name)
    ]

    before_hours = (previous.hours if previous else None) or {}
    after_hours = current.hours or {}
    hours_changed = before_hours != after_hours
    if hours_changed:
        changes.append(FieldChange("hours", before_hours, after_hours))

    rating_delta = None
    if before.rating is not None and after.rating is not None:
        rating_delta = round_half_up(after.rating - before.rating, 2)

    review_count_delta = None
    if before.review_count is not None and after.review_count is not None:
        review_count_delta = after.review_count - before.review_count

    return SnapshotDiff(
        changes=changes,
        rating_delta=rating_delta,
        review_count_delta=review_count_delta,
        hours_changed=hours_changed,
        before_profile=before,
        after_profile=after,
    )


@dataclass(frozen=True, slots=True)
class MenuDiff:
    previous_items: int
    current_items: int
    added_items: list[str] = field(default_factory=list)
    removed_items: list[str] = field(default_factory=list)

    @property
    def items_delta(self) -> int:
        return self.current_items - self.previous_items


def diff_menus(previous: MenuSnapshot | None, current: MenuSnapshot) -> MenuDiff | None:
    """Item-count delta plus added/removed item names; ``None`` without a baseline."""
    if previous is None:
        logger.debug("No previous menu snapshot, skipping menu diff")
        return None
    before = {item.name.lower().strip() for item in previous.items()}
    after = {item.name.lower().strip() for item in current.items()}
    return MenuDiff(
        previous_items=previous.parse_meta.items_total,
        current_items=current.parse_meta.items_total,
        added_items=sorted(after - before),
        removed_items=sorted(before - after),
    )
