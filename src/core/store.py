"""
Persistence boundary.

``IntelligenceStore`` is everything the jobs and the API read or write.
Two implementations:

  - ``SqlAlchemyStore`` — PostgreSQL via the async session; every write is
    ``INSERT ... ON CONFLICT DO UPDATE`` on the table's natural key, so a
    replayed job overwrites instead of duplicating.
  - ``MemoryStore`` — dicts keyed by the same natural keys, for local runs
    and tests.

Entity ids are strings at this boundary; the SQL store converts them to
the BIGINT primary keys.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Float, Numeric, cast, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import (
    Competitor,
    CompetitorSnapshot,
    EventMatch,
    Insight,
    InsightPreferenceRow,
    JobExecutionLog,
    JobStatus,
    Location,
    LocationSnapshot,
)
from workers.event_matcher.matcher import EventMatchRecord
from workers.scoring.feedback import (
    WEIGHT_CEILING,
    WEIGHT_FLOOR,
    WEIGHT_STEP,
    Feedback,
    InsightPreference,
    apply_feedback,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════
# RECORDS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class LocationRecord:
    id: str
    name: str
    address: str | None = None
    website: str | None = None


@dataclass(frozen=True, slots=True)
class CompetitorRecord:
    id: str
    location_id: str
    name: str
    address: str | None = None
    website: str | None = None


@dataclass(frozen=True, slots=True)
class SnapshotRecord:
    entity_id: str
    provider: str
    date_key: str
    raw_data: dict[str, Any]
    diff_hash: str


@dataclass(frozen=True, slots=True)
class StoredInsight:
    location_id: str
    competitor_id: str | None
    date_key: str
    insight_type: str
    title: str
    summary: str
    confidence: str
    severity: str
    evidence: dict[str, Any] = field(default_factory=dict)
    recommendations: list[dict[str, Any]] = field(default_factory=list)
    relevance_score: int | None = None
    urgency: str | None = None
    suppressed: bool = False
    status: str = "new"
    user_feedback: str | None = None

    @property
    def natural_key(self) -> tuple[str, str | None, str, str]:
        return (self.location_id, self.competitor_id, self.date_key, self.insight_type)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class JobLogEntry:
    job_type: str
    status: JobStatus
    location_id: str | None = None
    competitor_id: str | None = None
    date_key: str | None = None
    attempt: int = 1
    items_processed: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


# ══════════════════════════════════════════════════════════════════════
# INTERFACE
# ══════════════════════════════════════════════════════════════════════

class IntelligenceStore(abc.ABC):
    # ── Configuration ──
    @abc.abstractmethod
    async def get_location(self, location_id: str) -> LocationRecord | None: ...

    @abc.abstractmethod
    async def list_active_locations(self) -> list[LocationRecord]: ...

    @abc.abstractmethod
    async def list_competitors(self, location_id: str) -> list[CompetitorRecord]: ...

    # ── Snapshots ──
    @abc.abstractmethod
    async def get_location_snapshot(self, location_id: str, provider: str, date_key: str) -> SnapshotRecord | None: ...

    @abc.abstractmethod
    async def latest_location_snapshot(self, location_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None: ...

    @abc.abstractmethod
    async def upsert_location_snapshot(self, snapshot: SnapshotRecord) -> None: ...

    @abc.abstractmethod
    async def get_competitor_snapshot(self, competitor_id: str, provider: str, date_key: str) -> SnapshotRecord | None: ...

    @abc.abstractmethod
    async def latest_competitor_snapshot(self, competitor_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None: ...

    @abc.abstractmethod
    async def upsert_competitor_snapshot(self, snapshot: SnapshotRecord) -> None: ...

    # ── Results ──
    @abc.abstractmethod
    async def upsert_event_matches(self, matches: list[EventMatchRecord]) -> None: ...

    @abc.abstractmethod
    async def list_event_matches(self, location_id: str, date_key: str) -> list[EventMatchRecord]: ...

    @abc.abstractmethod
    async def upsert_insights(self, insights: list[StoredInsight]) -> None: ...

    @abc.abstractmethod
    async def list_insights(self, location_id: str, date_key: str) -> list[StoredInsight]: ...

    @abc.abstractmethod
    async def record_insight_feedback(
        self,
        location_id: str,
        competitor_id: str | None,
        date_key: str,
        insight_type: str,
        feedback: Feedback,
    ) -> bool: ...

    @abc.abstractmethod
    async def briefing_version(self, location_id: str, date_key: str, consumer_id: str) -> str:
        """Token that changes whenever a day's insights or the consumer's weights change."""

    # ── Feedback ──
    @abc.abstractmethod
    async def list_preferences(self, consumer_id: str) -> list[InsightPreference]: ...

    @abc.abstractmethod
    async def record_preference_feedback(
        self,
        consumer_id: str,
        insight_type: str,
        feedback: Feedback,
    ) -> InsightPreference:
        """Apply one vote to the ``(consumer, insight_type)`` weight and return the new row."""

    # ── Operational ──
    @abc.abstractmethod
    async def log_job(self, entry: JobLogEntry) -> None: ...


# ══════════════════════════════════════════════════════════════════════
# POSTGRESQL
# ══════════════════════════════════════════════════════════════════════

def _pk(value: str | None) -> int | None:
    return int(value) if value is not None else None


def _str_id(value: int | None) -> str | None:
    return str(value) if value is not None else None


def _stamp(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "-"


def snapshot_upsert_statement(model: type, entity_column: str, snapshot: SnapshotRecord):
    constraint = "uq_location_snapshot" if model is LocationSnapshot else "uq_competitor_snapshot"
    stmt = pg_insert(model).values({
        entity_column: _pk(snapshot.entity_id),
        "provider": snapshot.provider,
        "date_key": snapshot.date_key,
        "raw_data": snapshot.raw_data,
        "diff_hash": snapshot.diff_hash,
    })
    return stmt.on_conflict_do_update(
        constraint=constraint,
        set_={
            "raw_data": stmt.excluded.raw_data,
            "diff_hash": stmt.excluded.diff_hash,
            "captured_at": func.now(),
        },
    )


def event_match_upsert_statement(matches: list[EventMatchRecord]):
    stmt = pg_insert(EventMatch).values([
        {
            "location_id": _pk(m.location_id),
            "competitor_id": _pk(m.competitor_id),
            "date_key": m.date_key,
            "event_uid": m.event_uid,
            "match_type": str(m.match_type),
            "confidence": str(m.confidence),
            "evidence": m.evidence,
        }
        for m in matches
    ])
    return stmt.on_conflict_do_update(
        constraint="uq_event_match",
        set_={
            "match_type": stmt.excluded.match_type,
            "confidence": stmt.excluded.confidence,
            "evidence": stmt.excluded.evidence,
        },
    )


# Operator state (status, user_feedback) survives a replay.
_INSIGHT_REFRESHED_COLUMNS = (
    "title",
    "summary",
    "confidence",
    "severity",
    "evidence",
    "recommendations",
    "relevance_score",
    "urgency",
    "suppressed",
)


def insight_upsert_statement(insights: list[StoredInsight]):
    stmt = pg_insert(Insight).values([
        {
            "location_id": _pk(i.location_id),
            "competitor_id": _pk(i.competitor_id),
            "date_key": i.date_key,
            "insight_type": i.insight_type,
            "title": i.title,
            "summary": i.summary,
            "confidence": i.confidence,
            "severity": i.severity,
            "evidence": i.evidence,
            "recommendations": i.recommendations,
            "relevance_score": i.relevance_score,
            "urgency": i.urgency,
            "suppressed": i.suppressed,
        }
        for i in insights
    ])
    set_ = {col: stmt.excluded[col] for col in _INSIGHT_REFRESHED_COLUMNS}
    set_["updated_at"] = func.now()
    return stmt.on_conflict_do_update(constraint="uq_insight_natural_key", set_=set_)


def preference_feedback_statement(consumer_id: str, insight_type: str, feedback: Feedback):
    """
    One vote as a single upsert. A new row starts from the default weight
    already stepped; an existing row is stepped in SQL against its current
    value, so concurrent votes each move the weight.
    """
    first = apply_feedback(None, feedback, consumer_id=consumer_id, insight_type=insight_type)
    useful = int(feedback == Feedback.USEFUL)
    step = WEIGHT_STEP if useful else -WEIGHT_STEP
    row = InsightPreferenceRow.__table__.c

    stmt = pg_insert(InsightPreferenceRow).values(
        consumer_id=first.consumer_id,
        insight_type=first.insight_type,
        weight=first.weight,
        useful_count=first.useful_count,
        dismissed_count=first.dismissed_count,
    )
    stepped = cast(func.round(cast(row.weight + step, Numeric), 2), Float)
    return stmt.on_conflict_do_update(
        constraint="uq_insight_preference",
        set_={
            "weight": func.least(WEIGHT_CEILING, func.greatest(WEIGHT_FLOOR, stepped)),
            "useful_count": row.useful_count + useful,
            "dismissed_count": row.dismissed_count + (1 - useful),
            "updated_at": func.now(),
        },
    ).returning(row.weight, row.useful_count, row.dismissed_count)


class SqlAlchemyStore(IntelligenceStore):
    """Store bound to one ``AsyncSession``; the caller owns the transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── Configuration ──
    async def get_location(self, location_id: str) -> LocationRecord | None:
        row = await self.session.get(Location, _pk(location_id))
        if row is None:
            return None
        return LocationRecord(str(row.id), row.name, row.address, row.website)

    async def list_active_locations(self) -> list[LocationRecord]:
        result = await self.session.execute(
            select(Location).where(Location.is_active.is_(True)).order_by(Location.id)
        )
        return [LocationRecord(str(r.id), r.name, r.address, r.website) for r in result.scalars()]

    async def list_competitors(self, location_id: str) -> list[CompetitorRecord]:
        result = await self.session.execute(
            select(Competitor)
            .where(Competitor.location_id == _pk(location_id), Competitor.is_active.is_(True))
            .order_by(Competitor.id)
        )
        return [
            CompetitorRecord(str(r.id), str(r.location_id), r.name, r.address, r.website)
            for r in result.scalars()
        ]

    # ── Snapshots ──
    async def _snapshot(self, model: type, entity_column, entity_id: str, provider: str, date_filter) -> SnapshotRecord | None:
        result = await self.session.execute(
            select(model)
            .where(entity_column == _pk(entity_id), model.provider == provider, date_filter)
            .order_by(model.date_key.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return SnapshotRecord(entity_id, row.provider, row.date_key, row.raw_data, row.diff_hash)

    async def get_location_snapshot(self, location_id: str, provider: str, date_key: str) -> SnapshotRecord | None:
        return await self._snapshot(
            LocationSnapshot, LocationSnapshot.location_id, location_id, provider,
            LocationSnapshot.date_key == date_key,
        )

    async def latest_location_snapshot(self, location_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None:
        return await self._snapshot(
            LocationSnapshot, LocationSnapshot.location_id, location_id, provider,
            LocationSnapshot.date_key <= on_or_before,
        )

    async def upsert_location_snapshot(self, snapshot: SnapshotRecord) -> None:
        await self.session.execute(snapshot_upsert_statement(LocationSnapshot, "location_id", snapshot))

    async def get_competitor_snapshot(self, competitor_id: str, provider: str, date_key: str) -> SnapshotRecord | None:
        return await self._snapshot(
            CompetitorSnapshot, CompetitorSnapshot.competitor_id, competitor_id, provider,
            CompetitorSnapshot.date_key == date_key,
        )

    async def latest_competitor_snapshot(self, competitor_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None:
        return await self._snapshot(
            CompetitorSnapshot, CompetitorSnapshot.competitor_id, competitor_id, provider,
            CompetitorSnapshot.date_key <= on_or_before,
        )

    async def upsert_competitor_snapshot(self, snapshot: SnapshotRecord) -> None:
        await self.session.execute(snapshot_upsert_statement(CompetitorSnapshot, "competitor_id", snapshot))

    # ── Results ──
    async def upsert_event_matches(self, matches: list[EventMatchRecord]) -> None:
        if matches:
            await self.session.execute(event_match_upsert_statement(matches))

    async def list_event_matches(self, location_id: str, date_key: str) -> list[EventMatchRecord]:
        result = await self.session.execute(
            select(EventMatch)
            .where(EventMatch.location_id == _pk(location_id), EventMatch.date_key == date_key)
            .order_by(EventMatch.event_uid, EventMatch.competitor_id)
        )
        return [
            EventMatchRecord.from_dict({
                "location_id": r.location_id,
                "competitor_id": r.competitor_id,
                "date_key": r.date_key,
                "event_uid": r.event_uid,
                "match_type": r.match_type,
                "confidence": r.confidence,
                "evidence": r.evidence,
            })
            for r in result.scalars()
        ]

    async def upsert_insights(self, insights: list[StoredInsight]) -> None:
        if insights:
            await self.session.execute(insight_upsert_statement(insights))

    async def list_insights(self, location_id: str, date_key: str) -> list[StoredInsight]:
        result = await self.session.execute(
            select(Insight)
            .where(Insight.location_id == _pk(location_id), Insight.date_key == date_key)
            .order_by(Insight.insight_type, Insight.competitor_id)
        )
        return [
            StoredInsight(
                location_id=str(r.location_id),
                competitor_id=_str_id(r.competitor_id),
                date_key=r.date_key,
                insight_type=r.insight_type,
                title=r.title,
                summary=r.summary,
                confidence=r.confidence,
                severity=r.severity,
                evidence=r.evidence or {},
                recommendations=r.recommendations or [],
                relevance_score=r.relevance_score,
                urgency=r.urgency,
                suppressed=r.suppressed,
                status=r.status.value if r.status else "new",
                user_feedback=r.user_feedback,
            )
            for r in result.scalars()
        ]

    async def record_insight_feedback(
        self,
        location_id: str,
        competitor_id: str | None,
        date_key: str,
        insight_type: str,
        feedback: Feedback,
    ) -> bool:
        competitor_clause = (
            Insight.competitor_id.is_(None)
            if competitor_id is None
            else Insight.competitor_id == _pk(competitor_id)
        )
        result = await self.session.execute(
            update(Insight)
            .where(
                Insight.location_id == _pk(location_id),
                competitor_clause,
                Insight.date_key == date_key,
                Insight.insight_type == insight_type,
            )
            .values(user_feedback=str(feedback), feedback_at=func.now())
        )
        return result.rowcount > 0

    async def briefing_version(self, location_id: str, date_key: str, consumer_id: str) -> str:
        result = await self.session.execute(
            select(func.count(Insight.id), func.max(Insight.updated_at))
            .where(Insight.location_id == _pk(location_id), Insight.date_key == date_key)
        )
        count, insights_at = result.one()
        weights_at = await self.session.scalar(
            select(func.max(InsightPreferenceRow.updated_at))
            .where(InsightPreferenceRow.consumer_id == consumer_id)
        )
        return f"{count}:{_stamp(insights_at)}:{_stamp(weights_at)}"

    # ── Feedback ──
    async def list_preferences(self, consumer_id: str) -> list[InsightPreference]:
        result = await self.session.execute(
            select(InsightPreferenceRow)
            .where(InsightPreferenceRow.consumer_id == consumer_id)
            .order_by(InsightPreferenceRow.insight_type)
        )
        return [
            InsightPreference(
                consumer_id=r.consumer_id,
                insight_type=r.insight_type,
                weight=r.weight,
                useful_count=r.useful_count,
                dismissed_count=r.dismissed_count,
            )
            for r in result.scalars()
        ]

    async def record_preference_feedback(
        self,
        consumer_id: str,
        insight_type: str,
        feedback: Feedback,
    ) -> InsightPreference:
        result = await self.session.execute(preference_feedback_statement(consumer_id, insight_type, feedback))
        weight, useful_count, dismissed_count = result.one()
        return InsightPreference(consumer_id, insight_type, weight, useful_count, dismissed_count)

    # ── Operational ──
    async def log_job(self, entry: JobLogEntry) -> None:
        self.session.add(JobExecutionLog(
            job_type=entry.job_type,
            location_id=_pk(entry.location_id),
            competitor_id=_pk(entry.competitor_id),
            date_key=entry.date_key,
            attempt=entry.attempt,
            started_at=entry.started_at or datetime.now(timezone.utc),
            ended_at=entry.ended_at,
            status=entry.status,
            items_processed=entry.items_processed,
            error_message=entry.error_message,
        ))


# ══════════════════════════════════════════════════════════════════════
# IN-MEMORY
# ══════════════════════════════════════════════════════════════════════

class MemoryStore(IntelligenceStore):
    def __init__(self) -> None:
        self.locations: dict[str, LocationRecord] = {}
        self.competitors: dict[str, CompetitorRecord] = {}
        self.location_snapshots: dict[tuple[str, str, str], SnapshotRecord] = {}
        self.competitor_snapshots: dict[tuple[str, str, str], SnapshotRecord] = {}
        self.event_matches: dict[tuple[str, str, str], EventMatchRecord] = {}
        self.insights: dict[tuple[str, str | None, str, str], StoredInsight] = {}
        self.preferences: dict[tuple[str, str], InsightPreference] = {}
        # bumped on every write that can change a rendered briefing
        self.revisions: dict[tuple[str, ...], int] = {}
        self.job_log: list[JobLogEntry] = []

    # ── Seeding ──
    def add_location(self, location: LocationRecord) -> None:
        self.locations[location.id] = location

    def add_competitor(self, competitor: CompetitorRecord) -> None:
        self.competitors[competitor.id] = competitor

    # ── Configuration ──
    async def get_location(self, location_id: str) -> LocationRecord | None:
        return self.locations.get(location_id)

    async def list_active_locations(self) -> list[LocationRecord]:
        return [self.locations[k] for k in sorted(self.locations)]

    async def list_competitors(self, location_id: str) -> list[CompetitorRecord]:
        return sorted(
            (c for c in self.competitors.values() if c.location_id == location_id),
            key=lambda c: c.id,
        )

    # ── Snapshots ──
    @staticmethod
    def _latest(
        snapshots: dict[tuple[str, str, str], SnapshotRecord],
        entity_id: str,
        provider: str,
        on_or_before: str,
    ) -> SnapshotRecord | None:
        candidates = [
            s for (eid, prov, day), s in snapshots.items()
            if eid == entity_id and prov == provider and day <= on_or_before
        ]
        return max(candidates, key=lambda s: s.date_key, default=None)

    async def get_location_snapshot(self, location_id: str, provider: str, date_key: str) -> SnapshotRecord | None:
        return self.location_snapshots.get((location_id, provider, date_key))

    async def latest_location_snapshot(self, location_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None:
        return self._latest(self.location_snapshots, location_id, provider, on_or_before)

    async def upsert_location_snapshot(self, snapshot: SnapshotRecord) -> None:
        self.location_snapshots[(snapshot.entity_id, snapshot.provider, snapshot.date_key)] = snapshot

    async def get_competitor_snapshot(self, competitor_id: str, provider: str, date_key: str) -> SnapshotRecord | None:
        return self.competitor_snapshots.get((competitor_id, provider, date_key))

    async def latest_competitor_snapshot(self, competitor_id: str, provider: str, on_or_before: str) -> SnapshotRecord | None:
        return self._latest(self.competitor_snapshots, competitor_id, provider, on_or_before)

    async def upsert_competitor_snapshot(self, snapshot: SnapshotRecord) -> None:
        self.competitor_snapshots[(snapshot.entity_id, snapshot.provider, snapshot.date_key)] = snapshot

    # ── Results ──
    async def upsert_event_matches(self, matches: list[EventMatchRecord]) -> None:
        for match in matches:
            self.event_matches[(match.date_key, match.event_uid, match.competitor_id)] = match

    async def list_event_matches(self, location_id: str, date_key: str) -> list[EventMatchRecord]:
        found = [
            m for m in self.event_matches.values()
            if m.location_id == location_id and m.date_key == date_key
        ]
        return sorted(found, key=lambda m: (m.event_uid, m.competitor_id))

    async def upsert_insights(self, insights: list[StoredInsight]) -> None:
        for insight in insights:
            existing = self.insights.get(insight.natural_key)
            if existing is not None:
                insight = replace(insight, status=existing.status, user_feedback=existing.user_feedback)
            self.insights[insight.natural_key] = insight
            self._bump(insight.location_id, insight.date_key)

    async def list_insights(self, location_id: str, date_key: str) -> list[StoredInsight]:
        found = [
            i for i in self.insights.values()
            if i.location_id == location_id and i.date_key == date_key
        ]
        return sorted(found, key=lambda i: (i.insight_type, i.competitor_id or ""))

    async def record_insight_feedback(
        self,
        location_id: str,
        competitor_id: str | None,
        date_key: str,
        insight_type: str,
        feedback: Feedback,
    ) -> bool:
        key = (location_id, competitor_id, date_key, insight_type)
        existing = self.insights.get(key)
        if existing is None:
            return False
        self.insights[key] = replace(existing, user_feedback=str(feedback))
        return True

    def _bump(self, *key: str) -> None:
        self.revisions[key] = self.revisions.get(key, 0) + 1

    async def briefing_version(self, location_id: str, date_key: str, consumer_id: str) -> str:
        count = sum(1 for i in self.insights.values() if i.location_id == location_id and i.date_key == date_key)
        return f"{count}:{self.revisions.get((location_id, date_key), 0)}:{self.revisions.get((consumer_id,), 0)}"

    # ── Feedback ──
    async def list_preferences(self, consumer_id: str) -> list[InsightPreference]:
        return [p for (cid, _), p in sorted(self.preferences.items()) if cid == consumer_id]

    async def record_preference_feedback(
        self,
        consumer_id: str,
        insight_type: str,
        feedback: Feedback,
    ) -> InsightPreference:
        key = (consumer_id, insight_type)
        updated = apply_feedback(
            self.preferences.get(key), feedback, consumer_id=consumer_id, insight_type=insight_type,
        )
        self.preferences[key] = updated
        self._bump(consumer_id)
        return updated

    # ── Operational ──
    async def log_job(self, entry: JobLogEntry) -> None:
        self.job_log.append(entry)
