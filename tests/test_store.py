import asyncio

from sqlalchemy.dialects import postgresql

from core.models import CompetitorSnapshot, LocationSnapshot
from core.store import (
    SnapshotRecord,
    StoredInsight,
    event_match_upsert_statement,
    insight_upsert_statement,
    preference_feedback_statement,
    snapshot_upsert_statement,
)
from workers.event_matcher.matcher import EventMatchRecord, MatchType
from workers.normalizer.models import Confidence
from workers.scoring.feedback import Feedback


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _snapshot(day, rating=4.5, entity_id="10"):
    return SnapshotRecord(
        entity_id=entity_id,
        provider="profile",
        date_key=day,
        raw_data={"profile": {"rating": rating}},
        diff_hash=f"hash-{day}-{rating}",
    )


def _insight(**overrides):
    fields = dict(
        location_id="1",
        competitor_id="10",
        date_key="2026-03-14",
        insight_type="rating_change",
        title="Rating increased",
        summary="Rating moved from 4.4 to 4.5.",
        confidence="high",
        severity="info",
    )
    fields.update(overrides)
    return StoredInsight(**fields)


# ── statements ───────────────────────────────────────────────────────

def test_snapshot_upsert_targets_the_natural_key():
    sql = _sql(snapshot_upsert_statement(CompetitorSnapshot, "competitor_id", _snapshot("2026-03-14")))
    assert "ON CONFLICT ON CONSTRAINT uq_competitor_snapshot DO UPDATE" in sql
    assert "diff_hash = excluded.diff_hash" in sql

    sql = _sql(snapshot_upsert_statement(LocationSnapshot, "location_id", _snapshot("2026-03-14", entity_id="1")))
    assert "uq_location_snapshot" in sql


def test_insight_upsert_leaves_operator_state_alone():
    sql = _sql(insight_upsert_statement([_insight()]))
    assert "ON CONFLICT ON CONSTRAINT uq_insight_natural_key DO UPDATE" in sql
    update_clause = sql.split("DO UPDATE SET", 1)[1]
    assert "relevance_score = excluded.relevance_score" in update_clause
    assert "status" not in update_clause
    assert "user_feedback" not in update_clause


def test_event_match_upsert():
    match = EventMatchRecord(
        location_id="1",
        competitor_id="10",
        date_key="2026-03-14",
        event_uid="abc",
        match_type=MatchType.VENUE_NAME,
        confidence=Confidence.HIGH,
        evidence={"score": 0.95},
    )
    assert "uq_event_match" in _sql(event_match_upsert_statement([match]))


def test_preference_vote_steps_the_stored_weight_in_sql():
    sql = _sql(preference_feedback_statement("owner", "rating_change", Feedback.NOT_USEFUL))
    assert "ON CONFLICT ON CONSTRAINT uq_insight_preference DO UPDATE" in sql
    update_clause = sql.split("DO UPDATE SET", 1)[1]
    assert "excluded.weight" not in update_clause
    assert "least(" in update_clause and "greatest(" in update_clause
    assert "insight_preference.weight +" in update_clause
    assert "insight_preference.dismissed_count +" in update_clause
    assert "RETURNING insight_preference.weight" in sql

    params = preference_feedback_statement("owner", "rating_change", Feedback.USEFUL).compile(
        dialect=postgresql.dialect(),
    ).params
    assert params["weight"] == 1.1
    assert params["useful_count"] == 1
    assert params["dismissed_count"] == 0


# ── memory store ─────────────────────────────────────────────────────

def test_latest_snapshot_on_or_before(store):
    async def scenario():
        for day in ("2026-03-10", "2026-03-12", "2026-03-15"):
            await store.upsert_competitor_snapshot(_snapshot(day))
        return (
            await store.latest_competitor_snapshot("10", "profile", "2026-03-14"),
            await store.latest_competitor_snapshot("10", "profile", "2026-03-09"),
            await store.latest_competitor_snapshot("10", "menu", "2026-03-14"),
        )

    latest, too_early, other_kind = asyncio.run(scenario())
    assert latest.date_key == "2026-03-12"
    assert too_early is None
    assert other_kind is None


def test_snapshot_upsert_replaces_same_day(store):
    async def scenario():
        await store.upsert_competitor_snapshot(_snapshot("2026-03-14", rating=4.5))
        await store.upsert_competitor_snapshot(_snapshot("2026-03-14", rating=4.6))
        return await store.get_competitor_snapshot("10", "profile", "2026-03-14")

    assert asyncio.run(scenario()).raw_data == {"profile": {"rating": 4.6}}
    assert len(store.competitor_snapshots) == 1


def test_concurrent_votes_each_move_the_weight(store):
    async def scenario():
        await asyncio.gather(*(
            store.record_preference_feedback("owner", "rating_change", Feedback.USEFUL) for _ in range(3)
        ))
        return await store.list_preferences("owner")

    [preference] = asyncio.run(scenario())
    assert preference.weight == 1.3
    assert preference.useful_count == 3


def test_replayed_insight_keeps_feedback(store):
    async def scenario():
        await store.upsert_insights([_insight()])
        found = await store.record_insight_feedback("1", "10", "2026-03-14", "rating_change", Feedback.USEFUL)
        missing = await store.record_insight_feedback("1", "11", "2026-03-14", "rating_change", Feedback.USEFUL)
        await store.upsert_insights([_insight(title="Rating increased again", relevance_score=30)])
        return found, missing, await store.list_insights("1", "2026-03-14")

    found, missing, [stored] = asyncio.run(scenario())
    assert found and not missing
    assert stored.title == "Rating increased again"
    assert stored.user_feedback == "useful"
    assert stored.status == "new"
