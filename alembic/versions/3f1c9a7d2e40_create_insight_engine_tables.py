"""create_insight_engine_tables

Revision ID: 3f1c9a7d2e40
Revises:
Create Date: 2026-10-18 09:12:44.118302

Adds:
- location / competitor configuration tables
- location_snapshot / competitor_snapshot (one row per entity, provider, day)
- event_match and insight result tables with natural-key unique constraints
- insight_preference feedback weights
- job_execution_log
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2e40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _snapshot_columns(entity: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(f"{entity}_id", sa.BigInteger(), nullable=False),
        sa.Column("provider", sa.String(length=100), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("diff_hash", sa.String(length=64), nullable=False),
    ]


def upgrade() -> None:
    # -- Configuration --
    op.create_table(
        "location",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=2048), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "competitor",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("location_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=2048), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["location.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_competitor_location_id", "competitor", ["location_id"])

    # -- Snapshots --
    op.create_table(
        "location_snapshot",
        *_snapshot_columns("location"),
        sa.ForeignKeyConstraint(["location_id"], ["location.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("location_id", "provider", "date_key", name="uq_location_snapshot"),
    )
    op.create_table(
        "competitor_snapshot",
        *_snapshot_columns("competitor"),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitor.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("competitor_id", "provider", "date_key", name="uq_competitor_snapshot"),
    )

    # -- Results --
    op.create_table(
        "event_match",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("location_id", sa.BigInteger(), nullable=False),
        sa.Column("competitor_id", sa.BigInteger(), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("event_uid", sa.String(length=16), nullable=False),
        sa.Column("match_type", sa.String(length=30), nullable=False),
        sa.Column("confidence", sa.String(length=10), nullable=False),
        sa.Column("evidence", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["location.id"]),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitor.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date_key", "event_uid", "competitor_id", name="uq_event_match"),
    )
    op.create_index("ix_event_match_location_id", "event_match", ["location_id"])

    op.create_table(
        "insight",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("location_id", sa.BigInteger(), nullable=False),
        sa.Column("competitor_id", sa.BigInteger(), nullable=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("insight_type", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("confidence", sa.String(length=10), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False),
        sa.Column("evidence", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("recommendations", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "status",
            sa.Enum("new", "read", "dismissed", name="insightstatus"),
            nullable=False,
            server_default="new",
        ),
        sa.Column("relevance_score", sa.Integer(), nullable=True),
        sa.Column("urgency", sa.String(length=10), nullable=True),
        sa.Column("suppressed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("user_feedback", sa.String(length=20), nullable=True),
        sa.Column("feedback_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["location.id"]),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitor.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "location_id", "competitor_id", "date_key", "insight_type",
            name="uq_insight_natural_key",
            postgresql_nulls_not_distinct=True,
        ),
    )
    op.create_index("ix_insight_location_id", "insight", ["location_id"])
    op.create_index("ix_insight_date_key", "insight", ["date_key"])

    # -- Feedback --
    op.create_table(
        "insight_preference",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("consumer_id", sa.String(length=100), nullable=False),
        sa.Column("insight_type", sa.String(length=100), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("useful_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("dismissed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("consumer_id", "insight_type", name="uq_insight_preference"),
    )

    # -- Operational --
    op.create_table(
        "job_execution_log",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("job_type", sa.String(length=100), nullable=False),
        sa.Column("location_id", sa.BigInteger(), nullable=True),
        sa.Column("competitor_id", sa.BigInteger(), nullable=True),
        sa.Column("date_key", sa.String(length=10), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum("RUNNING", "SUCCESS", "FAILED_PARTIAL", "FAILED", name="jobstatus"),
            nullable=False,
        ),
        sa.Column("items_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("job_execution_log")
    op.drop_table("insight_preference")
    op.drop_index("ix_insight_date_key", table_name="insight")
    op.drop_index("ix_insight_location_id", table_name="insight")
    op.drop_table("insight")
    op.drop_index("ix_event_match_location_id", table_name="event_match")
    op.drop_table("event_match")
    op.drop_table("competitor_snapshot")
    op.drop_table("location_snapshot")
    op.drop_index("ix_competitor_location_id", table_name="competitor")
    op.drop_table("competitor")
    op.drop_table("location")
    sa.Enum(name="jobstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="insightstatus").drop(op.get_bind(), checkfirst=True)
