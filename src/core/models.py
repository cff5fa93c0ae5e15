"""
SQLAlchemy 2.0 ORM Models — Competitive Signal Engine
=====================================================

Conventions:
  - snake_case names
  - BIGINT PKs (auto-increment)
  - Explicit FKs
  - every write path is an upsert on the table's natural key
  - ``date_key`` is the ``YYYY-MM-DD`` processing day as text

Tables are grouped by functional area:
  1. Configuration (locations, competitors)
  2. Snapshots
  3. Results (event matches, insights)
  4. Feedback
  5. Operational
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


# ══════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════

class JobStatus(str, PyEnum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED_PARTIAL = "FAILED_PARTIAL"
    FAILED = "FAILED"


class InsightStatus(str, PyEnum):
    NEW = "new"
    READ = "read"
    DISMISSED = "dismissed"


# ══════════════════════════════════════════════════════════════════════
# 1. CONFIGURATION
# ══════════════════════════════════════════════════════════════════════

class Location(Base):
    """The subject business every insight is written for."""
    __tablename__ = "location"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    competitors: Mapped[list["Competitor"]] = relationship("Competitor", back_populates="location")


class Competitor(Base):
    """A business tracked against one location."""
    __tablename__ = "competitor"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("location.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    location: Mapped["Location"] = relationship("Location", back_populates="competitors")


# ══════════════════════════════════════════════════════════════════════
# 2. SNAPSHOTS
# ══════════════════════════════════════════════════════════════════════

class LocationSnapshot(Base):
    """Normalized provider payload about the location itself (events, SEO, menu, site)."""
    __tablename__ = "location_snapshot"
    __table_args__ = (
        UniqueConstraint("location_id", "provider", "date_key", name="uq_location_snapshot"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("location.id"), nullable=False)
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    diff_hash: Mapped[str] = mapped_column(String(64), nullable=False)


class CompetitorSnapshot(Base):
    """Normalized provider payload about one competitor."""
    __tablename__ = "competitor_snapshot"
    __table_args__ = (
        UniqueConstraint("competitor_id", "provider", "date_key", name="uq_competitor_snapshot"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    competitor_id: Mapped[int] = mapped_column(ForeignKey("competitor.id"), nullable=False)
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    raw_data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    diff_hash: Mapped[str] = mapped_column(String(64), nullable=False)


# ══════════════════════════════════════════════════════════════════════
# 3. RESULTS
# ══════════════════════════════════════════════════════════════════════

class EventMatch(Base):
    """One matcher verdict linking a local event to a competitor."""
    __tablename__ = "event_match"
    __table_args__ = (
        UniqueConstraint("date_key", "event_uid", "competitor_id", name="uq_event_match"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("location.id"), nullable=False, index=True)
    competitor_id: Mapped[int] = mapped_column(ForeignKey("competitor.id"), nullable=False)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)
    event_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    match_type: Mapped[str] = mapped_column(String(30), nullable=False)
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)
    evidence: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Insight(Base):
    """
    A generated, scored insight. Location-level insights have no competitor;
    NULLS NOT DISTINCT keeps those unique per (location, date, type) too.
    """
    __tablename__ = "insight"
    __table_args__ = (
        UniqueConstraint(
            "location_id", "competitor_id", "date_key", "insight_type",
            name="uq_insight_natural_key",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("location.id"), nullable=False, index=True)
    competitor_id: Mapped[int | None] = mapped_column(ForeignKey("competitor.id"), nullable=True)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    insight_type: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    evidence: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    recommendations: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    status: Mapped[InsightStatus] = mapped_column(
        Enum(InsightStatus, values_callable=lambda e: [m.value for m in e]), default=InsightStatus.NEW
    )

    # Scoring (recomputed on every upsert)
    relevance_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    urgency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    suppressed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Operator feedback
    user_feedback: Mapped[str | None] = mapped_column(String(20), nullable=True)
    feedback_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ══════════════════════════════════════════════════════════════════════
# 4. FEEDBACK
# ══════════════════════════════════════════════════════════════════════

class InsightPreferenceRow(Base):
    """Learned weight of one insight type for one consumer."""
    __tablename__ = "insight_preference"
    __table_args__ = (
        UniqueConstraint("consumer_id", "insight_type", name="uq_insight_preference"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    consumer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    insight_type: Mapped[str] = mapped_column(String(100), nullable=False)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    useful_count: Mapped[int] = mapped_column(Integer, default=0)
    dismissed_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ══════════════════════════════════════════════════════════════════════
# 5. OPERATIONAL
# ══════════════════════════════════════════════════════════════════════

class JobExecutionLog(Base):
    """
    Audit log for background job executions.
    """
    __tablename__ = "job_execution_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    location_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    competitor_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    date_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    attempt: Mapped[int] = mapped_column(Integer, default=1)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), default=JobStatus.RUNNING)
    items_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
