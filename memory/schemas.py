"""SQLAlchemy schemas for persistent memory tables."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TIERS = ("hypothesis", "solid")

EDGE_TYPES = ("SIMILAR", "FOLLOWS", "CONTRADICTS", "ELABORATES", "RESOLVES")

BELIEF_TYPES = (
    "value",  # core values ("I value honesty")
    "preference",  # preferences ("I prefer morning work")
    "self_knowledge",  # self-understanding ("I work best under pressure")
    "prediction",  # expectations ("The project will succeed")
    "about_person",  # beliefs about others ("Sarah is reliable")
    "about_project",  # beliefs about work ("This approach is best")
    "about_world",  # general world beliefs ("Remote work is the future")
    "should",  # normative ("I should prioritize health")
)
BELIEF_STATUSES = ("active", "superseded", "conflicted")
EVIDENCE_TYPES = ("supports", "contradicts", "nuances")
CONFLICT_TYPES = ("direct_contradiction", "tension", "evolution")
RESOLUTIONS = ("belief_a_active", "belief_b_active", "both_valid", "merged", "user_resolved")

SUMMARY_CATEGORIES = (
    "personality",
    "goals",
    "relationships",
    "projects",
    "interests",
    "wellbeing",
    "commitments",
    "significant_dates",
)


def utc_now() -> datetime:
    """Return UTC datetime for default timestamps."""
    return datetime.now(UTC)


def new_id() -> str:
    """Return a fresh hex identifier."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Declarative base."""


class MemoryRecord(Base):
    """Atomic observation with mutable confidence/tier state."""

    __tablename__ = "memories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    content: Mapped[str] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(64), default="observation")
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    tier: Mapped[str] = mapped_column(String(16), default="hypothesis", index=True)
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )


class MemoryEdgeRecord(Base):
    """Directed, typed, weighted relation between two memories."""

    __tablename__ = "memory_edges"
    __table_args__ = (
        UniqueConstraint("source_memory_id", "target_memory_id", "edge_type"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    source_memory_id: Mapped[str] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), index=True
    )
    target_memory_id: Mapped[str] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), index=True
    )
    edge_type: Mapped[str] = mapped_column(String(16), index=True)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    similarity: Mapped[float | None] = mapped_column(Float, nullable=True)
    # "metadata" is reserved on declarative classes
    edge_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    reinforcement_count: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    last_reinforced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class EntityRecord(Base):
    """Named entity (owned upstream, read by graph traversal)."""

    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(256), index=True)
    canonical_name: Mapped[str] = mapped_column(String(256), index=True)
    entity_type: Mapped[str] = mapped_column(String(32), default="other")
    mention_count: Mapped[int] = mapped_column(Integer, default=0)
    is_merged: Mapped[bool] = mapped_column(Boolean, default=False)
    merged_into_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class EntityMentionRecord(Base):
    """An entity appearing in a memory."""

    __tablename__ = "entity_mentions"
    __table_args__ = (UniqueConstraint("entity_id", "memory_id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    entity_id: Mapped[str] = mapped_column(
        ForeignKey("entities.id", ondelete="CASCADE"), index=True
    )
    memory_id: Mapped[str] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), index=True
    )
    mention_text: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class BeliefRecord(Base):
    """Persistent conviction distilled from memories."""

    __tablename__ = "beliefs"
    __table_args__ = (Index("ix_beliefs_type_normalized", "belief_type", "normalized_content"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    content: Mapped[str] = mapped_column(Text)
    normalized_content: Mapped[str] = mapped_column(Text, default="")
    belief_type: Mapped[str] = mapped_column(String(32), index=True)
    related_entity_id: Mapped[str | None] = mapped_column(
        ForeignKey("entities.id", ondelete="SET NULL"), nullable=True, index=True
    )
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    source_memory_count: Mapped[int] = mapped_column(Integer, default=0)
    reinforcement_count: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True)
    superseded_by: Mapped[str | None] = mapped_column(
        ForeignKey("beliefs.id", ondelete="SET NULL"), nullable=True
    )
    extracted_by_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    first_extracted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    last_reinforced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class BeliefEvidenceRecord(Base):
    """Memory linked to a belief as evidence."""

    __tablename__ = "belief_evidence"
    __table_args__ = (UniqueConstraint("belief_id", "memory_id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    belief_id: Mapped[str] = mapped_column(
        ForeignKey("beliefs.id", ondelete="CASCADE"), index=True
    )
    memory_id: Mapped[str] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), index=True
    )
    support_strength: Mapped[float] = mapped_column(Float, default=0.5)
    evidence_type: Mapped[str] = mapped_column(String(16), default="supports")
    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class BeliefConflictRecord(Base):
    """Recorded tension between two beliefs."""

    __tablename__ = "belief_conflicts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    belief_a_id: Mapped[str] = mapped_column(ForeignKey("beliefs.id", ondelete="CASCADE"))
    belief_b_id: Mapped[str] = mapped_column(ForeignKey("beliefs.id", ondelete="CASCADE"))
    # Unordered pair key: "min|max" of the two belief ids.
    pair_key: Mapped[str] = mapped_column(String(65), unique=True)
    conflict_type: Mapped[str] = mapped_column(String(32))
    conflict_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_status: Mapped[str] = mapped_column(String(32), default="unresolved", index=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LivingSummaryRecord(Base):
    """Versioned running summary, one row per category."""

    __tablename__ = "living_summaries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    category: Mapped[str] = mapped_column(String(32), unique=True)
    content: Mapped[str] = mapped_column(Text, default="")
    version: Mapped[int] = mapped_column(Integer, default=0)
    memory_count: Mapped[int] = mapped_column(Integer, default=0)
    last_memory_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    staleness_score: Mapped[float] = mapped_column(Float, default=0.0)
    last_update_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class MemorySummaryLinkRecord(Base):
    """Pending or incorporated membership of a memory in a summary category."""

    __tablename__ = "memory_summary_links"
    __table_args__ = (UniqueConstraint("memory_id", "summary_category"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    memory_id: Mapped[str] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), index=True
    )
    summary_category: Mapped[str] = mapped_column(String(32), index=True)
    relevance_score: Mapped[float] = mapped_column(Float, default=0.5)
    incorporated: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    incorporated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    incorporated_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class MemoryEventRecord(Base):
    """Memory events log table."""

    __tablename__ = "memory_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
