"""High-level memory manager over the SQL store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from llm.embeddings import BaseEmbedder, EmbeddingError
from memory.errors import EntityNotFoundError, MemoryNotFoundError
from memory.schemas import TIERS, EntityMentionRecord, EntityRecord, MemoryRecord
from memory.stores.sql_store import SQLStore

logger = logging.getLogger("mind.memory")

SOLID_THRESHOLD = 0.75


def memory_to_dict(row: MemoryRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "content": row.content,
        "source": row.source,
        "confidence": row.confidence,
        "tier": row.tier,
        "created_at": row.created_at,
    }


def entity_to_dict(row: EntityRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "canonical_name": row.canonical_name,
        "entity_type": row.entity_type,
        "mention_count": row.mention_count,
        "is_merged": row.is_merged,
        "merged_into_id": row.merged_into_id,
        "created_at": row.created_at,
    }


def require_memory(sess: Session, memory_id: str) -> MemoryRecord:
    row = sess.get(MemoryRecord, memory_id)
    if row is None:
        raise MemoryNotFoundError(memory_id)
    return row


class MemoryManager:
    """Stores memories and the upstream entity tables the core reads.

    Memory content is immutable once written; only the reinforcement engine
    changes ``confidence`` and ``tier`` afterwards.
    """

    def __init__(self, sql_store: SQLStore, embedder: BaseEmbedder | None = None) -> None:
        self.sql_store = sql_store
        self.sql_store.create_all()
        self.embedder = embedder

    def embed(self, text: str) -> list[float] | None:
        """Embed text, returning None when no embedder is set or it fails."""
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except EmbeddingError as exc:
            logger.warning("Embedding failed, storing memory without vector: %s", exc)
            return None

    def add_memory(
        self,
        content: str,
        source: str = "observation",
        confidence: float = 0.5,
        embedding: list[float] | None = None,
        created_at: datetime | None = None,
    ) -> dict[str, Any]:
        """Insert a memory; its tier starts at ``solid`` only when already confident."""
        if not content.strip():
            raise ValueError("Memory content must not be empty.")
        confidence = max(0.0, min(1.0, confidence))
        if embedding is None:
            embedding = self.embed(content)
        record = MemoryRecord(
            content=content,
            source=source,
            confidence=confidence,
            tier="solid" if confidence >= SOLID_THRESHOLD else "hypothesis",
            embedding=embedding,
        )
        if created_at is not None:
            record.created_at = created_at
        with self.sql_store.session() as sess:
            sess.add(record)
            sess.flush()
            return memory_to_dict(record)

    def get_memory(self, memory_id: str) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            return memory_to_dict(require_memory(sess, memory_id))

    def list_memories(self, limit: int = 20, tier: str | None = None) -> list[dict[str, Any]]:
        """List recent memories, optionally for one tier."""
        if tier is not None and tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        with self.sql_store.session() as sess:
            stmt = select(MemoryRecord)
            if tier is not None:
                stmt = stmt.where(MemoryRecord.tier == tier)
            rows = sess.scalars(stmt.order_by(MemoryRecord.created_at.desc()).limit(limit)).all()
            return [memory_to_dict(row) for row in rows]

    def add_entity(
        self,
        name: str,
        entity_type: str = "other",
        canonical_name: str | None = None,
    ) -> dict[str, Any]:
        record = EntityRecord(
            name=name.strip(),
            canonical_name=(canonical_name or name).strip().lower(),
            entity_type=entity_type,
        )
        with self.sql_store.session() as sess:
            sess.add(record)
            sess.flush()
            return entity_to_dict(record)

    def get_entity(self, entity_id: str) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            row = sess.get(EntityRecord, entity_id)
            if row is None:
                raise EntityNotFoundError(entity_id)
            return entity_to_dict(row)

    def find_entities(self, name: str, entity_type: str | None = None) -> list[dict[str, Any]]:
        """Case-insensitive name lookup over non-merged entities."""
        needle = name.strip().lower()
        with self.sql_store.session() as sess:
            stmt = select(EntityRecord).where(
                EntityRecord.is_merged.is_(False),
                (func.lower(EntityRecord.name) == needle) | (EntityRecord.canonical_name == needle),
            )
            if entity_type is not None:
                stmt = stmt.where(EntityRecord.entity_type == entity_type)
            rows = sess.scalars(stmt.order_by(EntityRecord.mention_count.desc())).all()
            return [entity_to_dict(row) for row in rows]

    def mention_entity(self, entity_id: str, memory_id: str, mention_text: str = "") -> dict[str, Any]:
        """Record that an entity appears in a memory (idempotent per pair)."""
        with self.sql_store.session() as sess:
            entity = sess.get(EntityRecord, entity_id, with_for_update=True)
            if entity is None:
                raise EntityNotFoundError(entity_id)
            require_memory(sess, memory_id)
            stmt = select(EntityMentionRecord).where(
                EntityMentionRecord.entity_id == entity_id,
                EntityMentionRecord.memory_id == memory_id,
            )
            mention = sess.scalars(stmt).first()
            if mention is None:
                try:
                    with sess.begin_nested():
                        mention = EntityMentionRecord(
                            entity_id=entity_id, memory_id=memory_id, mention_text=mention_text
                        )
                        sess.add(mention)
                except IntegrityError:
                    mention = sess.scalars(stmt).one()
            elif mention_text:
                mention.mention_text = mention_text
            sess.flush()
            entity.mention_count = sess.scalar(
                select(func.count()).select_from(EntityMentionRecord).where(
                    EntityMentionRecord.entity_id == entity_id
                )
            ) or 0
            return {
                "id": mention.id,
                "entity_id": entity_id,
                "memory_id": memory_id,
                "mention_text": mention.mention_text,
            }

    def merge_entity(self, source_id: str, target_id: str) -> dict[str, Any]:
        """Mark ``source_id`` as merged into ``target_id``; traversal skips it afterwards."""
        if source_id == target_id:
            raise ValueError("Cannot merge an entity into itself.")
        with self.sql_store.session() as sess:
            source = sess.get(EntityRecord, source_id, with_for_update=True)
            if source is None:
                raise EntityNotFoundError(source_id)
            if sess.get(EntityRecord, target_id) is None:
                raise EntityNotFoundError(target_id)
            source.is_merged = True
            source.merged_into_id = target_id
            sess.flush()
            return entity_to_dict(source)

    def counts(self) -> dict[str, int]:
        """Return per-tier memory counts."""
        with self.sql_store.session() as sess:
            rows = sess.execute(
                select(MemoryRecord.tier, func.count()).group_by(MemoryRecord.tier)
            ).all()
        counts = {tier: 0 for tier in TIERS}
        counts.update({tier: int(count) for tier, count in rows})
        counts["total"] = sum(counts[tier] for tier in TIERS)
        return counts
