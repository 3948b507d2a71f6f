"""Confidence reinforcement and tier promotion for new memories."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select

from llm.embeddings import BaseEmbedder
from memory.edges import EdgeStore
from memory.errors import MemoryNotFoundError
from memory.memory_manager import require_memory
from memory.schemas import MemoryRecord
from memory.stores.sql_store import SQLStore, log_event
from memory.stores.vector_store import VectorStore
from memory.types.results import ReinforcementResult

logger = logging.getLogger("mind.reinforcement")


@dataclass(frozen=True)
class ReinforcementConfig:
    similarity_threshold: float = 0.80
    base_boost: float = 0.15
    max_batch_boost: float = 0.40
    promotion_threshold: float = 0.75
    max_candidates: int = 5

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ReinforcementConfig:
        section = config.get("reinforcement", {}) or {}
        defaults = cls()
        return cls(
            similarity_threshold=float(section.get("similarity_threshold", defaults.similarity_threshold)),
            base_boost=float(section.get("base_boost", defaults.base_boost)),
            max_batch_boost=float(section.get("max_batch_boost", defaults.max_batch_boost)),
            promotion_threshold=float(section.get("promotion_threshold", defaults.promotion_threshold)),
            max_candidates=int(section.get("max_candidates", defaults.max_candidates)),
        )


class ReinforcementEngine:
    """Boosts a new memory's confidence from semantically similar memories.

    Every candidate found leaves a ``SIMILAR`` edge from the new memory as an
    audit trail. Tiers only move ``hypothesis -> solid``.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        edges: EdgeStore,
        embedder: BaseEmbedder,
        config: ReinforcementConfig | None = None,
    ) -> None:
        self.sql_store = sql_store
        self.edges = edges
        self.embedder = embedder
        self.config = config or ReinforcementConfig()

    def compute_boost(self, similarity: float) -> float:
        """``base * (0.5 + 0.5 * normalized similarity)``."""
        threshold = self.config.similarity_threshold
        span = 1.0 - threshold
        normalized = (similarity - threshold) / span if span > 0 else 1.0
        normalized = max(0.0, min(1.0, normalized))
        return self.config.base_boost * (0.5 + 0.5 * normalized)

    def find_similar(self, memory_id: str, embedding: list[float]) -> list[dict[str, Any]]:
        """Stored memories at or above the similarity threshold, best first."""
        with self.sql_store.session() as sess:
            rows = sess.execute(
                select(MemoryRecord.id, MemoryRecord.embedding).where(
                    MemoryRecord.id != memory_id,
                    MemoryRecord.embedding.is_not(None),
                )
            ).all()
        index = VectorStore()
        index.bulk_add((row_id, vector, {}) for row_id, vector in rows if vector)
        return index.search(
            embedding,
            limit=self.config.max_candidates,
            min_score=self.config.similarity_threshold,
            exclude={memory_id},
        )

    def check(
        self,
        memory_id: str,
        content: str,
        current_confidence: float,
        embedding: list[float] | None = None,
    ) -> ReinforcementResult:
        """Reinforce one new memory; never raises for transient failures.

        ``embedding`` skips the embed call when the caller already has one.
        The boost is applied to the stored confidence of the locked row, so a
        stale ``current_confidence`` never lowers it.
        Raises ``MemoryNotFoundError`` if ``memory_id`` does not exist.
        """
        with self.sql_store.session() as sess:
            tier = require_memory(sess, memory_id).tier
        unchanged = ReinforcementResult.unchanged(memory_id, current_confidence, tier)
        try:
            return self._reinforce(memory_id, content, current_confidence, tier, embedding)
        except MemoryNotFoundError:
            raise
        except Exception:
            logger.exception("Reinforcement failed for memory %s; leaving it unchanged", memory_id)
            return unchanged

    def _reinforce(
        self,
        memory_id: str,
        content: str,
        current_confidence: float,
        tier: str,
        embedding: list[float] | None,
    ) -> ReinforcementResult:
        if embedding is None:
            embedding = self.embedder.embed(content)
        candidates = self.find_similar(memory_id, embedding)
        if not candidates:
            return ReinforcementResult.unchanged(memory_id, current_confidence, tier)

        with self.sql_store.session() as sess:
            memory = sess.get(MemoryRecord, memory_id, with_for_update=True)
            if memory is None:
                raise MemoryNotFoundError(memory_id)
            previous_tier = memory.tier
            if memory.confidence != current_confidence:
                logger.debug(
                    "Memory %s confidence moved to %.3f since the caller read %.3f",
                    memory_id,
                    memory.confidence,
                    current_confidence,
                )
            current_confidence = memory.confidence

            total_boost = 0.0
            reinforced_by: list[str] = []
            for candidate in candidates:
                similarity = max(0.0, min(1.0, float(candidate["score"])))
                boost = self.compute_boost(similarity)
                total_boost += boost
                reinforced_by.append(candidate["id"])
                self.edges.upsert_in(
                    sess,
                    memory_id,
                    candidate["id"],
                    "SIMILAR",
                    weight=boost,
                    similarity=similarity,
                    metadata={"reinforcement": True, "boost_applied": boost},
                )
            total_boost = min(total_boost, self.config.max_batch_boost)

            new_confidence = min(current_confidence + total_boost, 1.0)
            new_tier = previous_tier
            if previous_tier == "hypothesis" and new_confidence >= self.config.promotion_threshold:
                new_tier = "solid"
            memory.confidence = new_confidence
            memory.tier = new_tier
            was_promoted = new_tier != previous_tier
            if was_promoted:
                log_event(
                    sess,
                    "memory_promoted",
                    memory_id=memory_id,
                    confidence=new_confidence,
                    reinforced_by=reinforced_by,
                )

        logger.info(
            "Memory %s reinforced by %d similar memories: %.3f -> %.3f",
            memory_id,
            len(reinforced_by),
            current_confidence,
            new_confidence,
        )
        if was_promoted:
            logger.info("Memory %s promoted: %s -> %s", memory_id, previous_tier, new_tier)
        return ReinforcementResult(
            memory_id=memory_id,
            previous_confidence=current_confidence,
            new_confidence=new_confidence,
            previous_tier=previous_tier,
            new_tier=new_tier,
            was_promoted=was_promoted,
            reinforced_by=reinforced_by,
        )
