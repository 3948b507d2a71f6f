"""Directed, typed, weighted edges between memories."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from memory.memory_manager import memory_to_dict
from memory.schemas import EDGE_TYPES, MemoryEdgeRecord, MemoryRecord, utc_now
from memory.stores.sql_store import SQLStore

logger = logging.getLogger("mind.edges")


def edge_to_dict(row: MemoryEdgeRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "source_memory_id": row.source_memory_id,
        "target_memory_id": row.target_memory_id,
        "edge_type": row.edge_type,
        "weight": row.weight,
        "similarity": row.similarity,
        "metadata": dict(row.edge_metadata or {}),
        "reinforcement_count": row.reinforcement_count,
        "created_at": row.created_at,
        "last_reinforced_at": row.last_reinforced_at,
    }


def _edge_rank(weight: float, similarity: float | None) -> tuple[float, bool, float]:
    # weight desc, then similarity desc with NULLs last
    return (weight, similarity is not None, similarity if similarity is not None else 0.0)


class EdgeStore:
    """Upserts and reads memory-to-memory edges.

    One row per ``(source, target, type)``; repeated inserts reinforce that
    row in place. Edges stay directed in storage and readers fold the two
    directions together.
    """

    def __init__(self, sql_store: SQLStore) -> None:
        self.sql_store = sql_store

    def upsert_edge(
        self,
        source_memory_id: str,
        target_memory_id: str,
        edge_type: str,
        weight: float,
        similarity: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Insert an edge, or reinforce the existing row for the same key."""
        with self.sql_store.session() as sess:
            row = self.upsert_in(
                sess, source_memory_id, target_memory_id, edge_type, weight, similarity, metadata
            )
            return edge_to_dict(row)

    def upsert_in(
        self,
        sess: Session,
        source_memory_id: str,
        target_memory_id: str,
        edge_type: str,
        weight: float,
        similarity: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEdgeRecord:
        """Same as ``upsert_edge`` inside a caller-owned transaction."""
        if edge_type not in EDGE_TYPES:
            raise ValueError(f"Unknown edge type: {edge_type}")
        if weight < 0:
            raise ValueError("Edge weight must be non-negative.")
        if similarity is not None and not 0.0 <= similarity <= 1.0:
            raise ValueError("Edge similarity must be within [0, 1].")
        if source_memory_id == target_memory_id:
            raise ValueError("Edges may not connect a memory to itself.")

        stmt = (
            select(MemoryEdgeRecord)
            .where(
                MemoryEdgeRecord.source_memory_id == source_memory_id,
                MemoryEdgeRecord.target_memory_id == target_memory_id,
                MemoryEdgeRecord.edge_type == edge_type,
            )
            .with_for_update()
        )
        row = sess.scalars(stmt).first()
        if row is None:
            try:
                with sess.begin_nested():
                    row = MemoryEdgeRecord(
                        source_memory_id=source_memory_id,
                        target_memory_id=target_memory_id,
                        edge_type=edge_type,
                        weight=weight,
                        similarity=similarity,
                        edge_metadata=dict(metadata or {}),
                        reinforcement_count=1,
                    )
                    sess.add(row)
                logger.debug("Created %s edge %s -> %s", edge_type, source_memory_id, target_memory_id)
                return row
            except IntegrityError:
                # Lost the insert race; fall through and reinforce the winner's row.
                row = sess.scalars(stmt).first()
                if row is None:
                    raise

        row.weight = max(row.weight, weight)
        if similarity is not None:
            row.similarity = similarity
        if metadata:
            row.edge_metadata = {**(row.edge_metadata or {}), **metadata}
        row.reinforcement_count += 1
        row.last_reinforced_at = utc_now()
        sess.flush()
        logger.debug(
            "Reinforced %s edge %s -> %s (count=%d)",
            edge_type,
            source_memory_id,
            target_memory_id,
            row.reinforcement_count,
        )
        return row

    def related_memories(
        self,
        memory_id: str,
        edge_type: str = "SIMILAR",
        min_weight: float = 0.2,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Memories linked to ``memory_id`` in either direction, one entry per memory."""
        with self.sql_store.session() as sess:
            return self.related_in(sess, memory_id, edge_type, min_weight, limit)

    def related_in(
        self,
        sess: Session,
        memory_id: str,
        edge_type: str = "SIMILAR",
        min_weight: float = 0.2,
        limit: int | None = 10,
    ) -> list[dict[str, Any]]:
        rows = sess.execute(
            select(MemoryEdgeRecord, MemoryRecord)
            .join(
                MemoryRecord,
                or_(
                    (MemoryEdgeRecord.source_memory_id == memory_id)
                    & (MemoryRecord.id == MemoryEdgeRecord.target_memory_id),
                    (MemoryEdgeRecord.target_memory_id == memory_id)
                    & (MemoryRecord.id == MemoryEdgeRecord.source_memory_id),
                ),
            )
            .where(
                MemoryEdgeRecord.edge_type == edge_type,
                MemoryEdgeRecord.weight >= min_weight,
            )
        ).all()

        best: dict[str, tuple[MemoryEdgeRecord, MemoryRecord]] = {}
        for edge, memory in rows:
            current = best.get(memory.id)
            if current is None or _edge_rank(edge.weight, edge.similarity) > _edge_rank(
                current[0].weight, current[0].similarity
            ):
                best[memory.id] = (edge, memory)

        ranked = sorted(
            best.values(),
            key=lambda pair: _edge_rank(pair[0].weight, pair[0].similarity),
            reverse=True,
        )
        if limit is not None:
            ranked = ranked[:limit]
        results = []
        for edge, memory in ranked:
            item = memory_to_dict(memory)
            item["edge_type"] = edge.edge_type
            item["edge_weight"] = edge.weight
            item["edge_similarity"] = edge.similarity
            results.append(item)
        return results

    def get_edges(self, memory_id: str) -> list[dict[str, Any]]:
        """All edges touching a memory, strongest first."""
        with self.sql_store.session() as sess:
            rows = sess.scalars(
                select(MemoryEdgeRecord)
                .where(
                    or_(
                        MemoryEdgeRecord.source_memory_id == memory_id,
                        MemoryEdgeRecord.target_memory_id == memory_id,
                    )
                )
                .order_by(MemoryEdgeRecord.weight.desc())
            ).all()
            return [edge_to_dict(row) for row in rows]

    def edge_stats(self) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            by_type_rows = sess.execute(
                select(MemoryEdgeRecord.edge_type, func.count()).group_by(MemoryEdgeRecord.edge_type)
            ).all()
            avg_weight = sess.scalar(select(func.avg(MemoryEdgeRecord.weight)))
            avg_similarity = sess.scalar(select(func.avg(MemoryEdgeRecord.similarity)))

        by_type = {edge_type: 0 for edge_type in EDGE_TYPES}
        by_type.update({edge_type: int(count) for edge_type, count in by_type_rows})
        return {
            "total": sum(by_type.values()),
            "by_type": by_type,
            "average_weight": float(avg_weight) if avg_weight is not None else 1.0,
            "average_similarity": float(avg_similarity) if avg_similarity is not None else 0.0,
        }
