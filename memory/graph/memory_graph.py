"""Memory-centric neighborhood expansion for context assembly."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from memory.edges import EdgeStore
from memory.schemas import (
    EntityMentionRecord,
    EntityRecord,
    LivingSummaryRecord,
    MemoryEdgeRecord,
    MemoryRecord,
    MemorySummaryLinkRecord,
)
from memory.stores.sql_store import SQLStore
from memory.types.graph import Neighborhood, NeighborhoodEdge, NeighborhoodNode

logger = logging.getLogger("mind.graph")

NEIGHBOR_EDGE_TYPES = ("SIMILAR", "ENTITY", "SUMMARY")
MAX_SEEDS = 10
SIMILAR_FANOUT = 15
ENTITY_FANOUT = 10
SUMMARY_FANOUT = 5


def flatten_neighborhoods(neighborhoods: Iterable[Neighborhood]) -> list[NeighborhoodNode]:
    """Merge neighborhoods into one node list, keeping each node's best score."""
    best: dict[str, NeighborhoodNode] = {}
    for neighborhood in neighborhoods:
        for node in (neighborhood.seed, *neighborhood.nodes):
            current = best.get(node.id)
            if current is None or node.score > current.score:
                best[node.id] = node
    return sorted(best.values(), key=lambda node: node.score, reverse=True)


def _memory_node(row: MemoryRecord, score: float) -> NeighborhoodNode:
    return NeighborhoodNode(
        id=row.id,
        kind="memory",
        content=row.content,
        created_at=row.created_at,
        score=score,
        source=row.source,
    )


class MemoryGraph:
    """Breadth-first neighborhoods over SIMILAR, ENTITY and SUMMARY links.

    SIMILAR comes from stored edges, ENTITY from shared entity mentions and
    SUMMARY from memory-to-category links. Summary nodes are leaves.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        edges: EdgeStore,
        entity_types: Sequence[str] = ("person", "project", "organization"),
    ) -> None:
        self.sql_store = sql_store
        self.edges = edges
        self.entity_types = tuple(entity_types)

    def neighborhood_from_memories(
        self,
        seed_ids: Sequence[str],
        max_depth: int = 2,
        max_nodes: int = 50,
        min_weight: float = 0.3,
        edge_types: Sequence[str] = NEIGHBOR_EDGE_TYPES,
    ) -> list[Neighborhood]:
        """One neighborhood per existing seed (at most ten seeds)."""
        unknown = set(edge_types) - set(NEIGHBOR_EDGE_TYPES)
        if unknown:
            raise ValueError(f"Unknown neighborhood edge types: {sorted(unknown)}")
        results: list[Neighborhood] = []
        with self.sql_store.session() as sess:
            for seed_id in list(seed_ids)[:MAX_SEEDS]:
                neighborhood = self._expand(sess, seed_id, max_depth, max_nodes, min_weight, edge_types)
                if neighborhood is None:
                    logger.debug("Seed memory %s not found, skipping", seed_id)
                    continue
                results.append(neighborhood)
        return results

    def _expand(
        self,
        sess: Session,
        seed_id: str,
        max_depth: int,
        max_nodes: int,
        min_weight: float,
        edge_types: Sequence[str],
    ) -> Neighborhood | None:
        seed_row = sess.get(MemoryRecord, seed_id)
        if seed_row is None:
            return None
        neighborhood = Neighborhood(seed=_memory_node(seed_row, 1.0))
        visited = {seed_id}
        frontier = [seed_id]
        depth = 0

        while frontier and depth < max_depth and len(neighborhood.nodes) < max_nodes:
            next_frontier: list[str] = []
            for memory_id in frontier:
                found: list[tuple[NeighborhoodNode, NeighborhoodEdge, bool]] = []
                if "SIMILAR" in edge_types:
                    found.extend((n, e, True) for n, e in self._similar(sess, memory_id, min_weight))
                if "ENTITY" in edge_types:
                    found.extend((n, e, True) for n, e in self._entity(sess, memory_id, min_weight))
                if "SUMMARY" in edge_types:
                    found.extend((n, e, False) for n, e in self._summary(sess, memory_id, min_weight))
                for node, edge, expandable in found:
                    if node.id in visited or len(neighborhood.nodes) >= max_nodes:
                        continue
                    visited.add(node.id)
                    neighborhood.nodes.append(node)
                    neighborhood.edges.append(edge)
                    if expandable:
                        next_frontier.append(node.id)
            frontier = next_frontier
            depth += 1
        return neighborhood

    def _similar(
        self, sess: Session, memory_id: str, min_weight: float
    ) -> list[tuple[NeighborhoodNode, NeighborhoodEdge]]:
        related = self.edges.related_in(sess, memory_id, "SIMILAR", min_weight, limit=SIMILAR_FANOUT)
        results = []
        for item in related:
            node = NeighborhoodNode(
                id=item["id"],
                kind="memory",
                content=item["content"],
                created_at=item["created_at"],
                score=item["edge_weight"],
                source=item["source"],
            )
            edge = NeighborhoodEdge(
                source_id=memory_id, target_id=item["id"], edge_type="SIMILAR", weight=item["edge_weight"]
            )
            results.append((node, edge))
        return results

    def _entity(
        self, sess: Session, memory_id: str, min_weight: float
    ) -> list[tuple[NeighborhoodNode, NeighborhoodEdge]]:
        entity_rows = sess.execute(
            select(EntityRecord.id, EntityRecord.name)
            .join(EntityMentionRecord, EntityMentionRecord.entity_id == EntityRecord.id)
            .where(
                EntityMentionRecord.memory_id == memory_id,
                EntityRecord.entity_type.in_(self.entity_types),
                EntityRecord.is_merged.is_(False),
            )
        ).all()
        if not entity_rows:
            return []
        names = dict(entity_rows)
        pairs = sess.execute(
            select(EntityMentionRecord.memory_id, EntityMentionRecord.entity_id).where(
                EntityMentionRecord.entity_id.in_(list(names)),
                EntityMentionRecord.memory_id != memory_id,
            )
        ).all()
        shared = Counter(other_id for other_id, _ in pairs)
        via: dict[str, str] = {}
        for other_id, entity_id in sorted(pairs, key=lambda pair: names[pair[1]]):
            via.setdefault(other_id, names[entity_id])

        ranked = sorted(shared.items(), key=lambda item: (-item[1], item[0]))[:ENTITY_FANOUT]
        rows = {
            row.id: row
            for row in sess.scalars(
                select(MemoryRecord).where(MemoryRecord.id.in_([other for other, _ in ranked]))
            ).all()
        }
        results = []
        for other_id, count in ranked:
            weight = min(count / 3, 1.0)
            if weight < min_weight or other_id not in rows:
                continue
            node = _memory_node(rows[other_id], weight)
            edge = NeighborhoodEdge(
                source_id=memory_id,
                target_id=other_id,
                edge_type="ENTITY",
                weight=weight,
                via=via[other_id],
            )
            results.append((node, edge))
        return results

    @staticmethod
    def _summary(
        sess: Session, memory_id: str, min_weight: float
    ) -> list[tuple[NeighborhoodNode, NeighborhoodEdge]]:
        rows = sess.execute(
            select(LivingSummaryRecord, MemorySummaryLinkRecord.relevance_score)
            .join(
                MemorySummaryLinkRecord,
                MemorySummaryLinkRecord.summary_category == LivingSummaryRecord.category,
            )
            .where(
                MemorySummaryLinkRecord.memory_id == memory_id,
                MemorySummaryLinkRecord.relevance_score >= min_weight,
                LivingSummaryRecord.content != "",
            )
            .order_by(MemorySummaryLinkRecord.relevance_score.desc())
            .limit(SUMMARY_FANOUT)
        ).all()
        results = []
        for summary, relevance in rows:
            node = NeighborhoodNode(
                id=summary.id,
                kind="summary",
                content=summary.content,
                created_at=summary.last_updated_at,
                score=relevance,
            )
            edge = NeighborhoodEdge(
                source_id=memory_id,
                target_id=summary.id,
                edge_type="SUMMARY",
                weight=relevance,
                via=summary.category,
            )
            results.append((node, edge))
        return results

    def neighborhood_for_person(self, name: str, max_nodes: int = 50) -> list[NeighborhoodNode]:
        """Memories mentioning a person entity whose name contains ``name``."""
        pattern = f"%{name.strip().lower()}%"
        mentioned = (
            select(EntityMentionRecord.memory_id)
            .join(EntityRecord, EntityRecord.id == EntityMentionRecord.entity_id)
            .where(
                EntityRecord.entity_type == "person",
                EntityRecord.is_merged.is_(False),
                or_(
                    func.lower(EntityRecord.name).like(pattern),
                    EntityRecord.canonical_name.like(pattern),
                ),
            )
        )
        with self.sql_store.session() as sess:
            rows = sess.scalars(
                select(MemoryRecord)
                .where(MemoryRecord.id.in_(mentioned))
                .order_by(MemoryRecord.confidence.desc(), MemoryRecord.created_at.desc())
                .limit(max_nodes)
            ).all()
            return [_memory_node(row, row.confidence) for row in rows]

    def memory_graph_stats(self) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            total_memories = sess.scalar(select(func.count()).select_from(MemoryRecord)) or 0
            similar_edges = sess.scalar(
                select(func.count())
                .select_from(MemoryEdgeRecord)
                .where(MemoryEdgeRecord.edge_type == "SIMILAR")
            ) or 0
            entity_mentions = sess.scalar(select(func.count()).select_from(EntityMentionRecord)) or 0
            summary_links = sess.scalar(select(func.count()).select_from(MemorySummaryLinkRecord)) or 0
        return {
            "total_memories": total_memories,
            "similar_edges": similar_edges,
            "entity_mentions": entity_mentions,
            "summary_links": summary_links,
            "average_edges_per_memory": (similar_edges * 2) / total_memories if total_memories else 0.0,
        }
