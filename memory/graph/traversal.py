"""Entity and memory graph traversal, path finding and subgraphs.

The graph has two node kinds. Memories link to memories through stored
edges (walked in both directions); entities link to entities when they are
mentioned in the same memory. Every walk here is a level-by-level frontier
loop bounded by a hop count, so termination never depends on graph shape.
Among several shortest paths the one returned depends on traversal order.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, or_, select, union
from sqlalchemy.orm import Session

from memory.edges import edge_to_dict
from memory.memory_manager import entity_to_dict, memory_to_dict
from memory.schemas import (
    EDGE_TYPES,
    EntityMentionRecord,
    EntityRecord,
    MemoryEdgeRecord,
    MemoryRecord,
)
from memory.stores.sql_store import SQLStore
from memory.types.graph import EntityPath, GraphEdge, GraphNode, MemoryPath, Subgraph

logger = logging.getLogger("mind.graph")


def _label(content: str, width: int = 50) -> str:
    return content if len(content) <= width else content[:width] + "..."


def _check_edge_types(edge_types: Sequence[str]) -> tuple[str, ...]:
    unknown = set(edge_types) - set(EDGE_TYPES)
    if unknown:
        raise ValueError(f"Unknown edge types: {sorted(unknown)}")
    return tuple(edge_types)


class GraphTraversal:
    """Read-only queries over the memory/entity graph."""

    def __init__(self, sql_store: SQLStore) -> None:
        self.sql_store = sql_store

    # --- adjacency helpers ------------------------------------------------

    @staticmethod
    def _memories_of(sess: Session, entity_ids: Iterable[str]) -> dict[str, set[str]]:
        ids = list(entity_ids)
        result: dict[str, set[str]] = defaultdict(set)
        if not ids:
            return result
        rows = sess.execute(
            select(EntityMentionRecord.entity_id, EntityMentionRecord.memory_id).where(
                EntityMentionRecord.entity_id.in_(ids)
            )
        ).all()
        for entity_id, memory_id in rows:
            result[entity_id].add(memory_id)
        return result

    @staticmethod
    def _entities_in(sess: Session, memory_ids: Iterable[str]) -> dict[str, set[str]]:
        """Non-merged entities mentioned in each memory."""
        ids = list(memory_ids)
        result: dict[str, set[str]] = defaultdict(set)
        if not ids:
            return result
        rows = sess.execute(
            select(EntityMentionRecord.memory_id, EntityMentionRecord.entity_id)
            .join(EntityRecord, EntityRecord.id == EntityMentionRecord.entity_id)
            .where(EntityMentionRecord.memory_id.in_(ids), EntityRecord.is_merged.is_(False))
        ).all()
        for memory_id, entity_id in rows:
            result[memory_id].add(entity_id)
        return result

    def _co_occurring(self, sess: Session, entity_id: str) -> tuple[set[str], dict[str, set[str]]]:
        """Memories of ``entity_id`` and, per other entity, the memories they share."""
        memories = self._memories_of(sess, [entity_id]).get(entity_id, set())
        shared: dict[str, set[str]] = defaultdict(set)
        for memory_id, entity_ids in self._entities_in(sess, memories).items():
            for other in entity_ids:
                if other != entity_id:
                    shared[other].add(memory_id)
        return memories, shared

    @staticmethod
    def _memory_edges(
        sess: Session, memory_ids: Iterable[str], edge_types: Sequence[str], min_weight: float = 0.0
    ) -> list[MemoryEdgeRecord]:
        ids = list(memory_ids)
        if not ids:
            return []
        return list(
            sess.scalars(
                select(MemoryEdgeRecord).where(
                    or_(
                        MemoryEdgeRecord.source_memory_id.in_(ids),
                        MemoryEdgeRecord.target_memory_id.in_(ids),
                    ),
                    MemoryEdgeRecord.edge_type.in_(edge_types),
                    MemoryEdgeRecord.weight >= min_weight,
                )
            ).all()
        )

    @staticmethod
    def _load_memories(sess: Session, memory_ids: Iterable[str]) -> dict[str, MemoryRecord]:
        ids = list(set(memory_ids))
        if not ids:
            return {}
        return {row.id: row for row in sess.scalars(select(MemoryRecord).where(MemoryRecord.id.in_(ids)))}

    @staticmethod
    def _load_entities(sess: Session, entity_ids: Iterable[str]) -> dict[str, EntityRecord]:
        ids = list(set(entity_ids))
        if not ids:
            return {}
        return {
            row.id: row
            for row in sess.scalars(
                select(EntityRecord).where(EntityRecord.id.in_(ids), EntityRecord.is_merged.is_(False))
            )
        }

    # --- entity neighbors -------------------------------------------------

    def find_entity_neighbors(
        self,
        entity_id: str,
        limit: int = 20,
        min_shared_memories: int = 1,
        entity_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Entities co-mentioned with ``entity_id``, most shared memories first."""
        with self.sql_store.session() as sess:
            memories, shared = self._co_occurring(sess, entity_id)
            entities = self._load_entities(sess, shared)
            results = []
            for other_id, shared_ids in shared.items():
                entity = entities.get(other_id)
                if entity is None or len(shared_ids) < min_shared_memories:
                    continue
                if entity_type is not None and entity.entity_type != entity_type:
                    continue
                results.append(
                    {
                        "entity": entity_to_dict(entity),
                        "shared_memory_count": len(shared_ids),
                        "connection_strength": len(shared_ids) / max(len(memories), 1),
                        "shared_memory_ids": sorted(shared_ids),
                    }
                )
        results.sort(key=lambda item: (-item["shared_memory_count"], item["entity"]["name"]))
        return results[:limit]

    def find_shared_memories(self, entity_a_id: str, entity_b_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Memories that mention both entities."""
        with self.sql_store.session() as sess:
            mentions = self._memories_of(sess, [entity_a_id, entity_b_id])
            both = mentions.get(entity_a_id, set()) & mentions.get(entity_b_id, set())
            if not both:
                return []
            rows = sess.scalars(
                select(MemoryRecord)
                .where(MemoryRecord.id.in_(sorted(both)))
                .order_by(MemoryRecord.confidence.desc(), MemoryRecord.created_at.desc())
                .limit(limit)
            ).all()
            return [memory_to_dict(row) for row in rows]

    # --- multi-hop traversal ----------------------------------------------

    def traverse_entities(
        self,
        start_entity_id: str,
        max_hops: int = 2,
        limit: int = 50,
        min_strength: float = 0.1,
    ) -> list[dict[str, Any]]:
        """Entities within ``max_hops`` co-occurrence hops of the start entity.

        A hop's strength is the fraction of the current entity's memories that
        also mention the next entity; path strength is the product over hops.
        Each entity keeps its lowest-hop path, strongest among equals.
        """
        best: dict[str, tuple[int, float]] = {}
        with self.sql_store.session() as sess:
            visited = {start_entity_id}
            frontier = {start_entity_id: 1.0}
            hops = 0
            while frontier and hops < max_hops:
                hops += 1
                reached: dict[str, float] = {}
                for entity_id, strength in frontier.items():
                    memories, shared = self._co_occurring(sess, entity_id)
                    for other_id, shared_ids in shared.items():
                        if other_id in visited:
                            continue
                        candidate = strength * len(shared_ids) / max(len(memories), 1)
                        if candidate > reached.get(other_id, -1.0):
                            reached[other_id] = candidate
                visited.update(reached)
                for other_id, strength in reached.items():
                    best[other_id] = (hops, strength)
                frontier = reached

            entities = self._load_entities(sess, best)
            results = [
                {"entity": entity_to_dict(entities[entity_id]), "hops": hop, "path_strength": strength}
                for entity_id, (hop, strength) in best.items()
                if entity_id in entities and strength >= min_strength
            ]
        results.sort(key=lambda item: (item["hops"], -item["path_strength"]))
        return results[:limit]

    def traverse_memories(
        self,
        start_memory_id: str,
        max_hops: int = 2,
        edge_types: Sequence[str] = ("SIMILAR",),
        min_weight: float = 0.3,
        limit: int = 30,
    ) -> list[dict[str, Any]]:
        """Memories within ``max_hops`` edges; path weight is the product of edge weights."""
        edge_types = _check_edge_types(edge_types)
        best: dict[str, tuple[int, float]] = {}
        with self.sql_store.session() as sess:
            visited = {start_memory_id}
            frontier = {start_memory_id: 1.0}
            hops = 0
            while frontier and hops < max_hops:
                hops += 1
                reached: dict[str, float] = {}
                for edge in self._memory_edges(sess, frontier, edge_types, min_weight):
                    for here, there in (
                        (edge.source_memory_id, edge.target_memory_id),
                        (edge.target_memory_id, edge.source_memory_id),
                    ):
                        if here not in frontier or there in visited:
                            continue
                        candidate = frontier[here] * edge.weight
                        if candidate > reached.get(there, -1.0):
                            reached[there] = candidate
                visited.update(reached)
                for memory_id, weight in reached.items():
                    best[memory_id] = (hops, weight)
                frontier = reached

            memories = self._load_memories(sess, best)
            results = [
                {"memory": memory_to_dict(memories[memory_id]), "hops": hop, "path_weight": weight}
                for memory_id, (hop, weight) in best.items()
                if memory_id in memories
            ]
        results.sort(key=lambda item: (item["hops"], -item["path_weight"]))
        return results[:limit]

    # --- shortest paths ---------------------------------------------------

    def find_path_between_entities(
        self, start_entity_id: str, end_entity_id: str, max_hops: int = 4
    ) -> EntityPath:
        """Shortest co-occurrence chain; ``found=False`` if none within ``max_hops``."""
        with self.sql_store.session() as sess:
            if not self._load_entities(sess, [start_entity_id, end_entity_id]).keys() >= {
                start_entity_id,
                end_entity_id,
            }:
                return EntityPath(found=False)
            # entity -> (previous entity, memory linking them)
            parents: dict[str, tuple[str, str] | None] = {start_entity_id: None}
            frontier = [start_entity_id]
            hops = 0
            while frontier and end_entity_id not in parents and hops < max_hops:
                hops += 1
                next_frontier: list[str] = []
                for entity_id in frontier:
                    _, shared = self._co_occurring(sess, entity_id)
                    for other_id in sorted(shared):
                        if other_id in parents:
                            continue
                        parents[other_id] = (entity_id, min(shared[other_id]))
                        next_frontier.append(other_id)
                frontier = next_frontier

            if end_entity_id not in parents:
                logger.debug("No entity path %s -> %s within %d hops", start_entity_id, end_entity_id, max_hops)
                return EntityPath(found=False)

            entity_ids: list[str] = [end_entity_id]
            memory_ids: list[str] = []
            step = parents[end_entity_id]
            while step is not None:
                previous, memory_id = step
                entity_ids.append(previous)
                memory_ids.append(memory_id)
                step = parents[previous]
            entity_ids.reverse()
            memory_ids.reverse()

            entities = self._load_entities(sess, entity_ids)
            memories = self._load_memories(sess, memory_ids)
            return EntityPath(
                found=True,
                path=[entity_to_dict(entities[entity_id]) for entity_id in entity_ids],
                connecting_memories=[memory_to_dict(memories[memory_id]) for memory_id in memory_ids],
            )

    def find_path_between_memories(
        self,
        start_memory_id: str,
        end_memory_id: str,
        max_hops: int = 5,
        edge_types: Sequence[str] = ("SIMILAR",),
    ) -> MemoryPath:
        """Shortest edge chain between two memories, edges walked in either direction."""
        edge_types = _check_edge_types(edge_types)
        with self.sql_store.session() as sess:
            if len(self._load_memories(sess, [start_memory_id, end_memory_id])) < len(
                {start_memory_id, end_memory_id}
            ):
                return MemoryPath(found=False)
            parents: dict[str, tuple[str, MemoryEdgeRecord] | None] = {start_memory_id: None}
            frontier = [start_memory_id]
            hops = 0
            while frontier and end_memory_id not in parents and hops < max_hops:
                hops += 1
                current = set(frontier)
                next_frontier: list[str] = []
                for edge in self._memory_edges(sess, frontier, edge_types):
                    for here, there in (
                        (edge.source_memory_id, edge.target_memory_id),
                        (edge.target_memory_id, edge.source_memory_id),
                    ):
                        if here in current and there not in parents:
                            parents[there] = (here, edge)
                            next_frontier.append(there)
                frontier = next_frontier

            if end_memory_id not in parents:
                logger.debug("No memory path %s -> %s within %d hops", start_memory_id, end_memory_id, max_hops)
                return MemoryPath(found=False)

            memory_ids = [end_memory_id]
            edges: list[dict[str, Any]] = []
            step = parents[end_memory_id]
            while step is not None:
                previous, edge = step
                memory_ids.append(previous)
                edges.append({"type": edge.edge_type, "weight": edge.weight})
                step = parents[previous]
            memory_ids.reverse()
            edges.reverse()

            memories = self._load_memories(sess, memory_ids)
            return MemoryPath(
                found=True,
                path=[memory_to_dict(memories[memory_id]) for memory_id in memory_ids],
                edges=edges,
            )

    # --- subgraphs --------------------------------------------------------

    def entity_subgraph(
        self,
        entity_id: str,
        memory_limit: int = 20,
        entity_limit: int = 10,
        include_edges: bool = True,
    ) -> Subgraph:
        """The entity, memories mentioning it, co-occurring entities, and edges among those memories."""
        subgraph = Subgraph()
        with self.sql_store.session() as sess:
            center = self._load_entities(sess, [entity_id]).get(entity_id)
            if center is None:
                return subgraph
            subgraph.nodes.append(
                GraphNode(
                    id=center.id,
                    type="entity",
                    label=center.name,
                    attributes={"entity_type": center.entity_type, "mention_count": center.mention_count},
                )
            )
            rows = sess.execute(
                select(MemoryRecord, EntityMentionRecord.mention_text)
                .join(EntityMentionRecord, EntityMentionRecord.memory_id == MemoryRecord.id)
                .where(EntityMentionRecord.entity_id == entity_id)
                .order_by(MemoryRecord.confidence.desc(), MemoryRecord.created_at.desc())
                .limit(memory_limit)
            ).all()
            memory_ids = []
            for memory, mention_text in rows:
                memory_ids.append(memory.id)
                subgraph.nodes.append(
                    GraphNode(
                        id=memory.id,
                        type="memory",
                        label=_label(memory.content),
                        attributes={"confidence": memory.confidence, "created_at": memory.created_at},
                    )
                )
                subgraph.edges.append(
                    GraphEdge(
                        source=entity_id,
                        target=memory.id,
                        type="MENTIONS",
                        weight=1.0,
                        attributes={"mention_text": mention_text},
                    )
                )
            internal: list[dict[str, Any]] = []
            if include_edges and memory_ids:
                rows_between = sess.scalars(
                    select(MemoryEdgeRecord).where(
                        MemoryEdgeRecord.source_memory_id.in_(memory_ids),
                        MemoryEdgeRecord.target_memory_id.in_(memory_ids),
                    )
                ).all()
                internal = [edge_to_dict(edge) for edge in rows_between]

        for neighbor in self.find_entity_neighbors(entity_id, limit=entity_limit):
            entity = neighbor["entity"]
            subgraph.nodes.append(
                GraphNode(
                    id=entity["id"],
                    type="entity",
                    label=entity["name"],
                    attributes={
                        "entity_type": entity["entity_type"],
                        "shared_memories": neighbor["shared_memory_count"],
                    },
                )
            )
            subgraph.edges.append(
                GraphEdge(
                    source=entity_id,
                    target=entity["id"],
                    type="CO_OCCURS",
                    weight=neighbor["connection_strength"],
                    attributes={"shared_memory_ids": neighbor["shared_memory_ids"]},
                )
            )
        for edge in internal:
            subgraph.edges.append(
                GraphEdge(
                    source=edge["source_memory_id"],
                    target=edge["target_memory_id"],
                    type=edge["edge_type"],
                    weight=edge["weight"],
                    attributes={"similarity": edge["similarity"]},
                )
            )
        return subgraph

    def memory_subgraph(self, memory_id: str, max_hops: int = 1, include_entities: bool = True) -> Subgraph:
        """The memory, memories within ``max_hops``, the edges among them and their entities."""
        subgraph = Subgraph()
        with self.sql_store.session() as sess:
            center = sess.get(MemoryRecord, memory_id)
            if center is None:
                return subgraph
            subgraph.nodes.append(
                GraphNode(
                    id=center.id,
                    type="memory",
                    label=_label(center.content),
                    attributes={
                        "confidence": center.confidence,
                        "tier": center.tier,
                        "created_at": center.created_at,
                    },
                )
            )
        connected = self.traverse_memories(memory_id, max_hops=max_hops, limit=20)
        for item in connected:
            memory = item["memory"]
            subgraph.nodes.append(
                GraphNode(
                    id=memory["id"],
                    type="memory",
                    label=_label(memory["content"]),
                    attributes={
                        "confidence": memory["confidence"],
                        "hops": item["hops"],
                        "path_weight": item["path_weight"],
                    },
                )
            )
        all_ids = {memory_id, *(item["memory"]["id"] for item in connected)}

        with self.sql_store.session() as sess:
            seen: set[tuple[str, ...]] = set()
            for edge in self._memory_edges(sess, all_ids, EDGE_TYPES):
                if edge.source_memory_id not in all_ids or edge.target_memory_id not in all_ids:
                    continue
                key = tuple(sorted((edge.source_memory_id, edge.target_memory_id)))
                if key in seen:
                    continue
                seen.add(key)
                subgraph.edges.append(
                    GraphEdge(
                        source=edge.source_memory_id,
                        target=edge.target_memory_id,
                        type=edge.edge_type,
                        weight=edge.weight,
                        attributes={"similarity": edge.similarity},
                    )
                )

            if include_entities:
                mentions = self._entities_in(sess, all_ids)
                entities = self._load_entities(sess, {e for ids in mentions.values() for e in ids})
                for entity_id in sorted(entities):
                    entity = entities[entity_id]
                    subgraph.nodes.append(
                        GraphNode(
                            id=entity.id,
                            type="entity",
                            label=entity.name,
                            attributes={"entity_type": entity.entity_type, "mention_count": entity.mention_count},
                        )
                    )
                for mem_id in sorted(mentions):
                    for entity_id in sorted(mentions[mem_id]):
                        subgraph.edges.append(
                            GraphEdge(source=entity_id, target=mem_id, type="MENTIONS", weight=1.0)
                        )
        return subgraph

    # --- statistics -------------------------------------------------------

    def graph_stats(self) -> dict[str, Any]:
        """Node and edge counts, average degrees and a rough component count."""
        with self.sql_store.session() as sess:
            memory_count = sess.scalar(select(func.count()).select_from(MemoryRecord)) or 0
            entity_count = sess.scalar(
                select(func.count()).select_from(EntityRecord).where(EntityRecord.is_merged.is_(False))
            ) or 0
            edge_count = sess.scalar(select(func.count()).select_from(MemoryEdgeRecord)) or 0
            mention_count = sess.scalar(select(func.count()).select_from(EntityMentionRecord)) or 0

            linked = union(
                select(MemoryEdgeRecord.source_memory_id.label("memory_id")),
                select(MemoryEdgeRecord.target_memory_id),
                select(EntityMentionRecord.memory_id),
            ).subquery()
            connected = sess.scalar(select(func.count()).select_from(linked)) or 0

        isolated = memory_count - connected
        # Isolated memories each count as a component; everything else is lumped into one.
        components = isolated + (1 if connected else 0)
        return {
            "node_count": {"memories": memory_count, "entities": entity_count},
            "edge_count": {"memory_edges": edge_count, "mentions": mention_count},
            "average_degree": {
                "memories": round((edge_count * 2) / memory_count, 2) if memory_count else 0.0,
                "entities": round(mention_count / entity_count, 2) if entity_count else 0.0,
            },
            "components": components,
        }
