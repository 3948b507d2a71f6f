"""Neighborhood expansion, traversal and path finding tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import update

from memory.edges import EdgeStore
from memory.graph.memory_graph import MemoryGraph, flatten_neighborhoods
from memory.graph.traversal import GraphTraversal
from memory.memory_manager import MemoryManager
from memory.schemas import LivingSummaryRecord
from memory.stores.sql_store import SQLStore
from memory.summaries import LivingSummaries
from memory.types.extraction import CategoryClassification


class GraphFixture:
    def __init__(self, tmp_path: Path) -> None:
        store = SQLStore(db_path=tmp_path / "mind.db")
        store.create_all()
        self.store = store
        self.memory = MemoryManager(sql_store=store)
        self.edges = EdgeStore(store)
        self.summaries = LivingSummaries(store)
        self.graph = MemoryGraph(store, self.edges)
        self.traversal = GraphTraversal(store)

    def add(self, content: str, confidence: float = 0.5) -> str:
        return self.memory.add_memory(content, confidence=confidence)["id"]

    def chain(self) -> list[str]:
        ids = [self.add(text) for text in ("a", "b", "c", "d")]
        for (src, dst), weight in zip(zip(ids, ids[1:]), (0.9, 0.8, 0.7)):
            self.edges.upsert_edge(src, dst, "SIMILAR", weight=weight, similarity=weight)
        return ids

    def mention(self, entity_id: str, *memory_ids: str) -> None:
        for memory_id in memory_ids:
            self.memory.mention_entity(entity_id, memory_id)


@pytest.fixture()
def graph(tmp_path: Path) -> GraphFixture:
    return GraphFixture(tmp_path)


def test_neighborhood_respects_depth(graph: GraphFixture) -> None:
    a, b, c, d = graph.chain()

    (hood,) = graph.graph.neighborhood_from_memories([a], max_depth=2)

    assert hood.seed.id == a
    assert [node.id for node in hood.nodes] == [b, c]
    assert [(edge.source_id, edge.target_id) for edge in hood.edges] == [(a, b), (b, c)]
    assert hood.nodes[0].score == pytest.approx(0.9)


def test_neighborhood_node_cap_is_global(graph: GraphFixture) -> None:
    a, b, *_ = graph.chain()

    (hood,) = graph.graph.neighborhood_from_memories([a], max_depth=5, max_nodes=1)

    assert [node.id for node in hood.nodes] == [b]


def test_neighborhood_follows_shared_entities(graph: GraphFixture) -> None:
    a = graph.add("Lunch with Alice")
    e = graph.add("Alice got promoted")
    f = graph.add("Bought a new kettle")
    alice = graph.memory.add_entity("Alice", entity_type="person")["id"]
    kettle = graph.memory.add_entity("kettle", entity_type="object")["id"]
    graph.mention(alice, a, e)
    graph.mention(kettle, a, f)

    (hood,) = graph.graph.neighborhood_from_memories([a])

    assert [node.id for node in hood.nodes] == [e]
    edge = hood.edges[0]
    assert edge.edge_type == "ENTITY"
    assert edge.via == "Alice"
    assert edge.weight == pytest.approx(1 / 3)

    (strict,) = graph.graph.neighborhood_from_memories([a], min_weight=0.5)
    assert strict.nodes == []


def test_summary_nodes_are_leaves(graph: GraphFixture) -> None:
    a, b = graph.add("Shipping Atlas"), graph.add("Atlas retro")
    graph.edges.upsert_edge(a, b, "SIMILAR", weight=0.9)
    graph.summaries.link_memory(a, [CategoryClassification(category="projects", relevance=0.8)])

    (empty_summary,) = graph.graph.neighborhood_from_memories([a])
    assert [node.kind for node in empty_summary.nodes] == ["memory"]

    with graph.store.session() as sess:
        sess.execute(
            update(LivingSummaryRecord)
            .where(LivingSummaryRecord.category == "projects")
            .values(content="You are shipping Atlas.")
        )

    (hood,) = graph.graph.neighborhood_from_memories([a], max_depth=3)
    kinds = {node.id: node.kind for node in hood.nodes}
    assert sorted(kinds.values()) == ["memory", "summary"]
    summary_edge = next(edge for edge in hood.edges if edge.edge_type == "SUMMARY")
    assert summary_edge.via == "projects"
    assert all(edge.source_id != summary_edge.target_id for edge in hood.edges)

    (memory_only,) = graph.graph.neighborhood_from_memories([a], edge_types=["SIMILAR"])
    assert [node.kind for node in memory_only.nodes] == ["memory"]


def test_neighborhood_seed_handling(graph: GraphFixture) -> None:
    a, b, c, _ = graph.chain()

    hoods = graph.graph.neighborhood_from_memories([a, "missing", c], max_depth=1)

    assert [hood.seed.id for hood in hoods] == [a, c]
    flat = flatten_neighborhoods(hoods)
    assert len({node.id for node in flat}) == len(flat)
    assert flat[0].score == 1.0
    assert {node.id for node in flat} >= {a, b, c}
    with pytest.raises(ValueError):
        graph.graph.neighborhood_from_memories([a], edge_types=["FOLLOWS"])


def test_neighborhood_for_person(graph: GraphFixture) -> None:
    a = graph.add("Coffee with Alice", confidence=0.9)
    b = graph.add("Alice's birthday party", confidence=0.4)
    graph.add("Unrelated")
    alice = graph.memory.add_entity("Alice Smith", entity_type="person")["id"]
    graph.mention(alice, a, b)

    nodes = graph.graph.neighborhood_for_person("alice")

    assert [node.id for node in nodes] == [a, b]
    assert graph.graph.neighborhood_for_person("bob") == []


def test_memory_paths(graph: GraphFixture) -> None:
    a, b, c, d = graph.chain()
    lonely = graph.add("lonely")

    path = graph.traversal.find_path_between_memories(d, a)
    assert path.found is True
    assert [item["id"] for item in path.path] == [d, c, b, a]
    assert len(path.edges) == 3
    assert all(edge["type"] == "SIMILAR" for edge in path.edges)

    assert graph.traversal.find_path_between_memories(a, d, max_hops=2).found is False
    assert graph.traversal.find_path_between_memories(a, lonely).found is False
    assert graph.traversal.find_path_between_memories(a, "missing").found is False
    same = graph.traversal.find_path_between_memories(a, a)
    assert same.found is True
    assert [item["id"] for item in same.path] == [a]


def test_traverse_memories_multiplies_weights(graph: GraphFixture) -> None:
    a, b, c, _ = graph.chain()

    reached = graph.traversal.traverse_memories(a, max_hops=2)

    assert [(item["memory"]["id"], item["hops"]) for item in reached] == [(b, 1), (c, 2)]
    assert reached[1]["path_weight"] == pytest.approx(0.72)


def build_entities(graph: GraphFixture) -> tuple[str, str, str, str, str]:
    m1 = graph.add("Xavier introduced Yara")
    m2 = graph.add("Yara and Zoe started a band")
    m3 = graph.add("Yara solo trip")
    x = graph.memory.add_entity("Xavier", entity_type="person")["id"]
    y = graph.memory.add_entity("Yara", entity_type="person")["id"]
    z = graph.memory.add_entity("Zoe", entity_type="person")["id"]
    graph.mention(x, m1)
    graph.mention(y, m1, m2, m3)
    graph.mention(z, m2)
    return x, y, z, m1, m2


def test_entity_paths(graph: GraphFixture) -> None:
    x, y, z, m1, m2 = build_entities(graph)

    path = graph.traversal.find_path_between_entities(x, z)
    assert path.found is True
    assert [item["id"] for item in path.path] == [x, y, z]
    assert [item["id"] for item in path.connecting_memories] == [m1, m2]

    assert graph.traversal.find_path_between_entities(x, z, max_hops=1).found is False
    assert graph.traversal.find_path_between_entities(x, "missing").found is False

    graph.memory.merge_entity(z, y)
    assert graph.traversal.find_path_between_entities(x, z).found is False


def test_entity_neighbors_and_traversal(graph: GraphFixture) -> None:
    x, y, z, m1, _ = build_entities(graph)

    neighbors = graph.traversal.find_entity_neighbors(y)
    assert [item["entity"]["id"] for item in neighbors] == [x, z]
    assert neighbors[0]["connection_strength"] == pytest.approx(1 / 3)
    assert [row["id"] for row in graph.traversal.find_shared_memories(x, y)] == [m1]

    reached = graph.traversal.traverse_entities(x, max_hops=2)
    assert [(item["entity"]["id"], item["hops"]) for item in reached] == [(y, 1), (z, 2)]
    assert reached[0]["path_strength"] == pytest.approx(1.0)
    assert reached[1]["path_strength"] == pytest.approx(1 / 3)

    assert graph.traversal.traverse_entities(x, max_hops=2, min_strength=0.5)[-1]["entity"]["id"] == y


def test_subgraphs(graph: GraphFixture) -> None:
    x, y, z, m1, m2 = build_entities(graph)
    graph.edges.upsert_edge(m1, m2, "SIMILAR", weight=0.6)

    sub = graph.traversal.entity_subgraph(y)
    node_ids = {node.id for node in sub.nodes}
    assert {y, x, z, m1, m2} <= node_ids
    assert {edge.type for edge in sub.edges} == {"MENTIONS", "CO_OCCURS", "SIMILAR"}

    around = graph.traversal.memory_subgraph(m1)
    assert {node.id for node in around.nodes} >= {m1, m2, x, y}
    assert any(edge.type == "SIMILAR" for edge in around.edges)

    assert graph.traversal.entity_subgraph("missing").nodes == []


def test_graph_statistics(graph: GraphFixture) -> None:
    graph.chain()
    graph.add("isolated")

    stats = graph.traversal.graph_stats()
    assert stats["node_count"]["memories"] == 5
    assert stats["edge_count"]["memory_edges"] == 3
    assert stats["average_degree"]["memories"] == pytest.approx(1.2)
    assert stats["components"] == 2

    memory_stats = graph.graph.memory_graph_stats()
    assert memory_stats["total_memories"] == 5
    assert memory_stats["similar_edges"] == 3
