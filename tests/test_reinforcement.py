"""Reinforcement and tier promotion tests."""

from __future__ import annotations

import math
from pathlib import Path

import pytest
from sqlalchemy import select

from llm.embeddings import BaseEmbedder, EmbeddingError
from memory.edges import EdgeStore
from memory.errors import MemoryNotFoundError
from memory.memory_manager import MemoryManager
from memory.reinforcement import ReinforcementConfig, ReinforcementEngine
from memory.schemas import MemoryEventRecord
from memory.stores.sql_store import SQLStore


class FakeEmbedder(BaseEmbedder):
    """Returns a fixed vector per text."""

    def __init__(self, vectors: dict[str, list[float]]) -> None:
        self.vectors = vectors

    def embed(self, text: str) -> list[float]:
        if text not in self.vectors:
            raise EmbeddingError(f"no vector for {text!r}")
        return self.vectors[text]


def unit(*values: float) -> list[float]:
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


def build(tmp_path: Path, vectors: dict[str, list[float]]) -> tuple[MemoryManager, EdgeStore, ReinforcementEngine]:
    store = SQLStore(db_path=tmp_path / "mind.db")
    store.create_all()
    embedder = FakeEmbedder(vectors)
    edges = EdgeStore(store)
    return MemoryManager(sql_store=store, embedder=embedder), edges, ReinforcementEngine(store, edges, embedder)


def test_compute_boost_scales_with_similarity(tmp_path: Path) -> None:
    _, _, engine = build(tmp_path, {})

    assert engine.compute_boost(0.80) == pytest.approx(0.075)
    assert engine.compute_boost(0.85) == pytest.approx(0.09375)
    assert engine.compute_boost(1.0) == pytest.approx(0.15)
    assert engine.compute_boost(1.2) == pytest.approx(0.15)


def test_no_similar_memories_leaves_state_unchanged(tmp_path: Path) -> None:
    memory, edges, engine = build(tmp_path, {"cats": [1.0, 0.0], "taxes": [0.0, 1.0]})
    memory.add_memory("cats", confidence=0.5)
    new = memory.add_memory("taxes", confidence=0.5)

    result = engine.check(new["id"], "taxes", 0.5)

    assert result.new_confidence == 0.5
    assert result.reinforced_by == []
    assert result.was_promoted is False
    assert edges.get_edges(new["id"]) == []


def test_reinforcement_chain_promotes_third_memory(tmp_path: Path) -> None:
    s = math.sqrt(1 - 0.85**2)
    y = (0.85 - 0.85**2) / s
    vectors = {
        "I value honesty": [0.85, s, 0.0],
        "Honesty is important to me": [1.0, 0.0, 0.0],
        "Being honest matters most": [0.85, y, math.sqrt(1 - 0.85**2 - y**2)],
    }
    memory, edges, engine = build(tmp_path, vectors)

    m2 = memory.add_memory("Honesty is important to me", confidence=0.5)
    m1 = memory.add_memory("I value honesty", confidence=0.6)
    first = engine.check(m1["id"], "I value honesty", 0.6)

    assert first.reinforced_by == [m2["id"]]
    assert first.new_confidence == pytest.approx(0.69375)
    assert first.new_tier == "hypothesis"
    assert first.was_promoted is False

    m3 = memory.add_memory("Being honest matters most", confidence=0.6)
    third = engine.check(m3["id"], "Being honest matters most", 0.6)

    assert set(third.reinforced_by) == {m1["id"], m2["id"]}
    assert third.new_confidence >= 0.75
    assert third.previous_tier == "hypothesis"
    assert third.new_tier == "solid"
    assert third.was_promoted is True
    assert memory.get_memory(m3["id"])["tier"] == "solid"

    stats = edges.edge_stats()
    assert stats["by_type"]["SIMILAR"] == 3
    edge = edges.get_edges(m1["id"])[0]
    assert edge["metadata"]["reinforcement"] is True

    with memory.sql_store.session() as sess:
        events = sess.scalars(
            select(MemoryEventRecord).where(MemoryEventRecord.event_type == "memory_promoted")
        ).all()
        assert [event.details["memory_id"] for event in events] == [m3["id"]]


def test_boost_is_capped_per_call(tmp_path: Path) -> None:
    vectors = {f"copy {i}": [1.0, 0.0] for i in range(8)}
    vectors["new"] = [1.0, 0.0]
    memory, _, engine = build(tmp_path, vectors)
    for i in range(8):
        memory.add_memory(f"copy {i}", confidence=0.5)
    new = memory.add_memory("new", confidence=0.3)

    result = engine.check(new["id"], "new", 0.3)

    assert len(result.reinforced_by) == 5
    assert result.new_confidence - result.previous_confidence == pytest.approx(0.40)


def test_solid_memories_are_never_demoted(tmp_path: Path) -> None:
    vectors = {"a": unit(1.0, 0.1), "b": unit(1.0, 0.0)}
    memory, _, engine = build(tmp_path, vectors)
    memory.add_memory("a", confidence=0.5)
    solid = memory.add_memory("b", confidence=0.9)

    for _ in range(3):
        result = engine.check(solid["id"], "b", memory.get_memory(solid["id"])["confidence"])
        assert result.new_tier == "solid"
        assert result.was_promoted is False
    assert memory.get_memory(solid["id"])["confidence"] == pytest.approx(1.0)


def test_stale_caller_confidence_never_lowers_stored_value(tmp_path: Path) -> None:
    vectors = {"anchor": [1.0, 0.0], "again": [1.0, 0.0]}
    memory, _, engine = build(tmp_path, vectors)
    memory.add_memory("anchor", confidence=0.5)
    new = memory.add_memory("again", confidence=0.3)

    first = engine.check(new["id"], "again", 0.3)
    second = engine.check(new["id"], "again", 0.3)

    assert first.new_confidence == pytest.approx(0.45)
    assert second.previous_confidence == pytest.approx(0.45)
    assert second.new_confidence == pytest.approx(0.60)
    assert memory.get_memory(new["id"])["confidence"] == pytest.approx(0.60)


def test_embedding_failure_returns_unchanged_state(tmp_path: Path) -> None:
    memory, _, engine = build(tmp_path, {})
    new = memory.add_memory("unembeddable", confidence=0.4)

    result = engine.check(new["id"], "unembeddable", 0.4)

    assert result.new_confidence == 0.4
    assert result.new_tier == "hypothesis"
    assert memory.get_memory(new["id"])["confidence"] == 0.4


def test_missing_memory_is_caller_error(tmp_path: Path) -> None:
    _, _, engine = build(tmp_path, {"x": [1.0]})

    with pytest.raises(MemoryNotFoundError):
        engine.check("missing", "x", 0.5)


def test_config_section_overrides_defaults() -> None:
    config = ReinforcementConfig.from_config({"reinforcement": {"similarity_threshold": 0.9, "max_candidates": 2}})

    assert config.similarity_threshold == 0.9
    assert config.max_candidates == 2
    assert config.base_boost == 0.15
