"""Memory CRUD tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from llm.embeddings import BaseEmbedder, EmbeddingError
from memory.errors import EntityNotFoundError, MemoryNotFoundError
from memory.memory_manager import MemoryManager
from memory.stores.sql_store import SQLStore


class FailingEmbedder(BaseEmbedder):
    def embed(self, text: str) -> list[float]:
        raise EmbeddingError("embedding service down")


def build_memory(tmp_path: Path, embedder: BaseEmbedder | None = None) -> MemoryManager:
    db_path = tmp_path / "mind.db"
    store = SQLStore(db_path=db_path)
    store.create_all()
    return MemoryManager(sql_store=store, embedder=embedder)


def test_memory_db_create_and_crud(tmp_path: Path) -> None:
    memory = build_memory(tmp_path)

    low = memory.add_memory("User asked for preference storage.", source="test", confidence=0.4)
    high = memory.add_memory("User's name is Sam.", source="test", confidence=0.9)

    assert low["tier"] == "hypothesis"
    assert high["tier"] == "solid"
    assert len(low["id"]) == 32
    assert memory.get_memory(low["id"])["content"] == "User asked for preference storage."

    assert {row["id"] for row in memory.list_memories(limit=10)} == {low["id"], high["id"]}
    assert [row["id"] for row in memory.list_memories(tier="solid")] == [high["id"]]
    assert memory.counts() == {"hypothesis": 1, "solid": 1, "total": 2}


def test_confidence_is_clamped_and_empty_content_rejected(tmp_path: Path) -> None:
    memory = build_memory(tmp_path)

    assert memory.add_memory("over-confident", confidence=3.0)["confidence"] == 1.0
    with pytest.raises(ValueError):
        memory.add_memory("   ")
    with pytest.raises(ValueError):
        memory.list_memories(tier="certain")


def test_missing_memory_raises_not_found(tmp_path: Path) -> None:
    memory = build_memory(tmp_path)

    with pytest.raises(MemoryNotFoundError) as excinfo:
        memory.get_memory("missing")
    assert isinstance(excinfo.value, LookupError)


def test_embedding_failure_still_stores_memory(tmp_path: Path) -> None:
    memory = build_memory(tmp_path, embedder=FailingEmbedder())

    stored = memory.add_memory("Remember this even without a vector")

    assert memory.get_memory(stored["id"])["content"] == "Remember this even without a vector"


def test_entity_mentions_are_idempotent_and_counted(tmp_path: Path) -> None:
    memory = build_memory(tmp_path)
    first = memory.add_memory("Lunch with Alice")
    second = memory.add_memory("Alice called about the launch")
    alice = memory.add_entity("Alice", entity_type="person")

    memory.mention_entity(alice["id"], first["id"], "Alice")
    memory.mention_entity(alice["id"], first["id"], "Alice")
    memory.mention_entity(alice["id"], second["id"], "Alice")

    assert memory.get_entity(alice["id"])["mention_count"] == 2
    assert [row["id"] for row in memory.find_entities("alice")] == [alice["id"]]
    with pytest.raises(EntityNotFoundError):
        memory.mention_entity("missing", first["id"])
    with pytest.raises(MemoryNotFoundError):
        memory.mention_entity(alice["id"], "missing")


def test_merged_entities_drop_out_of_lookup(tmp_path: Path) -> None:
    memory = build_memory(tmp_path)
    alice = memory.add_entity("Alice", entity_type="person")
    ally = memory.add_entity("Ally", entity_type="person", canonical_name="alice")

    merged = memory.merge_entity(ally["id"], alice["id"])

    assert merged["is_merged"] is True
    assert merged["merged_into_id"] == alice["id"]
    assert [row["id"] for row in memory.find_entities("alice")] == [alice["id"]]
    with pytest.raises(ValueError):
        memory.merge_entity(alice["id"], alice["id"])
