"""End-to-end ingestion tests over the offline stack."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.orchestrator import Orchestrator, RuntimeBundle
from llm.embeddings import BaseEmbedder, EmbeddingError
from memory.pipeline import IngestionPipeline
from memory.reinforcement import ReinforcementEngine


class FailingEmbedder(BaseEmbedder):
    def embed(self, text: str) -> list[float]:
        raise EmbeddingError("offline")


def build_runtime(tmp_path: Path) -> RuntimeBundle:
    config = {
        "paths": {"db_path": "data/mind.db"},
        "summaries": {"user_names": ["Sam"]},
    }
    return Orchestrator(root=tmp_path, config=config).build()


def test_observe_runs_every_stage(tmp_path: Path) -> None:
    bundle = build_runtime(tmp_path)

    result = bundle.pipeline.observe("I value honesty", source="chat", confidence=0.6)

    assert result.memory["source"] == "chat"
    assert result.memory["tier"] == "hypothesis"
    assert result.reinforcement.reinforced_by == []
    assert [item["content"] for item in result.beliefs.created] == ["User values honesty"]
    assert "personality" in result.categories
    assert bundle.summaries.has_pending("personality")
    assert (tmp_path / "data" / "mind.db").exists()


def test_repeated_observation_reinforces_memory_and_belief(tmp_path: Path) -> None:
    bundle = build_runtime(tmp_path)
    first = bundle.pipeline.observe("I value honesty", confidence=0.65)

    second = bundle.pipeline.observe("I value honesty", confidence=0.65)

    assert second.reinforcement.reinforced_by == [first.memory["id"]]
    assert second.memory["confidence"] == pytest.approx(0.8)
    assert second.memory["tier"] == "solid"
    assert second.beliefs.created == []
    assert second.beliefs.reinforced[0]["id"] == first.beliefs.created[0]["id"]
    assert bundle.beliefs.get_belief(first.beliefs.created[0]["id"])["source_memory_count"] == 2


def test_observe_survives_embedding_outage(tmp_path: Path) -> None:
    bundle = build_runtime(tmp_path)
    reinforcement = ReinforcementEngine(bundle.store, bundle.edges, FailingEmbedder())
    bundle.memory.embedder = FailingEmbedder()
    pipeline = IngestionPipeline(bundle.memory, reinforcement, bundle.beliefs, bundle.summaries)

    result = pipeline.observe("Sam's wife has her birthday on March 3rd", confidence=0.5)

    assert result.reinforcement.new_confidence == 0.5
    assert "significant_dates" in result.categories
    assert "personality" in result.categories


def test_observe_rejects_empty_content(tmp_path: Path) -> None:
    bundle = build_runtime(tmp_path)

    with pytest.raises(ValueError):
        bundle.pipeline.observe("   ")
    assert bundle.memory.counts()["total"] == 0
