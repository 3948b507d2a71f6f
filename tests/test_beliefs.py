"""Belief lifecycle tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import func, select

from memory.beliefs import BeliefLifecycle, belief_type_description
from memory.errors import BeliefNotFoundError, ConflictAlreadyResolvedError, ConflictNotFoundError
from memory.memory_manager import MemoryManager
from memory.schemas import BeliefConflictRecord
from memory.stores.sql_store import SQLStore


class FakeExtractor:
    """Scripted extractor: beliefs per memory text, conflicts per new belief text."""

    model_name = "fake-extractor"

    def __init__(
        self,
        beliefs: dict[str, list[dict[str, Any]]] | None = None,
        conflicts: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self.beliefs = beliefs or {}
        self.conflicts = conflicts or {}
        self.conflict_calls: list[tuple[str, list[str]]] = []

    def extract_beliefs(self, content: str) -> list[dict[str, Any]]:
        return [dict(item) for item in self.beliefs.get(content, [])]

    def detect_conflicts(
        self, new_belief_content: str, existing: list[dict[str, Any]], belief_type: str = ""
    ) -> list[dict[str, Any]]:
        self.conflict_calls.append((new_belief_content, [item["content"] for item in existing]))
        wanted = self.conflicts.get(new_belief_content, {})
        return [
            {"existing_id": item["id"], "type": wanted[item["content"]], "description": "opposite stance"}
            for item in existing
            if item["content"] in wanted
        ]


def build(tmp_path: Path, extractor: FakeExtractor | None = None) -> tuple[MemoryManager, BeliefLifecycle]:
    store = SQLStore(db_path=tmp_path / "mind.db")
    store.create_all()
    return MemoryManager(sql_store=store), BeliefLifecycle(store, extractor=extractor)


def test_identical_candidates_reinforce_instead_of_duplicating(tmp_path: Path) -> None:
    candidate = {"content": "User values honesty", "belief_type": "value", "confidence": 0.7}
    extractor = FakeExtractor(
        beliefs={
            "I value honesty": [candidate],
            "Honesty first, always": [dict(candidate, content="  user values HONESTY ")],
        }
    )
    memory, beliefs = build(tmp_path, extractor)
    m1 = memory.add_memory("I value honesty")
    m2 = memory.add_memory("Honesty first, always")

    first = beliefs.process_memory(m1["id"], m1["content"])
    second = beliefs.process_memory(m2["id"], m2["content"])

    assert len(first.created) == 1
    assert second.created == []
    assert len(second.reinforced) == 1
    belief = beliefs.get_belief(first.created[0]["id"])
    assert belief["confidence"] == pytest.approx(0.75)
    assert belief["reinforcement_count"] == 2
    assert belief["source_memory_count"] == 2
    assert len(beliefs.get_all_beliefs()) == 1
    assert {row["memory_id"] for row in beliefs.get_belief_evidence(belief["id"])} == {m1["id"], m2["id"]}


def test_non_ascii_content_is_matched_case_insensitively(tmp_path: Path) -> None:
    extractor = FakeExtractor(
        beliefs={
            "Éclairs again": [{"content": "User loves ÉCLAIRS", "belief_type": "preference", "confidence": 0.7}],
            "More éclairs": [{"content": "user loves éclairs", "belief_type": "preference", "confidence": 0.6}],
            "Still éclairs": [{"content": "User loves ÉCLAIRS", "belief_type": "preference", "confidence": 0.7}],
        }
    )
    memory, beliefs = build(tmp_path, extractor)
    m1 = memory.add_memory("Éclairs again")
    m2 = memory.add_memory("More éclairs")
    m3 = memory.add_memory("Still éclairs")

    first = beliefs.process_memory(m1["id"], m1["content"])
    second = beliefs.process_memory(m2["id"], m2["content"])
    third = beliefs.process_memory(m3["id"], m3["content"])

    assert len(first.created) == 1
    assert second.created == [] and third.created == []
    assert [row["id"] for row in second.reinforced] == [first.created[0]["id"]]
    assert beliefs.get_belief(first.created[0]["id"])["reinforcement_count"] == 3
    assert len(beliefs.get_all_beliefs()) == 1


def test_invalid_candidates_are_dropped(tmp_path: Path) -> None:
    extractor = FakeExtractor(
        beliefs={
            "noisy": [
                {"content": "User likes tea", "belief_type": "preference", "confidence": 0.2},
                {"content": "User likes jazz", "belief_type": "hobby", "confidence": 0.9},
                {"content": "   ", "belief_type": "preference", "confidence": 0.9},
                {"content": "User likes rain", "belief_type": "preference", "confidence": "high"},
                {"content": "User likes walks", "belief_type": "preference", "confidence": 1.4},
            ]
        }
    )
    memory, beliefs = build(tmp_path, extractor)
    m = memory.add_memory("noisy")

    result = beliefs.process_memory(m["id"], "noisy")

    assert [item["content"] for item in result.created] == ["User likes walks"]
    assert result.created[0]["confidence"] == 1.0


def test_mornings_then_evenings_conflict_and_resolution(tmp_path: Path) -> None:
    extractor = FakeExtractor(
        beliefs={
            "I'm a morning person": [
                {"content": "User prefers mornings", "belief_type": "preference", "confidence": 0.7}
            ],
            "I do my best work in the evening": [
                {"content": "User prefers evenings", "belief_type": "preference", "confidence": 0.7}
            ],
        },
        conflicts={"User prefers evenings": {"User prefers mornings": "direct_contradiction"}},
    )
    memory, beliefs = build(tmp_path, extractor)
    m1 = memory.add_memory("I'm a morning person")
    m2 = memory.add_memory("I do my best work in the evening")

    mornings = beliefs.process_memory(m1["id"], m1["content"]).created[0]
    outcome = beliefs.process_memory(m2["id"], m2["content"])
    evenings = outcome.created[0]

    assert extractor.conflict_calls[-1] == ("User prefers evenings", ["User prefers mornings"])
    assert len(outcome.conflicts) == 1
    conflict = outcome.conflicts[0]
    assert conflict["conflict_type"] == "direct_contradiction"
    assert conflict["belief_a_id"] == mornings["id"]
    assert conflict["belief_b_id"] == evenings["id"]
    assert beliefs.get_belief(mornings["id"])["status"] == "conflicted"
    assert beliefs.get_belief(evenings["id"])["status"] == "conflicted"

    unresolved = beliefs.get_unresolved_conflicts()
    assert unresolved[0]["belief_a_content"] == "User prefers mornings"
    assert unresolved[0]["belief_b_content"] == "User prefers evenings"

    resolved = beliefs.resolve_conflict(conflict["id"], "belief_b_active", notes="asked the user")

    assert resolved["resolution_status"] == "belief_b_active"
    assert resolved["resolved_at"] is not None
    old = beliefs.get_belief(mornings["id"])
    new = beliefs.get_belief(evenings["id"])
    assert old["status"] == "superseded"
    assert old["superseded_by"] == evenings["id"]
    assert new["status"] == "active"
    assert beliefs.get_unresolved_conflicts() == []

    with pytest.raises(ConflictAlreadyResolvedError):
        beliefs.resolve_conflict(conflict["id"], "belief_a_active")


def test_conflict_pair_is_unordered(tmp_path: Path) -> None:
    _, beliefs = build(tmp_path)
    a = beliefs.create_belief("User is an introvert", "self_knowledge", 0.6)
    b = beliefs.create_belief("User is an extrovert", "self_knowledge", 0.6)

    first = beliefs.record_conflict(a["id"], b["id"], "direct_contradiction")
    second = beliefs.record_conflict(b["id"], a["id"], "tension")

    assert first is not None
    assert second is None
    with beliefs.sql_store.session() as sess:
        assert sess.scalar(select(func.count()).select_from(BeliefConflictRecord)) == 1
    assert beliefs.get_belief(a["id"])["status"] == "conflicted"
    assert beliefs.get_belief(b["id"])["status"] == "conflicted"


def test_conflicts_outside_compared_set_are_ignored(tmp_path: Path) -> None:
    class RogueExtractor(FakeExtractor):
        def detect_conflicts(self, new_belief_content, existing, belief_type=""):
            return [
                {"existing_belief_id": "not-a-compared-id", "conflict_type": "tension"},
                {"existing_belief_id": existing[0]["id"], "conflict_type": "contradiction"},
            ]

    _, beliefs = build(tmp_path, RogueExtractor())
    beliefs.create_belief("Tomorrow will be sunny", "prediction")
    new = beliefs.create_belief("Tomorrow will rain", "prediction")

    assert beliefs.detect_conflicts(new["id"]) == []
    assert beliefs.get_belief(new["id"])["status"] == "active"


def test_both_valid_and_merged_resolutions(tmp_path: Path) -> None:
    _, beliefs = build(tmp_path)
    a = beliefs.create_belief("Work should come first", "should")
    b = beliefs.create_belief("Family should come first", "should")
    c = beliefs.create_belief("Rest should come first", "should")

    both = beliefs.record_conflict(a["id"], b["id"], "tension")
    beliefs.resolve_conflict(both["id"], "both_valid")
    assert beliefs.get_belief(a["id"])["status"] == "active"
    assert beliefs.get_belief(b["id"])["status"] == "active"

    merged = beliefs.record_conflict(b["id"], c["id"], "tension")
    beliefs.resolve_conflict(merged["id"], "merged")
    assert beliefs.get_belief(b["id"])["status"] == "conflicted"
    assert beliefs.get_belief(c["id"])["status"] == "conflicted"


def test_resolution_errors(tmp_path: Path) -> None:
    _, beliefs = build(tmp_path)
    a = beliefs.create_belief("Cats are better", "about_world")
    b = beliefs.create_belief("Dogs are better", "about_world")
    conflict = beliefs.record_conflict(a["id"], b["id"], "direct_contradiction")

    with pytest.raises(ValueError):
        beliefs.resolve_conflict(conflict["id"], "flip_a_coin")
    with pytest.raises(ConflictNotFoundError):
        beliefs.resolve_conflict("missing", "both_valid")
    with pytest.raises(BeliefNotFoundError):
        beliefs.get_belief("missing")
    with pytest.raises(ValueError):
        beliefs.record_conflict(a["id"], a["id"], "tension")


def test_reinforce_supersede_and_queries(tmp_path: Path) -> None:
    memory, beliefs = build(tmp_path)
    project = memory.add_entity("Atlas", entity_type="project")
    old = beliefs.create_belief("Atlas ships in May", "about_project", 0.5, related_entity_id=project["id"])
    new = beliefs.create_belief("Atlas ships in June", "about_project", 0.6, related_entity_id=project["id"])

    reinforced = beliefs.reinforce_belief(old["id"])
    assert reinforced["confidence"] == pytest.approx(0.6)
    assert reinforced["reinforcement_count"] == 2

    assert beliefs.find_matching_belief(" atlas ships in may", "about_project")["id"] == old["id"]
    assert beliefs.find_matching_belief("Atlas ships in May", "prediction") is None

    beliefs.supersede_belief(old["id"], new["id"])
    assert [row["id"] for row in beliefs.get_beliefs_by_entity(project["id"])] == [new["id"]]
    assert [row["id"] for row in beliefs.get_beliefs_by_type("about_project")] == [new["id"]]
    assert len(beliefs.get_all_beliefs(status=None)) == 2

    stats = beliefs.belief_stats()
    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["superseded"] == 1
    assert stats["by_type"] == {"about_project": 1}
    assert stats["unresolved_conflicts"] == 0


def test_entity_name_resolves_to_related_entity(tmp_path: Path) -> None:
    extractor = FakeExtractor(
        beliefs={
            "Alice always delivers": [
                {
                    "content": "Alice is reliable",
                    "belief_type": "about_person",
                    "confidence": 0.8,
                    "entity_name": "alice",
                },
                {
                    "content": "Bob is reliable",
                    "belief_type": "about_person",
                    "confidence": 0.8,
                    "entity_name": "Bob",
                },
            ]
        }
    )
    memory, beliefs = build(tmp_path, extractor)
    alice = memory.add_entity("Alice", entity_type="person")
    m = memory.add_memory("Alice always delivers")

    created = beliefs.process_memory(m["id"], m["content"]).created

    by_content = {item["content"]: item for item in created}
    assert by_content["Alice is reliable"]["related_entity_id"] == alice["id"]
    assert by_content["Bob is reliable"]["related_entity_id"] is None
    assert by_content["Alice is reliable"]["extracted_by_model"] == "fake-extractor"


def test_type_descriptions() -> None:
    assert belief_type_description("should") == "Normative beliefs (what should be)"
    with pytest.raises(ValueError):
        belief_type_description("opinion")
