"""Configuration loading and runtime wiring tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from core.orchestrator import Orchestrator
from core.policy_runtime import configure_logging, load_effective_config, load_yaml, merge_dicts
from llm.embeddings import HashingEmbedder
from llm.providers.mock_provider import MockProvider
from memory.schemas import SUMMARY_CATEGORIES

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_load_yaml_handles_missing_and_invalid_files(tmp_path: Path) -> None:
    assert load_yaml(tmp_path / "absent.yaml") == {}

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml(bad)


def test_merge_dicts_is_recursive() -> None:
    base = {"reinforcement": {"base_boost": 0.15, "max_candidates": 5}, "logging": {"level": "INFO"}}
    override = {"reinforcement": {"max_candidates": 3}, "graph": {"entity_types": ["person"]}}

    merged = merge_dicts(base, override)

    assert merged["reinforcement"] == {"base_boost": 0.15, "max_candidates": 3}
    assert merged["logging"] == {"level": "INFO"}
    assert merged["graph"] == {"entity_types": ["person"]}
    assert base["reinforcement"]["max_candidates"] == 5


def test_effective_config_merges_models_and_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default.yaml").write_text("reinforcement:\n  base_boost: 0.2\n", encoding="utf-8")
    (config_dir / "models.yaml").write_text("llm:\n  active_provider: mock\n", encoding="utf-8")
    monkeypatch.setenv("MIND_DATABASE_URL", "sqlite+pysqlite:///:memory:")

    config = load_effective_config(tmp_path)

    assert config["reinforcement"]["base_boost"] == 0.2
    assert config["models"]["llm"]["active_provider"] == "mock"
    assert config["database"]["url"] == "sqlite+pysqlite:///:memory:"


def test_repository_config_builds_offline_runtime(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIND_DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'runtime.db'}")

    bundle = Orchestrator(root=REPO_ROOT).build()

    assert isinstance(bundle.llm, MockProvider)
    assert isinstance(bundle.embedder, HashingEmbedder)
    assert bundle.reinforcement.config.similarity_threshold == 0.80
    assert bundle.memory_graph.entity_types == ("person", "project", "organization")
    assert len(bundle.summaries.get_all_summaries()) == len(SUMMARY_CATEGORIES)
    assert bundle.store.url.endswith("runtime.db")


def test_configure_logging_applies_level() -> None:
    configure_logging({"logging": {"level": "debug"}})
    assert logging.getLogger("mind").level == logging.DEBUG

    configure_logging({})
    assert logging.getLogger("mind").level == logging.WARNING

    with pytest.raises(ValueError):
        configure_logging({"logging": {"level": "chatty"}})
