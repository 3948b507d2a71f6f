"""Top-level application orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.policy_runtime import ensure_runtime_dirs, load_effective_config
from llm.base_llm import BaseLLM
from llm.embeddings import BaseEmbedder
from llm.extraction import MemoryExtractor
from llm.llm_factory import build_embedder, build_llm
from memory.beliefs import BeliefLifecycle
from memory.consolidation.consolidator import Consolidator
from memory.edges import EdgeStore
from memory.graph.memory_graph import MemoryGraph
from memory.graph.traversal import GraphTraversal
from memory.memory_manager import MemoryManager
from memory.pipeline import IngestionPipeline
from memory.reinforcement import ReinforcementConfig, ReinforcementEngine
from memory.stores.sql_store import SQLStore
from memory.summaries import LivingSummaries


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    store: SQLStore
    memory: MemoryManager
    edges: EdgeStore
    reinforcement: ReinforcementEngine
    beliefs: BeliefLifecycle
    summaries: LivingSummaries
    traversal: GraphTraversal
    memory_graph: MemoryGraph
    pipeline: IngestionPipeline
    consolidator: Consolidator
    llm: BaseLLM
    embedder: BaseEmbedder
    extractor: MemoryExtractor


class Orchestrator:
    """Creates and wires runtime components for CLI use."""

    def __init__(self, root: Path | None = None, config: dict[str, Any] | None = None) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()
        self.config = config

    def build(self) -> RuntimeBundle:
        config = self.config if self.config is not None else load_effective_config(self.root)
        sql_store = self._store(config)

        llm = build_llm(config=config)
        embedder = build_embedder(config=config)
        timeout = config.get("models", {}).get("llm", {}).get("timeout_seconds", 30)
        extractor = MemoryExtractor(llm=llm, timeout=float(timeout) if timeout is not None else None)

        memory = MemoryManager(sql_store=sql_store, embedder=embedder)
        edges = EdgeStore(sql_store)
        reinforcement = ReinforcementEngine(
            sql_store=sql_store,
            edges=edges,
            embedder=embedder,
            config=ReinforcementConfig.from_config(config),
        )
        beliefs_cfg = config.get("beliefs", {}) or {}
        beliefs = BeliefLifecycle(
            sql_store=sql_store,
            extractor=extractor,
            match_boost=float(beliefs_cfg.get("match_boost", 0.05)),
        )
        summaries_cfg = config.get("summaries", {}) or {}
        summaries = LivingSummaries(
            sql_store=sql_store,
            extractor=extractor,
            user_names=summaries_cfg.get("user_names") or (),
            staleness_increment=float(summaries_cfg.get("staleness_increment", 0.1)),
            max_batch=int(summaries_cfg.get("max_batch", 20)),
        )
        graph_cfg = config.get("graph", {}) or {}
        memory_graph = MemoryGraph(
            sql_store=sql_store,
            edges=edges,
            entity_types=graph_cfg.get("entity_types") or ("person", "project", "organization"),
        )

        return RuntimeBundle(
            config=config,
            store=sql_store,
            memory=memory,
            edges=edges,
            reinforcement=reinforcement,
            beliefs=beliefs,
            summaries=summaries,
            traversal=GraphTraversal(sql_store),
            memory_graph=memory_graph,
            pipeline=IngestionPipeline(memory, reinforcement, beliefs, summaries),
            consolidator=Consolidator(summaries),
            llm=llm,
            embedder=embedder,
            extractor=extractor,
        )

    def _store(self, config: dict[str, Any]) -> SQLStore:
        url = (config.get("database", {}) or {}).get("url")
        if url:
            store = SQLStore(url=url)
        else:
            store = SQLStore(ensure_runtime_dirs(self.root, config)["db_path"])
        store.create_all()
        return store
