"""Typer command handlers."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from pydantic import BaseModel

from core.orchestrator import Orchestrator, RuntimeBundle
from core.policy_runtime import configure_logging
from memory.errors import MemoryCoreError
from memory.graph.memory_graph import flatten_neighborhoods


def _runtime(root: Path | None = None) -> RuntimeBundle:
    bundle = Orchestrator(root=root).build()
    configure_logging(bundle.config)
    return bundle


def _echo(payload: object) -> None:
    typer.echo(json.dumps(_json_safe(payload), indent=2))


def _fail(exc: MemoryCoreError | ValueError) -> None:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1)


def memory_add(text: str, source: str, confidence: float) -> None:
    """Run one observation through the ingestion pipeline."""
    bundle = _runtime()
    try:
        result = bundle.pipeline.observe(text, source=source, confidence=confidence)
    except ValueError as exc:
        _fail(exc)
    _echo(result)


def memory_show(memory_id: str) -> None:
    bundle = _runtime()
    try:
        memory = bundle.memory.get_memory(memory_id)
    except MemoryCoreError as exc:
        _fail(exc)
    memory["edges"] = bundle.edges.get_edges(memory_id)
    _echo(memory)


def memory_related(memory_id: str, edge_type: str, min_weight: float, limit: int) -> None:
    bundle = _runtime()
    try:
        related = bundle.edges.related_memories(memory_id, edge_type=edge_type, min_weight=min_weight, limit=limit)
    except ValueError as exc:
        _fail(exc)
    _echo(related)


def memory_list(limit: int, tier: str | None) -> None:
    bundle = _runtime()
    _echo(bundle.memory.list_memories(limit=limit, tier=tier))


def beliefs_list(belief_type: str | None, status: str, min_confidence: float, limit: int) -> None:
    bundle = _runtime()
    _echo(
        bundle.beliefs.get_all_beliefs(
            belief_type=belief_type, status=status, min_confidence=min_confidence, limit=limit
        )
    )


def beliefs_evidence(belief_id: str) -> None:
    bundle = _runtime()
    try:
        evidence = bundle.beliefs.get_belief_evidence(belief_id)
    except MemoryCoreError as exc:
        _fail(exc)
    _echo(evidence)


def beliefs_conflicts() -> None:
    bundle = _runtime()
    _echo(bundle.beliefs.get_unresolved_conflicts())


def beliefs_resolve(conflict_id: str, resolution: str, notes: str | None) -> None:
    bundle = _runtime()
    try:
        conflict = bundle.beliefs.resolve_conflict(conflict_id, resolution, notes)
    except (MemoryCoreError, ValueError) as exc:
        _fail(exc)
    _echo(conflict)


def beliefs_stats() -> None:
    bundle = _runtime()
    _echo(bundle.beliefs.belief_stats())


def summaries_list(non_empty: bool) -> None:
    bundle = _runtime()
    if non_empty:
        _echo(bundle.summaries.get_non_empty_summaries())
        return
    _echo(bundle.summaries.get_all_summaries())


def summaries_pending(category: str, limit: int) -> None:
    bundle = _runtime()
    try:
        pending = bundle.summaries.get_unincorporated_memories(category, limit=limit)
    except MemoryCoreError as exc:
        _fail(exc)
    _echo(pending)


def summaries_consolidate(category: str | None) -> None:
    """Consolidate one category, or every category with pending links."""
    bundle = _runtime()
    if category is None:
        _echo(bundle.consolidator.run())
        return
    try:
        result = bundle.summaries.consolidate(category)
    except MemoryCoreError as exc:
        _fail(exc)
    _echo(result)


def summaries_stats() -> None:
    bundle = _runtime()
    _echo(bundle.summaries.summary_stats())


def graph_neighborhood(seed_ids: list[str], max_depth: int, max_nodes: int, min_weight: float, flat: bool) -> None:
    bundle = _runtime()
    neighborhoods = bundle.memory_graph.neighborhood_from_memories(
        seed_ids, max_depth=max_depth, max_nodes=max_nodes, min_weight=min_weight
    )
    if flat:
        _echo(flatten_neighborhoods(neighborhoods))
        return
    _echo(neighborhoods)


def graph_path(start_memory_id: str, end_memory_id: str, max_hops: int) -> None:
    bundle = _runtime()
    _echo(bundle.traversal.find_path_between_memories(start_memory_id, end_memory_id, max_hops=max_hops))


def graph_entity_path(start_entity_id: str, end_entity_id: str, max_hops: int) -> None:
    bundle = _runtime()
    _echo(bundle.traversal.find_path_between_entities(start_entity_id, end_entity_id, max_hops=max_hops))


def graph_stats() -> None:
    bundle = _runtime()
    _echo(
        {
            "edges": bundle.edges.edge_stats(),
            "memory_graph": bundle.memory_graph.memory_graph_stats(),
            "entity_graph": bundle.traversal.graph_stats(),
        }
    )


def config_show() -> None:
    """Show effective runtime config."""
    bundle = _runtime()
    _echo(bundle.config)


def _json_safe(payload: object) -> object:
    """Convert models and datetimes to JSON-friendly values."""
    if isinstance(payload, BaseModel):
        return _json_safe(payload.model_dump())
    if isinstance(payload, dict):
        return {k: _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_safe(v) for v in payload]
    if hasattr(payload, "isoformat"):
        return payload.isoformat()
    return payload
