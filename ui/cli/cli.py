"""CLI entrypoint for the mind memory core."""

from __future__ import annotations

from typing import Optional

import typer

from ui.cli import commands

app = typer.Typer(help="Living memory core: memories, beliefs, summaries and graph")
memory_app = typer.Typer(help="Memory commands")
beliefs_app = typer.Typer(help="Belief commands")
summaries_app = typer.Typer(help="Living summary commands")
graph_app = typer.Typer(help="Graph commands")
config_app = typer.Typer(help="Configuration commands")


@memory_app.command("add")
def memory_add_cmd(
    text: str = typer.Argument(..., help="Memory text content"),
    source: str = typer.Option("cli", help="Source of memory"),
    confidence: float = typer.Option(0.5, min=0.0, max=1.0, help="Initial confidence"),
) -> None:
    """Store a memory and run reinforcement, belief extraction and classification."""
    commands.memory_add(text=text, source=source, confidence=confidence)


@memory_app.command("show")
def memory_show_cmd(memory_id: str) -> None:
    """Show one memory with its edges."""
    commands.memory_show(memory_id=memory_id)


@memory_app.command("related")
def memory_related_cmd(
    memory_id: str,
    edge_type: str = typer.Option("SIMILAR", "--type"),
    min_weight: float = typer.Option(0.2),
    limit: int = typer.Option(10, min=1, max=100),
) -> None:
    """List memories related through one edge type."""
    commands.memory_related(memory_id=memory_id, edge_type=edge_type, min_weight=min_weight, limit=limit)


@memory_app.command("list")
def memory_list_cmd(
    limit: int = typer.Option(20, min=1, max=500),
    tier: Optional[str] = typer.Option(None, help="hypothesis or solid"),
) -> None:
    """List recent memories."""
    commands.memory_list(limit=limit, tier=tier)


@beliefs_app.command("list")
def beliefs_list_cmd(
    belief_type: Optional[str] = typer.Option(None, "--type"),
    status: str = typer.Option("active"),
    min_confidence: float = typer.Option(0.0),
    limit: int = typer.Option(100, min=1),
) -> None:
    """List beliefs by confidence."""
    commands.beliefs_list(belief_type=belief_type, status=status, min_confidence=min_confidence, limit=limit)


@beliefs_app.command("evidence")
def beliefs_evidence_cmd(belief_id: str) -> None:
    """Show the memories supporting a belief."""
    commands.beliefs_evidence(belief_id=belief_id)


@beliefs_app.command("conflicts")
def beliefs_conflicts_cmd() -> None:
    """List unresolved conflicts."""
    commands.beliefs_conflicts()


@beliefs_app.command("resolve")
def beliefs_resolve_cmd(
    conflict_id: str,
    resolution: str = typer.Argument(..., help="belief_a_active, belief_b_active, both_valid, merged or user_resolved"),
    notes: Optional[str] = typer.Option(None),
) -> None:
    """Resolve a conflict."""
    commands.beliefs_resolve(conflict_id=conflict_id, resolution=resolution, notes=notes)


@beliefs_app.command("stats")
def beliefs_stats_cmd() -> None:
    commands.beliefs_stats()


@summaries_app.command("list")
def summaries_list_cmd(non_empty: bool = typer.Option(False, "--non-empty")) -> None:
    """List living summaries."""
    commands.summaries_list(non_empty=non_empty)


@summaries_app.command("pending")
def summaries_pending_cmd(category: str, limit: int = typer.Option(20, min=1)) -> None:
    """Show memories not yet folded into a summary."""
    commands.summaries_pending(category=category, limit=limit)


@summaries_app.command("consolidate")
def summaries_consolidate_cmd(
    category: Optional[str] = typer.Argument(None, help="Category; all pending when omitted"),
) -> None:
    """Regenerate summaries from pending memories."""
    commands.summaries_consolidate(category=category)


@summaries_app.command("stats")
def summaries_stats_cmd() -> None:
    commands.summaries_stats()


@graph_app.command("neighborhood")
def graph_neighborhood_cmd(
    seed_ids: list[str] = typer.Argument(..., help="Seed memory ids"),
    max_depth: int = typer.Option(2, min=0),
    max_nodes: int = typer.Option(50, min=1),
    min_weight: float = typer.Option(0.3),
    flat: bool = typer.Option(False, "--flat", help="Merge neighborhoods into one ranked list"),
) -> None:
    """Expand neighborhoods around seed memories."""
    commands.graph_neighborhood(
        seed_ids=seed_ids, max_depth=max_depth, max_nodes=max_nodes, min_weight=min_weight, flat=flat
    )


@graph_app.command("path")
def graph_path_cmd(start_memory_id: str, end_memory_id: str, max_hops: int = typer.Option(5, min=0)) -> None:
    """Shortest SIMILAR path between two memories."""
    commands.graph_path(start_memory_id=start_memory_id, end_memory_id=end_memory_id, max_hops=max_hops)


@graph_app.command("entity-path")
def graph_entity_path_cmd(start_entity_id: str, end_entity_id: str, max_hops: int = typer.Option(4, min=0)) -> None:
    """Shortest co-occurrence path between two entities."""
    commands.graph_entity_path(start_entity_id=start_entity_id, end_entity_id=end_entity_id, max_hops=max_hops)


@graph_app.command("stats")
def graph_stats_cmd() -> None:
    commands.graph_stats()


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


app.add_typer(memory_app, name="memory")
app.add_typer(beliefs_app, name="beliefs")
app.add_typer(summaries_app, name="summaries")
app.add_typer(graph_app, name="graph")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
