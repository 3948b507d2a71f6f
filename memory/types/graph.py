"""Node, edge and path shapes produced by graph traversal."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class NeighborhoodNode(BaseModel):
    """Memory or summary reached while expanding a neighborhood."""

    id: str
    kind: Literal["memory", "summary"]
    content: str
    created_at: datetime | None = None
    score: float
    source: str | None = None


class NeighborhoodEdge(BaseModel):
    source_id: str
    target_id: str
    edge_type: Literal["SIMILAR", "ENTITY", "SUMMARY"]
    weight: float
    via: str | None = None


class Neighborhood(BaseModel):
    seed: NeighborhoodNode
    nodes: list[NeighborhoodNode] = Field(default_factory=list)
    edges: list[NeighborhoodEdge] = Field(default_factory=list)


class GraphNode(BaseModel):
    """Renderable node of an entity/memory subgraph."""

    id: str
    type: Literal["memory", "entity"]
    label: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    source: str
    target: str
    type: str
    weight: float
    attributes: dict[str, Any] = Field(default_factory=dict)


class Subgraph(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class EntityPath(BaseModel):
    """Shortest entity chain; ``connecting_memories[i]`` links hop i to i+1."""

    found: bool
    path: list[dict[str, Any]] = Field(default_factory=list)
    connecting_memories: list[dict[str, Any]] = Field(default_factory=list)


class MemoryPath(BaseModel):
    found: bool
    path: list[dict[str, Any]] = Field(default_factory=list)
    edges: list[dict[str, Any]] = Field(default_factory=list)
