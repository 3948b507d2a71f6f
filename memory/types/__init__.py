"""Typed memory payload models."""

from memory.types.extraction import CategoryClassification, ConflictCandidate, ExtractedBelief
from memory.types.graph import (
    EntityPath,
    GraphEdge,
    GraphNode,
    MemoryPath,
    Neighborhood,
    NeighborhoodEdge,
    NeighborhoodNode,
    Subgraph,
)
from memory.types.results import (
    BeliefExtractionResult,
    ConsolidationResult,
    IngestionResult,
    ReinforcementResult,
)

__all__ = [
    "BeliefExtractionResult",
    "CategoryClassification",
    "ConflictCandidate",
    "ConsolidationResult",
    "EntityPath",
    "ExtractedBelief",
    "GraphEdge",
    "GraphNode",
    "IngestionResult",
    "MemoryPath",
    "Neighborhood",
    "NeighborhoodEdge",
    "NeighborhoodNode",
    "ReinforcementResult",
    "Subgraph",
]
