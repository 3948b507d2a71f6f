"""Result records returned by the memory core operations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ReinforcementResult(BaseModel):
    """Outcome of one reinforcement pass over a new memory."""

    memory_id: str
    previous_confidence: float
    new_confidence: float
    previous_tier: str
    new_tier: str
    was_promoted: bool = False
    reinforced_by: list[str] = Field(default_factory=list)

    @classmethod
    def unchanged(cls, memory_id: str, confidence: float, tier: str) -> ReinforcementResult:
        return cls(
            memory_id=memory_id,
            previous_confidence=confidence,
            new_confidence=confidence,
            previous_tier=tier,
            new_tier=tier,
        )


class BeliefExtractionResult(BaseModel):
    """Aggregate of one memory's pass through the belief lifecycle."""

    created: list[dict[str, Any]] = Field(default_factory=list)
    reinforced: list[dict[str, Any]] = Field(default_factory=list)
    conflicts: list[dict[str, Any]] = Field(default_factory=list)


class ConsolidationResult(BaseModel):
    """Outcome of folding pending links into one category summary."""

    category: str
    summary: dict[str, Any]
    memories_processed: int = 0


class IngestionResult(BaseModel):
    """Everything the ingestion pipeline did for one observation."""

    memory: dict[str, Any]
    reinforcement: ReinforcementResult
    beliefs: BeliefExtractionResult
    categories: list[str] = Field(default_factory=list)
