"""Validated candidates coming back from the extraction boundary."""

from __future__ import annotations

import math
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

from memory.schemas import BELIEF_TYPES, SUMMARY_CATEGORIES

MIN_BELIEF_CONFIDENCE = 0.3
MIN_CATEGORY_RELEVANCE = 0.3


def _clamp(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"{value} is not a finite number")
    return max(0.0, min(1.0, value))


class ExtractedBelief(BaseModel):
    """Belief candidate; anything failing these checks never reaches storage."""

    content: str
    belief_type: str
    confidence: float = 0.5
    entity_name: str | None = None
    reason: str = ""

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("belief content is empty")
        return value

    @field_validator("belief_type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        if value not in BELIEF_TYPES:
            raise ValueError(f"unknown belief_type: {value}")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_range(cls, value: object) -> float:
        try:
            confidence = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError("confidence is not a number") from exc
        if not math.isfinite(confidence):
            raise ValueError("confidence is not a finite number")
        if confidence < MIN_BELIEF_CONFIDENCE:
            raise ValueError(f"confidence {confidence} below {MIN_BELIEF_CONFIDENCE}")
        return _clamp(confidence)

    @field_validator("entity_name", mode="before")
    @classmethod
    def _blank_entity_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ConflictCandidate(BaseModel):
    """Conflict reported between a new belief and one existing belief."""

    existing_belief_id: str = Field(
        validation_alias=AliasChoices("existing_belief_id", "existing_id")
    )
    conflict_type: Literal["direct_contradiction", "tension", "evolution"] = Field(
        validation_alias=AliasChoices("conflict_type", "type")
    )
    description: str = ""


class CategoryClassification(BaseModel):
    """One summary category a memory touches."""

    category: str
    relevance: float
    reason: str = ""

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in SUMMARY_CATEGORIES:
            raise ValueError(f"unknown category: {value}")
        return value

    @field_validator("relevance", mode="before")
    @classmethod
    def _relevance_range(cls, value: object) -> float:
        try:
            return _clamp(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError("relevance is not a number") from exc
