"""Exceptions raised by the memory core."""

from __future__ import annotations


class MemoryCoreError(Exception):
    """Base exception for all memory core errors."""


class NotFoundError(MemoryCoreError, LookupError):
    """Raised when a referenced record does not exist."""

    kind = "record"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class MemoryNotFoundError(NotFoundError):
    kind = "memory"


class BeliefNotFoundError(NotFoundError):
    kind = "belief"


class ConflictNotFoundError(NotFoundError):
    kind = "conflict"


class EntityNotFoundError(NotFoundError):
    kind = "entity"


class UnknownCategoryError(MemoryCoreError, ValueError):
    """Raised for a summary category outside the fixed set."""

    def __init__(self, category: str) -> None:
        self.category = category
        super().__init__(f"Summary category not found: {category}")


class InvariantViolationError(MemoryCoreError, ValueError):
    """Raised when an operation would break a state-machine invariant."""


class ConflictAlreadyResolvedError(InvariantViolationError):
    """Raised when resolving a conflict that already has a terminal resolution."""

    def __init__(self, conflict_id: str, resolution_status: str) -> None:
        self.conflict_id = conflict_id
        self.resolution_status = resolution_status
        super().__init__(
            f"Conflict {conflict_id} is already resolved ({resolution_status})"
        )
