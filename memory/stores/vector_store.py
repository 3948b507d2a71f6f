"""Dense cosine-similarity index over memory embeddings."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 for zero vectors)."""
    if len(a) != len(b):
        raise ValueError(f"Dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class VectorStore:
    """In-memory vector similarity index.

    Built per query from the embeddings persisted on memory rows, so it holds
    no state between calls.
    """

    def __init__(self) -> None:
        self._items: dict[str, tuple[dict[str, object], list[float]]] = {}

    def add(self, item_id: str, vector: Sequence[float], payload: dict[str, object]) -> None:
        """Add or replace one vector."""
        self._items[item_id] = (payload, list(vector))

    def bulk_add(self, rows: Iterable[tuple[str, Sequence[float], dict[str, object]]]) -> None:
        """Add many rows."""
        for item_id, vector, payload in rows:
            self.add(item_id=item_id, vector=vector, payload=payload)

    def __len__(self) -> int:
        return len(self._items)

    def search(
        self,
        query: Sequence[float],
        limit: int = 5,
        min_score: float = 0.0,
        exclude: set[str] | None = None,
    ) -> list[dict[str, object]]:
        """Return hits with ``score >= min_score``, best first.

        Vectors whose dimension differs from the query are skipped.
        """
        exclude = exclude or set()
        scored: list[tuple[float, str, dict[str, object]]] = []
        for item_id, (payload, vector) in self._items.items():
            if item_id in exclude or len(vector) != len(query):
                continue
            score = cosine_similarity(query, vector)
            if score >= min_score:
                scored.append((score, item_id, payload))
        scored.sort(key=lambda x: x[0], reverse=True)
        return [
            {"id": item_id, "score": score, "payload": payload}
            for score, item_id, payload in scored[:limit]
        ]
