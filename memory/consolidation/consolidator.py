"""Memory consolidation orchestrator."""

from __future__ import annotations

import logging
from typing import Any

from memory.summaries import LivingSummaries

logger = logging.getLogger("mind.summaries")


class Consolidator:
    """Runs a consolidation cycle over every category with pending links.

    Scheduling is the caller's job; each category is consolidated at most once
    per run.
    """

    def __init__(self, summaries: LivingSummaries) -> None:
        self.summaries = summaries

    def run(self, categories: list[str] | None = None) -> dict[str, Any]:
        """Consolidate pending categories (all of them by default)."""
        pending = self.summaries.pending_categories()
        if categories is not None:
            pending = [category for category in pending if category in categories]

        results: dict[str, Any] = {"updated": [], "skipped": [], "memories_processed": 0}
        for category in pending:
            outcome = self.summaries.consolidate(category)
            if outcome.memories_processed:
                results["updated"].append(category)
                results["memories_processed"] += outcome.memories_processed
            else:
                # Generation failed; staleness stays up for the next run.
                results["skipped"].append(category)
        if results["skipped"]:
            logger.warning("Consolidation skipped for: %s", ", ".join(results["skipped"]))
        return results
