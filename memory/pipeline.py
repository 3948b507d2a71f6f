"""Ingestion pipeline: store, reinforce, extract beliefs, classify."""

from __future__ import annotations

import logging

from memory.beliefs import BeliefLifecycle
from memory.memory_manager import MemoryManager
from memory.reinforcement import ReinforcementEngine
from memory.summaries import LivingSummaries
from memory.types.results import IngestionResult

logger = logging.getLogger("mind.pipeline")


class IngestionPipeline:
    """Runs one observation through every stage of the memory core in order.

    External collaborator failures degrade inside each stage, so a stored
    memory is never lost to an LLM or embedding outage. Storage errors
    propagate to the caller.
    """

    def __init__(
        self,
        memory: MemoryManager,
        reinforcement: ReinforcementEngine,
        beliefs: BeliefLifecycle,
        summaries: LivingSummaries,
    ) -> None:
        self.memory = memory
        self.reinforcement = reinforcement
        self.beliefs = beliefs
        self.summaries = summaries

    def observe(self, content: str, source: str = "observation", confidence: float = 0.5) -> IngestionResult:
        embedding = self.memory.embed(content)
        stored = self.memory.add_memory(
            content=content, source=source, confidence=confidence, embedding=embedding
        )
        memory_id = stored["id"]

        reinforcement = self.reinforcement.check(
            memory_id, content, stored["confidence"], embedding=embedding
        )
        beliefs = self.beliefs.process_memory(memory_id, content)
        categories = self.summaries.classify_and_link(memory_id, content)

        logger.info(
            "Observed memory %s: tier=%s beliefs=%d/%d categories=%s",
            memory_id,
            reinforcement.new_tier,
            len(beliefs.created),
            len(beliefs.reinforced),
            ",".join(categories) or "-",
        )
        return IngestionResult(
            memory=self.memory.get_memory(memory_id),
            reinforcement=reinforcement,
            beliefs=beliefs,
            categories=categories,
        )
