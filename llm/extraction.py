"""LLM-backed extraction adapter.

Implements the structured calls the memory core consumes: belief extraction,
batched conflict detection, category classification and summary generation.
Every call is best-effort: provider failures and unparseable replies come
back as ``[]`` (or ``None`` for prose) and are logged, never raised.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from llm.base_llm import BaseLLM, LLMError

logger = logging.getLogger("mind.extraction")

_BELIEF_SYSTEM_PROMPT = """\
You are a belief extractor. Given a memory/observation, identify any beliefs the person holds.
A belief is a persistent conviction or understanding, NOT just a fact or observation.

Belief types:
- value: core values
- preference: preferences
- self_knowledge: self-understanding
- prediction: expectations about the future
- about_person: beliefs about other people
- about_project: beliefs about work or projects
- about_world: general beliefs about the world
- should: normative beliefs

Return ONLY a JSON array. Include confidence (0.0-1.0). If there are no beliefs return [].
Format: [{"content": "...", "belief_type": "...", "confidence": 0.X, "entity_name": "name if about_person/about_project", "reason": "..."}]"""

_CONFLICT_SYSTEM_PROMPT = """\
You are a belief conflict detector. Given a new belief and a list of existing beliefs, identify conflicts.

Conflict types:
- direct_contradiction: the beliefs cannot both be true
- tension: the beliefs pull against each other but could coexist in different contexts
- evolution: the new belief looks like an update of an older belief

Return ONLY a JSON array. If there are no conflicts return [].
Format: [{"existing_belief_id": "...", "conflict_type": "...", "description": "brief explanation"}]"""

_CLASSIFY_SYSTEM_PROMPT = """\
You are a memory classifier. Given a memory/observation, decide which categories it touches.

Categories:
- personality: identity, self-story, traits, values, name, age, job
- goals: aspirations and objectives
- relationships: people, family, friends, colleagues
- projects: active work, tasks, projects
- interests: hobbies, passions, entertainment
- wellbeing: health, mood, emotional and physical state
- commitments: promises and obligations
- significant_dates: birthdays, anniversaries and other dates that matter

Memories about the user's name, age, job or core identity MUST include "personality" with relevance 0.9+.
Return ONLY a JSON array of categories with relevance >= 0.3, or [] if none apply.
Format: [{"category": "...", "relevance": 0.X, "reason": "brief reason"}]"""

_SUMMARY_SYSTEM_PROMPT = """\
You are a personal memory summarizer maintaining a living summary of {description}.

Rules:
1. If there is an existing summary, UPDATE it incrementally; never rewrite from scratch.
2. Preserve existing information unless a new memory clearly supersedes it.
3. Add the new information from the new memories.
4. Keep it concise (100-300 words) and write in second person ("you").
5. When information conflicts, prefer the newer information."""


def parse_json_array(text: str) -> list[Any] | None:
    """Return the first JSON array embedded in ``text``, or None if none parses."""
    decoder = json.JSONDecoder()
    start = text.find("[")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("[", start + 1)
            continue
        if isinstance(parsed, list):
            return parsed
        start = text.find("[", start + 1)
    return None


class MemoryExtractor:
    """Turns LLM replies into plain structured candidates for the memory core."""

    def __init__(self, llm: BaseLLM, timeout: float | None = 30.0) -> None:
        self.llm = llm
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return getattr(self.llm, "model", type(self.llm).__name__)

    def _complete(self, task: str, system_prompt: str, prompt: str, **kwargs: Any) -> str | None:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        try:
            return self.llm.chat(messages, task=task, timeout=self.timeout, **kwargs)
        except LLMError as exc:
            logger.warning("LLM call for %s failed: %s", task, exc)
        except Exception:  # pragma: no cover - provider bug, still best-effort
            logger.exception("Unexpected LLM failure during %s", task)
        return None

    def _complete_json(self, task: str, system_prompt: str, prompt: str, **kwargs: Any) -> list[dict[str, Any]]:
        response = self._complete(task, system_prompt, prompt, **kwargs)
        if response is None:
            return []
        items = parse_json_array(response)
        if items is None:
            logger.warning("No JSON array in %s response", task)
            return []
        return [item for item in items if isinstance(item, dict)]

    def extract_beliefs(self, content: str) -> list[dict[str, Any]]:
        prompt = f'Memory: "{content}"\n\nWhat beliefs does this memory reveal? Return JSON array only.'
        return self._complete_json(
            "extract_beliefs", _BELIEF_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=500
        )

    def detect_conflicts(
        self, new_belief_content: str, existing: list[dict[str, Any]], belief_type: str = ""
    ) -> list[dict[str, Any]]:
        if not existing:
            return []
        existing_list = "\n".join(f'- ID: {b["id"]}, Content: "{b["content"]}"' for b in existing)
        prompt = (
            f'New belief: "{new_belief_content}"\n\n'
            f'Existing beliefs of type "{belief_type}":\n{existing_list}\n\n'
            "Identify any conflicts. Return JSON array only."
        )
        return self._complete_json(
            "detect_conflicts", _CONFLICT_SYSTEM_PROMPT, prompt, temperature=0.1, max_tokens=500
        )

    def classify_categories(self, content: str) -> list[dict[str, Any]]:
        prompt = f'Memory: "{content}"\n\nWhich categories does this memory touch? Return JSON array only.'
        return self._complete_json(
            "classify_categories", _CLASSIFY_SYSTEM_PROMPT, prompt, temperature=0.1, max_tokens=300
        )

    def generate_summary(self, prompt: str, category_description: str = "the person") -> str | None:
        system_prompt = _SUMMARY_SYSTEM_PROMPT.format(description=category_description)
        response = self._complete(
            "generate_summary", system_prompt, prompt, temperature=0.3, max_tokens=500
        )
        if response is None or not response.strip():
            return None
        return response.strip()
