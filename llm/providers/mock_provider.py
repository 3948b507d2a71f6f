"""Deterministic local fallback LLM provider for offline usage."""

from __future__ import annotations

import json
import re
from collections import Counter

from llm.base_llm import BaseLLM

_PREFERENCE_PATTERNS = [
    (r"\bi\s+love\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "likes", 0.72),
    (r"\bi\s+like\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "likes", 0.7),
    (r"\bi\s+prefer\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "prefers", 0.7),
    (r"\bi\s+dislike\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "dislikes", 0.7),
    (r"\bi\s+hate\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "dislikes", 0.72),
    (r"\bi\s+don't\s+like\s+([a-zA-Z0-9\-\s]+?)(?:\band\b|[.,;]|$)", "dislikes", 0.7),
]
_VALUE_PATTERN = r"\bi\s+value\s+([a-zA-Z0-9\-\s]+?)(?:[.,;]|$)"
_SHOULD_PATTERN = r"\bi\s+should\s+([a-zA-Z0-9\-\s]+?)(?:[.,;]|$)"

_CATEGORY_KEYWORDS = {
    "personality": ("i am", "i'm", "my name", "introvert", "extrovert", "value"),
    "goals": ("goal", "want to", "plan to", "aspire", "hope to", "working toward"),
    "relationships": ("wife", "husband", "friend", "mother", "father", "sister", "brother", "colleague"),
    "projects": ("project", "building", "codebase", "launch", "deadline", "task"),
    "interests": ("love", "like", "hobby", "enjoy", "music", "reading", "game"),
    "wellbeing": ("tired", "sleep", "health", "anxious", "stress", "mood", "exercise"),
    "commitments": ("promised", "owe", "committed", "agreed to", "will send"),
    "significant_dates": ("birthday", "anniversary"),
}


def _quoted(label: str, text: str) -> str:
    match = re.search(rf'{label}:\s*"(.*?)"\s*(?:\n|$)', text, flags=re.DOTALL)
    return match.group(1) if match else ""


def _normalize_claim(claim: str) -> str:
    return re.sub(r"\s+", " ", claim.strip().lower().rstrip("."))


def _sentiment_topic(claim: str) -> tuple[str, str] | None:
    match = re.search(r"user\s+(likes|prefers|dislikes)\s+(.+)", claim, flags=re.IGNORECASE)
    if not match:
        return None
    sentiment = "dislikes" if match.group(1).lower() == "dislikes" else "likes"
    return sentiment, _normalize_claim(match.group(2))


def _is_negation_conflict(claim_a: str, claim_b: str) -> bool:
    norm_a = _normalize_claim(claim_a)
    norm_b = _normalize_claim(claim_b)
    if norm_a == norm_b:
        return False
    negation = re.compile(r"\b(not|never|no)\b")
    if bool(negation.search(norm_a)) == bool(negation.search(norm_b)):
        return False
    stripped_a = re.sub(r"\s+", " ", negation.sub("", norm_a)).strip()
    stripped_b = re.sub(r"\s+", " ", negation.sub("", norm_b)).strip()
    return bool(
        stripped_a and stripped_b and (stripped_a in stripped_b or stripped_b in stripped_a)
    )


class MockProvider(BaseLLM):
    """Rule-based local responder when external LLM backends are unavailable.

    Understands the ``task`` keyword sent by the extraction adapter and answers
    with the JSON shape each task expects.
    """

    model = "mock"

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        return [token for token in re.split(r"[^a-zA-Z0-9]+", text.lower()) if token]

    @staticmethod
    def _summarize_tokens(tokens: list[str], max_items: int = 8) -> str:
        if not tokens:
            return "no salient terms detected"
        top = Counter(tokens).most_common(max_items)
        return ", ".join(term for term, _ in top)

    @staticmethod
    def _extract_beliefs(prompt: str) -> list[dict[str, object]]:
        text = _quoted("Memory", prompt)
        beliefs: list[dict[str, object]] = []
        for pattern, sentiment, conf in _PREFERENCE_PATTERNS:
            match = re.search(pattern, text, flags=re.IGNORECASE)
            if match:
                topic = match.group(1).strip().rstrip(".")
                beliefs.append(
                    {"content": f"User {sentiment} {topic}", "belief_type": "preference", "confidence": conf}
                )
        for pattern, belief_type, template in (
            (_VALUE_PATTERN, "value", "User values {}"),
            (_SHOULD_PATTERN, "should", "User should {}"),
        ):
            match = re.search(pattern, text, flags=re.IGNORECASE)
            if match:
                beliefs.append(
                    {
                        "content": template.format(match.group(1).strip()),
                        "belief_type": belief_type,
                        "confidence": 0.65,
                    }
                )
        return beliefs

    @staticmethod
    def _detect_conflicts(prompt: str) -> list[dict[str, str]]:
        new_belief = _quoted("New belief", prompt)
        new_parsed = _sentiment_topic(new_belief)
        conflicts: list[dict[str, str]] = []
        for match in re.finditer(r'- ID: (\S+), Content: "(.*?)"\s*$', prompt, flags=re.MULTILINE):
            existing_id, existing = match.group(1), match.group(2)
            old_parsed = _sentiment_topic(existing)
            opposed = (
                new_parsed is not None
                and old_parsed is not None
                and new_parsed[1] == old_parsed[1]
                and new_parsed[0] != old_parsed[0]
            )
            if opposed or _is_negation_conflict(new_belief, existing):
                conflicts.append(
                    {
                        "existing_belief_id": existing_id,
                        "conflict_type": "direct_contradiction",
                        "description": "Opposite stance on the same topic.",
                    }
                )
        return conflicts

    @staticmethod
    def _classify(prompt: str) -> list[dict[str, object]]:
        text = _quoted("Memory", prompt).lower()
        results: list[dict[str, object]] = []
        for category, keywords in _CATEGORY_KEYWORDS.items():
            hits = [word for word in keywords if word in text]
            if hits:
                results.append(
                    {
                        "category": category,
                        "relevance": min(1.0, 0.5 + 0.1 * len(hits)),
                        "reason": f"mentions {', '.join(hits)}",
                    }
                )
        return results

    @staticmethod
    def _summarize(prompt: str) -> str:
        current = ""
        match = re.search(r"Current summary:\n(.*?)\n\n", prompt, flags=re.DOTALL)
        if match:
            current = match.group(1).strip()
        new_lines = re.findall(r"^\d+\.\s+(.*)$", prompt, flags=re.MULTILINE)
        parts = [current] if current else []
        parts.extend(line.strip() for line in new_lines)
        return "\n".join(parts) if parts else "No information yet."

    def chat(self, messages: list[dict[str, str]], **kwargs: object) -> str:
        """Generate deterministic text from conversational messages."""
        if not messages:
            return "No input received."
        user_messages = [m["content"] for m in messages if m.get("role") == "user"]
        prompt = user_messages[-1] if user_messages else messages[-1]["content"]

        task = kwargs.get("task")
        if task == "extract_beliefs":
            return json.dumps(self._extract_beliefs(prompt))
        if task == "detect_conflicts":
            return json.dumps(self._detect_conflicts(prompt))
        if task == "classify_categories":
            return json.dumps(self._classify(prompt))
        if task == "generate_summary":
            return self._summarize(prompt)

        salient = self._summarize_tokens(self._tokenize(prompt))
        return f"Local fallback response. Salient terms: {salient}."
