"""Groq LLM provider (OpenAI-compatible API)."""

from __future__ import annotations

from llm.providers.openai_provider import OpenAIProvider


class GroqProvider(OpenAIProvider):
    """Groq inference adapter. Uses OpenAI-compatible endpoint."""

    API_KEY_ENV = "GROQ_API_KEY"
    BASE_URL = "https://api.groq.com/openai/v1"

    def __init__(
        self, model: str = "llama-3.3-70b-versatile", temperature: float | None = None
    ) -> None:
        super().__init__(model=model, temperature=temperature)
