"""OpenAI chat provider."""

from __future__ import annotations

import os
from typing import Any

from llm.base_llm import BaseLLM, LLMError


class OpenAIProvider(BaseLLM):
    """OpenAI API adapter. Works only when dependency and API key are present."""

    API_KEY_ENV = "OPENAI_API_KEY"
    BASE_URL: str | None = None

    def __init__(self, model: str = "gpt-4o-mini", temperature: float | None = None) -> None:
        self.model = model
        self.temperature = temperature

    def _client(self, timeout: float | None) -> Any:
        api_key = os.getenv(self.API_KEY_ENV)
        if not api_key:
            raise LLMError(f"{type(self).__name__} unavailable: {self.API_KEY_ENV} not set.")
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise LLMError("`openai` package missing. Install with: pip install openai") from exc
        return OpenAI(api_key=api_key, base_url=self.BASE_URL, timeout=timeout)

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        timeout = kwargs.get("timeout")
        client = self._client(timeout)
        params: dict[str, Any] = {"model": self.model, "messages": messages}
        temperature = kwargs.get("temperature", self.temperature)
        if temperature is not None:
            params["temperature"] = temperature
        if kwargs.get("max_tokens"):
            params["max_tokens"] = kwargs["max_tokens"]
        try:
            response = client.chat.completions.create(**params)
        except Exception as exc:  # pragma: no cover - external API path
            raise LLMError(f"{type(self).__name__} request failed: {exc}") from exc
        content = response.choices[0].message.content
        if not content:
            raise LLMError(f"{type(self).__name__} returned an empty response.")
        return content
