"""Base LLM interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class LLMError(RuntimeError):
    """Raised by providers when a completion cannot be produced."""


class BaseLLM(ABC):
    """Abstract LLM provider interface."""

    model: str = "unknown"

    @abstractmethod
    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Return assistant response text for a message list.

        Providers accept an optional ``timeout`` (seconds) keyword and raise
        :class:`LLMError` instead of returning error prose.
        """
