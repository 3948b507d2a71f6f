"""Embedding providers."""

from __future__ import annotations

import hashlib
import math
import os
from abc import ABC, abstractmethod
from typing import Any


class EmbeddingError(RuntimeError):
    """Raised when an embedding cannot be produced."""


def _tokenize(text: str) -> list[str]:
    return [t for t in "".join(ch.lower() if ch.isalnum() else " " for ch in text).split() if t]


class BaseEmbedder(ABC):
    """Abstract text embedder."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return a fixed-dimension vector for text or raise EmbeddingError."""


class HashingEmbedder(BaseEmbedder):
    """Offline embedder: signed feature hashing of tokens, L2-normalized.

    Texts sharing vocabulary land close together, which is enough for local
    use and tests; it carries no semantics beyond token overlap.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed(self, text: str) -> list[float]:
        tokens = _tokenize(text)
        if not tokens:
            raise EmbeddingError("Cannot embed empty text.")
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector


class OpenAIEmbedder(BaseEmbedder):
    """OpenAI-compatible embeddings endpoint (OpenAI, Ollama, vLLM, ...)."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        dimension: int | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.dimension = dimension
        self.timeout = timeout

    def _client(self) -> Any:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key and self.base_url is None:
            raise EmbeddingError("OpenAI embedder unavailable: OPENAI_API_KEY not set.")
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingError("`openai` package missing. Install with: pip install openai") from exc
        return OpenAI(api_key=api_key or "unused", base_url=self.base_url, timeout=self.timeout)

    def embed(self, text: str) -> list[float]:
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text.")
        client = self._client()
        params: dict[str, Any] = {"model": self.model, "input": text}
        if self.dimension:
            params["dimensions"] = self.dimension
        try:
            response = client.embeddings.create(**params)
        except Exception as exc:  # pragma: no cover - external API path
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        return list(response.data[0].embedding)
