"""LLM and embedder factories."""

from __future__ import annotations

from typing import Any

from llm.base_llm import BaseLLM
from llm.embeddings import BaseEmbedder, HashingEmbedder, OpenAIEmbedder
from llm.providers.groq_provider import GroqProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider


def build_llm(config: dict[str, Any]) -> BaseLLM:
    """Build an LLM provider from configuration, defaulting safely to mock."""
    models_cfg = config.get("models", {}).get("llm", {})
    active = models_cfg.get("active_provider", "mock")
    providers = models_cfg.get("providers", {})
    active_cfg = providers.get(active, {})
    provider_type = active_cfg.get("type", active)
    temperature = active_cfg.get("temperature")

    if provider_type == "openai":
        return OpenAIProvider(model=active_cfg.get("model", "gpt-4o-mini"), temperature=temperature)
    if provider_type == "groq":
        return GroqProvider(
            model=active_cfg.get("model", "llama-3.3-70b-versatile"), temperature=temperature
        )
    return MockProvider()


def build_embedder(config: dict[str, Any]) -> BaseEmbedder:
    """Build an embedder from configuration, defaulting to offline hashing."""
    emb_cfg = config.get("models", {}).get("embeddings", {})
    provider_type = emb_cfg.get("provider", "hashing")
    dimension = int(emb_cfg.get("dimension", 256))
    timeout = emb_cfg.get("timeout_seconds")

    if provider_type == "openai":
        return OpenAIEmbedder(
            model=emb_cfg.get("model", "text-embedding-3-small"),
            base_url=emb_cfg.get("base_url"),
            dimension=emb_cfg.get("dimension"),
            timeout=float(timeout) if timeout is not None else None,
        )
    return HashingEmbedder(dimension=dimension)
