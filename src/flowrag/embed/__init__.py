"""Embedding engine — abstract provider interface and concrete providers."""

from flowrag.embed.base import BaseEmbedder, is_embedding_model, select_embedding_model
from flowrag.embed.openai_compat import OpenAICompatEmbedder
from flowrag.registry import default_registry

__all__ = [
    "BaseEmbedder",
    "OpenAICompatEmbedder",
    "is_embedding_model",
    "select_embedding_model",
]

# Register built-in embedding providers
default_registry.register(
    "embedding",
    "openai_compat",
    lambda provider, model, cfg, client: OpenAICompatEmbedder(provider, model, cfg, client),
)
