"""Abstract base class for embedding providers."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from flowrag.types import Chunk, EmbeddedChunk, Embedding

__all__ = ["BaseEmbedder", "is_embedding_model", "select_embedding_model"]

logger = logging.getLogger(__name__)


def is_embedding_model(model_id: str, pattern: str = "embed") -> bool:
    """Return ``True`` if ``model_id`` follows the embedding naming convention."""
    return re.search(pattern, model_id, re.IGNORECASE) is not None


def select_embedding_model(models: Iterable[str], pattern: str = "embed") -> str | None:
    """Pick the lowest-id model whose name matches ``pattern``.

    Returns:
        The model id, or ``None`` if no model matches.
    """
    for model_id in sorted(models):
        if is_embedding_model(model_id, pattern):
            return model_id
    return None


class BaseEmbedder(ABC):
    """Base class for all embedding providers.

    Subclasses generate vector embeddings for chunks and queries.
    """

    model: str = ""

    @abstractmethod
    async def embed_chunks(self, chunks: Sequence[Chunk]) -> list[EmbeddedChunk]:
        """Generate embeddings for a batch of chunks.

        Args:
            chunks: Chunks to embed.

        Returns:
            List of EmbeddedChunk with vectors attached, in input order.

        Raises:
            EmbeddingError: If embedding generation fails.
        """

    @abstractmethod
    async def embed_query(self, text: str) -> Embedding:
        """Generate an embedding for a search query.

        Args:
            text: Query text.

        Returns:
            The query embedding.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
