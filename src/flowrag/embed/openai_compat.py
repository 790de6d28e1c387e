"""OpenAI-compatible embedding provider.

Works with any server implementing the OpenAI /v1/embeddings API:
OpenAI, LiteLLM proxy, vLLM, Ollama (OpenAI-compat mode), etc.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from flowrag.embed.base import BaseEmbedder
from flowrag.exceptions import EmbeddingError
from flowrag.http import api_base, auth_headers, post_json
from flowrag.types import EmbeddedChunk, Embedding

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from flowrag.config import EmbeddingConfig
    from flowrag.types import Chunk, ProviderConfig

__all__ = ["OpenAICompatEmbedder"]

logger = logging.getLogger(__name__)


class OpenAICompatEmbedder(BaseEmbedder):
    """Embedding provider using any OpenAI-compatible /embeddings endpoint.

    One request per text, ``{"input": text, "model": model}``; requests
    inside a batch run concurrently and batches are separated by a short
    delay to stay under provider rate limits.

    Config fields used::

        [embedding]
        batch_size = 10
        batch_delay_seconds = 0.1
        timeout_seconds = 60.0
    """

    def __init__(
        self,
        provider: ProviderConfig,
        model: str,
        config: EmbeddingConfig,
        client: httpx.AsyncClient,
    ) -> None:
        if config.batch_size < 1:
            raise EmbeddingError(f"batch_size must be >= 1, got {config.batch_size}")
        self.model = model
        self._url = f"{api_base(provider.endpoint)}/embeddings"
        self._headers = auth_headers(provider.credential)
        self._batch_size = config.batch_size
        self._batch_delay = config.batch_delay_seconds
        self._timeout = config.timeout_seconds
        self._client = client

    async def embed_chunks(self, chunks: Sequence[Chunk]) -> list[EmbeddedChunk]:
        """Generate embeddings for chunks in concurrent batches.

        Raises:
            EmbeddingError: If any request in any batch fails.
        """
        results: list[EmbeddedChunk] = []
        for batch_start in range(0, len(chunks), self._batch_size):
            if batch_start and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
            batch = chunks[batch_start : batch_start + self._batch_size]
            vectors = await asyncio.gather(*(self._call_embeddings(c.content) for c in batch))
            results.extend(
                EmbeddedChunk(chunk=chunk, embedding=vec, model=self.model)
                for chunk, vec in zip(batch, vectors, strict=True)
            )
            logger.debug("Embedded batch of %d (%d/%d)", len(batch), len(results), len(chunks))

        logger.info("Embedded %d chunks via OpenAI-compatible API (%s)", len(results), self.model)
        return results

    async def embed_query(self, text: str) -> Embedding:
        return await self._call_embeddings(text)

    async def _call_embeddings(self, text: str) -> Embedding:
        """Call the /embeddings endpoint for one input.

        Raises:
            EmbeddingError: On connection or API errors, or a malformed response.
        """
        payload: dict[str, Any] = {"input": text, "model": self.model}
        data = await post_json(
            self._client,
            self._url,
            payload,
            error_cls=EmbeddingError,
            headers=self._headers,
            timeout=self._timeout,
        )
        try:
            values = data["data"][0]["embedding"]
            return Embedding(tuple(float(v) for v in values))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Unexpected response format from {self._url}: missing 'data[0].embedding'"
            ) from e
