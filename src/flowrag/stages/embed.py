"""Embed stage: attaches vectors to upstream chunks, grouped per source file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flowrag.embed import select_embedding_model
from flowrag.exceptions import ConfigMissingError
from flowrag.resolver import Expect
from flowrag.stages.base import BaseStage, Embeddable
from flowrag.types import SourceFile, StageKind, VectorizedFile

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from flowrag.embed.base import BaseEmbedder
    from flowrag.resolver import ChunksOutput
    from flowrag.types import Chunk, EmbeddedChunk, ProviderConfig

__all__ = ["EmbedStage", "embedding_model_for", "group_by_source"]

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "openai_compat"


def embedding_model_for(configured: str, provider: ProviderConfig, pattern: str) -> str:
    """Resolve the embedding model: configured id, else the first matching catalogue entry.

    Raises:
        ConfigMissingError: If neither yields a model.
    """
    if configured:
        return configured
    model = select_embedding_model(provider.available_models, pattern)
    if model is None:
        raise ConfigMissingError(
            f"No embedding model configured and none of the {len(provider.available_models)} "
            f"available model(s) matches {pattern!r}"
        )
    return model


def group_by_source(embedded: Sequence[EmbeddedChunk], model: str) -> list[VectorizedFile]:
    """Group embedded chunks into one :class:`VectorizedFile` per source, in first-seen order."""
    groups: dict[str, list[EmbeddedChunk]] = {}
    for ec in embedded:
        groups.setdefault(ec.chunk.metadata.path or ec.chunk.metadata.source, []).append(ec)

    files: list[VectorizedFile] = []
    for key, chunks in groups.items():
        meta = chunks[0].chunk.metadata
        source = SourceFile(
            name=meta.source,
            path=meta.path or key,
            content="",
            size=sum(len(ec.chunk.content) for ec in chunks),
            format=meta.parser,
        )
        files.append(VectorizedFile(source=source, chunks=tuple(chunks), model=model))
    return files


class EmbedStage(BaseStage, Embeddable):
    """Embeds every upstream chunk with the selected model.

    Node data may set ``model`` (else ``[embedding] model``, else the first
    catalogue model matching ``model_pattern``) and ``backend``.
    """

    kind = StageKind.EMBED.value
    requires = (Expect.CHUNKS, Expect.CREDENTIALS)

    def embedder(self) -> BaseEmbedder:
        provider = self.provider_config()
        if provider is None:
            raise ConfigMissingError(f"Stage {self.id!r} has no provider credentials")
        config = self.settings(self.context.config.embedding)
        model = embedding_model_for(config.model, provider, config.model_pattern)
        backend = str(self.data.get("backend") or DEFAULT_BACKEND)
        return self.context.registry.create(
            "embedding", backend, provider, model, config, self.context.client
        )

    async def embed(self, chunks: Sequence[Chunk]) -> list[VectorizedFile]:
        embedder = self.embedder()
        embedded = await embedder.embed_chunks(chunks)
        return group_by_source(embedded, embedder.model)

    async def execute(self) -> Mapping[str, Any]:
        upstream: ChunksOutput = self.context.resolver.require(self.id, Expect.CHUNKS)
        vectorized = await self.embed(upstream.chunks)
        model = vectorized[0].model if vectorized else ""
        dimensions = vectorized[0].dimensions if vectorized else 0
        logger.info(
            "Embedded %d chunk(s) from %d file(s) with %s (%d-d)",
            len(upstream.chunks),
            len(vectorized),
            model,
            dimensions,
        )
        return {
            "vectorized_files": vectorized,
            "embedding_model": model,
            "dimensions": dimensions,
            "chunk_count": len(upstream.chunks),
        }
