"""Retrieval engine: query embedding, ranking and adaptive filtering.

``retrieve`` embeds the query and hands off to ``rank``, which is pure:

1. flatten the corpus into (chunk, embedding, source file) tuples
2. score each by cosine similarity and sort descending
3. take the top ``top_k`` and drop those below the effective threshold
4. if nothing survives, return the single best tuple anyway
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flowrag.exceptions import ConfigMissingError, NoRelevantContentError
from flowrag.retrieval.similarity import cosine_similarity, effective_threshold
from flowrag.types import RetrievalResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowrag.embed.base import BaseEmbedder
    from flowrag.types import EmbeddedChunk, Embedding, VectorizedFile

__all__ = ["RetrievalEngine", "corpus_size", "flatten_corpus"]

logger = logging.getLogger(__name__)


def flatten_corpus(corpus: Sequence[VectorizedFile]) -> list[tuple[EmbeddedChunk, str]]:
    """Flatten vectorized files into ``(embedded chunk, source file name)`` pairs."""
    return [(ec, vf.source.name) for vf in corpus for ec in vf.chunks]


def corpus_size(corpus: Sequence[VectorizedFile]) -> int:
    return sum(len(vf.chunks) for vf in corpus)


class RetrievalEngine:
    """Ranks corpus chunks against a query.

    Args:
        embedder: Provider used to embed queries. Only needed for
            :meth:`retrieve`; :meth:`rank` works on a precomputed vector.
        adaptive_scale: Fraction of the best similarity used as the
            adaptive threshold.
        adaptive_floor: Lower bound of the adaptive threshold.
    """

    def __init__(
        self,
        embedder: BaseEmbedder | None = None,
        *,
        adaptive_scale: float = 0.7,
        adaptive_floor: float = 0.2,
    ) -> None:
        self._embedder = embedder
        self._scale = adaptive_scale
        self._floor = adaptive_floor

    def score(
        self, query: Embedding, corpus: Sequence[VectorizedFile]
    ) -> list[RetrievalResult]:
        """Score every chunk in ``corpus``, best first."""
        results: list[RetrievalResult] = []
        mismatched = 0
        for embedded, source in flatten_corpus(corpus):
            if embedded.embedding.dimensions != query.dimensions:
                mismatched += 1
            results.append(
                RetrievalResult(
                    chunk=embedded.chunk,
                    source_file=source,
                    similarity=cosine_similarity(query.values, embedded.embedding.values),
                )
            )
        if mismatched:
            logger.warning(
                "%d chunk(s) have a different dimension than the %d-d query; scored as 0",
                mismatched,
                query.dimensions,
            )
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results

    def rank(
        self,
        query: Embedding,
        corpus: Sequence[VectorizedFile],
        *,
        top_k: int,
        similarity_threshold: float,
    ) -> list[RetrievalResult]:
        """Rank, cut to ``top_k`` and filter by the effective threshold.

        Returns at most ``top_k`` results, and at least one whenever the
        corpus has any chunk.
        """
        scored = self.score(query, corpus)
        if not scored:
            return []

        top_k = max(top_k, 1)
        threshold = effective_threshold(
            scored[0].similarity,
            similarity_threshold,
            scale=self._scale,
            floor=self._floor,
        )
        accepted = [r for r in scored[:top_k] if r.similarity >= threshold]
        if not accepted:
            logger.info(
                "No chunk reached threshold %.3f; falling back to best match (%.3f)",
                threshold,
                scored[0].similarity,
            )
            accepted = scored[:1]

        logger.debug(
            "Ranked %d chunks: kept %d (top_k=%d, threshold=%.3f, best=%.3f)",
            len(scored),
            len(accepted),
            top_k,
            threshold,
            scored[0].similarity,
        )
        return accepted

    async def retrieve(
        self,
        query: str,
        corpus: Sequence[VectorizedFile],
        *,
        top_k: int,
        similarity_threshold: float,
    ) -> list[RetrievalResult]:
        """Embed ``query`` and rank the corpus against it.

        Raises:
            NoRelevantContentError: If the corpus has no chunks.
            ConfigMissingError: If the engine has no embedder.
            EmbeddingError: If the query cannot be embedded.
        """
        if corpus_size(corpus) == 0:
            raise NoRelevantContentError(
                "The knowledge base is empty. Run the upstream embed stage before asking."
            )
        if self._embedder is None:
            raise ConfigMissingError("No embedding provider configured for queries")

        vector = await self._embedder.embed_query(query)
        results = self.rank(
            vector, corpus, top_k=top_k, similarity_threshold=similarity_threshold
        )
        logger.info("Retrieved %d chunk(s) for query (%d chars)", len(results), len(query))
        return results
