"""Abstract base class for chunking strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowrag.config import ChunkConfig
    from flowrag.types import Chunk, SourceFile

__all__ = ["BaseChunker"]

logger = logging.getLogger(__name__)


class BaseChunker(ABC):
    """Base class for all chunking strategies.

    Subclasses split a ``SourceFile`` into a list of ``Chunk`` objects.
    """

    @abstractmethod
    def chunk(self, file: SourceFile, config: ChunkConfig, source_stage: str = "") -> list[Chunk]:
        """Split a file into chunks.

        Args:
            file: The parsed file to chunk.
            config: Chunk settings (method, size, overlap, etc.).
            source_stage: Id of the stage the file came from, kept as provenance.

        Returns:
            List of chunks with metadata.

        Raises:
            ChunkError: If chunking fails.
        """

    def chunk_all(
        self, files: Sequence[SourceFile], config: ChunkConfig, source_stage: str = ""
    ) -> list[Chunk]:
        """Chunk every file, in order."""
        chunks: list[Chunk] = []
        for file in files:
            chunks.extend(self.chunk(file, config, source_stage))
        return chunks
