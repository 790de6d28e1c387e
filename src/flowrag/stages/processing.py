"""Parse and chunk stages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flowrag.chunk import TextChunker
from flowrag.exceptions import ParseError, StageError
from flowrag.parse import TextParser
from flowrag.resolver import Expect
from flowrag.stages.base import BaseStage, Chunkable
from flowrag.types import StageKind

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from flowrag.resolver import FilesOutput
    from flowrag.types import Chunk, SourceFile

__all__ = ["ChunkStage", "ParseStage"]

logger = logging.getLogger(__name__)


class ParseStage(BaseStage):
    """Normalizes upstream files; files that fail to parse are reported, not fatal."""

    kind = StageKind.PARSE.value
    requires = (Expect.FILES,)

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._parser = TextParser()

    def parse_files(
        self, files: Sequence[SourceFile]
    ) -> tuple[list[SourceFile], list[dict[str, str]]]:
        config = self.settings(self.context.config.parse)
        parsed: list[SourceFile] = []
        errors: list[dict[str, str]] = []
        for file in files:
            try:
                parsed.append(self._parser.parse(file, config))
            except ParseError as e:
                logger.warning("Skipping %s: %s", file.path, e)
                errors.append({"path": file.path, "error": str(e)})
        return parsed, errors

    async def execute(self) -> Mapping[str, Any]:
        upstream: FilesOutput = self.context.resolver.require(self.id, Expect.FILES)
        parsed, errors = self.parse_files(upstream.files)
        if not parsed:
            raise StageError(f"None of the {len(upstream.files)} upstream file(s) could be parsed")
        logger.info("Parsed %d file(s), %d failed", len(parsed), len(errors))
        return {"files": parsed, "file_count": len(parsed), "parse_errors": errors}


class ChunkStage(BaseStage, Chunkable):
    """Splits upstream files into chunks with the configured method."""

    kind = StageKind.CHUNK.value
    requires = (Expect.FILES,)

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._chunker = TextChunker()

    def chunk_files(self, files: Sequence[SourceFile]) -> list[Chunk]:
        config = self.settings(self.context.config.chunk)
        return self._chunker.chunk_all(files, config, source_stage=self.id)

    async def execute(self) -> Mapping[str, Any]:
        upstream: FilesOutput = self.context.resolver.require(self.id, Expect.FILES)
        chunks = self.chunk_files(upstream.files)
        if not chunks:
            raise StageError("Chunking produced no chunks; upstream files are empty")
        return {
            "chunks": chunks,
            "chunk_count": len(chunks),
            "source_files": len(upstream.files),
        }
