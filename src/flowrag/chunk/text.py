"""Text chunker with five splitting strategies and token counting.

Methods:
- ``recursive``: split on a separator hierarchy, merging small neighbours
- ``character``: fixed-size character windows with overlap
- ``token``: fixed-size tiktoken windows with overlap
- ``semantic``: paragraphs first, sentences for oversized paragraphs
- ``structure``: sentences packed into chunks, keeping paragraph breaks

Sizes are in characters except for ``token``, where they count tokens.
"""

from __future__ import annotations

import functools
import logging
import re
from typing import TYPE_CHECKING

import tiktoken

from flowrag.chunk.base import BaseChunker
from flowrag.exceptions import ChunkError
from flowrag.types import Chunk, ChunkMetadata

if TYPE_CHECKING:
    from collections.abc import Callable

    from flowrag.config import ChunkConfig
    from flowrag.types import SourceFile

__all__ = ["CHUNK_METHODS", "TextChunker", "count_tokens"]

logger = logging.getLogger(__name__)

CHUNK_METHODS: frozenset[str] = frozenset(
    {"recursive", "character", "token", "semantic", "structure"}
)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    """Get the tiktoken encoding, lazily initialized and thread-safe."""
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    """Count tokens in text using cl100k_base encoding."""
    if not text:
        return 0
    return len(_get_encoding().encode(text))


# ── Splitting helpers ───────────────────────────────────────────────


def _hard_split(text: str, size: int) -> list[str]:
    """Split text into fixed windows when no separator helps."""
    return [text[i : i + size] for i in range(0, len(text), size)]


def _recursive_split(text: str, size: int, separators: list[str]) -> list[str]:
    """Recursively split text to fit within ``size`` characters.

    Tries each separator in order, falling back to the next if pieces
    are still too large.
    """
    if len(text) <= size:
        return [text]
    if not separators:
        return _hard_split(text, size)

    separator, remaining = separators[0], separators[1:]
    parts = [p for p in text.split(separator) if p.strip()]
    if len(parts) <= 1:
        return _recursive_split(text, size, remaining)

    result: list[str] = []
    current = ""
    for part in parts:
        candidate = current + separator + part if current else part
        if len(candidate) <= size:
            current = candidate
            continue
        if current:
            result.append(current)
        if len(part) > size:
            result.extend(_recursive_split(part, size, remaining))
            current = ""
        else:
            current = part
    if current:
        result.append(current)
    return result


def _tail(text: str, overlap: int) -> str:
    """Last ``overlap`` characters of ``text``, starting on a word boundary."""
    if overlap <= 0 or len(text) <= overlap:
        return ""
    tail = text[-overlap:]
    space = tail.find(" ")
    return tail[space + 1 :] if space != -1 else tail


def _add_overlap(chunks: list[str], overlap: int) -> list[str]:
    """Prefix each chunk with the tail of the previous one."""
    if overlap <= 0 or len(chunks) <= 1:
        return chunks
    result = [chunks[0]]
    for prev, chunk in zip(chunks, chunks[1:]):
        tail = _tail(prev, overlap)
        result.append(f"{tail} {chunk}" if tail else chunk)
    return result


def _pack(pieces: list[tuple[str, str]], size: int, overlap: int) -> list[str]:
    """Greedily pack ``(joiner, text)`` pieces into chunks of at most ``size``.

    When a chunk is closed, the next one starts with the closed chunk's
    tail so neighbouring chunks share ``overlap`` characters.
    """
    chunks: list[str] = []
    current = ""
    for joiner, piece in pieces:
        candidate = current + joiner + piece if current else piece
        if len(candidate) <= size or not current:
            current = candidate
            continue
        chunks.append(current.strip())
        tail = _tail(current, overlap)
        current = f"{tail} {piece}" if tail else piece
    if current.strip():
        chunks.append(current.strip())
    return chunks


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text) if s.strip()]


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_RE.split(text) if p.strip()]


# ── Strategies ──────────────────────────────────────────────────────


def _chunk_recursive(text: str, config: ChunkConfig) -> list[str]:
    budget = max(config.chunk_size - config.chunk_overlap, 1)
    pieces = [p.strip() for p in _recursive_split(text, budget, list(config.separators))]
    return _add_overlap([p for p in pieces if p], config.chunk_overlap)


def _chunk_character(text: str, config: ChunkConfig) -> list[str]:
    step = config.chunk_size - config.chunk_overlap
    windows = (text[i : i + config.chunk_size] for i in range(0, len(text), step))
    return [w.strip() for w in windows if w.strip()]


def _chunk_token(text: str, config: ChunkConfig) -> list[str]:
    enc = _get_encoding()
    tokens = enc.encode(text)
    step = config.chunk_size - config.chunk_overlap
    windows = (enc.decode(tokens[i : i + config.chunk_size]) for i in range(0, len(tokens), step))
    return [w.strip() for w in windows if w.strip()]


def _chunk_semantic(text: str, config: ChunkConfig) -> list[str]:
    size = config.chunk_size
    pieces: list[tuple[str, str]] = []
    for paragraph in _paragraphs(text):
        if len(paragraph) <= size:
            pieces.append(("\n\n", paragraph))
            continue
        for i, sentence in enumerate(_sentences(paragraph)):
            joiner = "\n\n" if i == 0 else " "
            pieces.extend((joiner, part) for part in _hard_split(sentence, size))
    return _pack(pieces, size, config.chunk_overlap)


def _chunk_structure(text: str, config: ChunkConfig) -> list[str]:
    size = config.chunk_size
    pieces: list[tuple[str, str]] = []
    for paragraph in _paragraphs(text):
        for i, sentence in enumerate(_sentences(paragraph)):
            joiner = "\n" if i == 0 else " "
            pieces.extend((joiner, part) for part in _hard_split(sentence, size))
    return _pack(pieces, size, config.chunk_overlap)


_STRATEGIES: dict[str, Callable[[str, ChunkConfig], list[str]]] = {
    "recursive": _chunk_recursive,
    "character": _chunk_character,
    "token": _chunk_token,
    "semantic": _chunk_semantic,
    "structure": _chunk_structure,
}


def _merge_small_chunks(
    chunks: list[str],
    min_size: int,
    max_size: int,
    measure: Callable[[str], int],
) -> list[str]:
    """Merge chunks shorter than ``min_size`` into their predecessor.

    A merge only happens when the result stays within ``max_size``.
    """
    if not chunks or min_size <= 0:
        return chunks
    result: list[str] = [chunks[0]]
    for chunk_text in chunks[1:]:
        if measure(chunk_text) < min_size:
            merged = result[-1] + "\n\n" + chunk_text
            if measure(merged) <= max_size:
                result[-1] = merged
                continue
        result.append(chunk_text)
    return result


class TextChunker(BaseChunker):
    """Chunker implementing every method in :data:`CHUNK_METHODS`."""

    def chunk(self, file: SourceFile, config: ChunkConfig, source_stage: str = "") -> list[Chunk]:
        """Split a file into chunks using ``config.method``.

        Raises:
            ChunkError: If the settings are invalid or splitting fails.
        """
        _validate(config)
        content = file.content.strip()
        if not content:
            return []

        measure: Callable[[str], int] = count_tokens if config.method == "token" else len
        try:
            raw_chunks = _STRATEGIES[config.method](content, config)
            raw_chunks = _merge_small_chunks(
                raw_chunks,
                config.min_chunk_size,
                config.chunk_size + config.chunk_overlap,
                measure,
            )
        except Exception as e:
            logger.error("Failed to chunk %s: %s", file.path, e)
            raise ChunkError(f"Failed to chunk {file.path}: {e}") from e

        metadata = ChunkMetadata(
            source=file.name,
            path=file.path,
            parser=file.format,
            chunk_method=config.method,
            source_stage=source_stage,
        )
        chunks = [
            Chunk(content=text, index=i, metadata=metadata, token_count=count_tokens(text))
            for i, text in enumerate(raw_chunks)
        ]
        logger.debug(
            "Chunked %s into %d chunks (method=%s, size=%d, overlap=%d)",
            file.path,
            len(chunks),
            config.method,
            config.chunk_size,
            config.chunk_overlap,
        )
        return chunks


def _validate(config: ChunkConfig) -> None:
    if config.method not in CHUNK_METHODS:
        raise ChunkError(
            f"Unknown chunk method {config.method!r}. Available: {sorted(CHUNK_METHODS)}"
        )
    if config.chunk_size < 1:
        raise ChunkError(f"chunk_size must be >= 1, got {config.chunk_size}")
    if not 0 <= config.chunk_overlap < config.chunk_size:
        raise ChunkError(
            f"chunk_overlap must be in [0, chunk_size), got {config.chunk_overlap}"
        )
