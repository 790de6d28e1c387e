"""Chunking engine — separator, window and sentence based splitting."""

from flowrag.chunk.base import BaseChunker
from flowrag.chunk.text import CHUNK_METHODS, TextChunker, count_tokens

__all__ = ["CHUNK_METHODS", "BaseChunker", "TextChunker", "count_tokens"]
