"""Pipeline data contracts for flowrag.

Frozen dataclasses that flow between stages:
  SourceFile → list[Chunk] → VectorizedFile (EmbeddedChunk...) → RetrievalResult → ConversationTurn

Graph records (``Node``, ``Edge``) describe the stage graph itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ConversationTurn",
    "Edge",
    "EmbeddedChunk",
    "Embedding",
    "Node",
    "ProviderConfig",
    "RetrievalResult",
    "Role",
    "SourceFile",
    "StageKind",
    "StageStatus",
    "VectorizedFile",
]


class StageKind(str, Enum):
    """Declared kind of a stage node."""

    SOURCE_FETCH = "source-fetch"
    TEXT = "text"
    PARSE = "parse"
    CHUNK = "chunk"
    EMBED = "embed"
    CHAT = "chat"
    CREDENTIAL = "credential"
    MANUAL_EXECUTE = "manual-execute"


class StageStatus(str, Enum):
    """Lifecycle state a stage records in its node data."""

    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Node:
    """A stage in the graph: identifier, declared kind and private payload."""

    id: str
    kind: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class Edge:
    """A directed connection: data flows and triggers propagate source → target."""

    source: str
    target: str
    source_port: str = ""
    target_port: str = ""


@dataclass(frozen=True)
class SourceFile:
    """A file produced by a fetch or parse stage."""

    name: str
    path: str
    content: str
    size: int = 0
    format: str = ""


@dataclass(frozen=True)
class ChunkMetadata:
    """Provenance attached to every chunk."""

    source: str
    path: str = ""
    parser: str = ""
    chunk_method: str = ""
    source_stage: str = ""


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of source text, the unit of retrieval."""

    content: str
    index: int
    metadata: ChunkMetadata
    token_count: int = 0


@dataclass(frozen=True)
class Embedding:
    """An embedding vector. Immutable once computed."""

    values: tuple[float, ...]

    @property
    def dimensions(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk with its embedding attached."""

    chunk: Chunk
    embedding: Embedding
    model: str = ""


@dataclass(frozen=True)
class VectorizedFile:
    """Embedded chunks grouped under their originating file."""

    source: SourceFile
    chunks: tuple[EmbeddedChunk, ...] = ()
    model: str = ""

    @property
    def dimensions(self) -> int:
        return self.chunks[0].embedding.dimensions if self.chunks else 0


@dataclass(frozen=True)
class RetrievalResult:
    """A ranked retrieval hit."""

    chunk: Chunk
    source_file: str
    similarity: float


@dataclass(frozen=True)
class ConversationTurn:
    """One message in a chat stage's conversation history."""

    role: Role
    content: str
    timestamp: datetime
    relevant_chunks: tuple[RetrievalResult, ...] = ()
    is_error: bool = False
    response_time: float = 0.0
    tokens_used: int = 0


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model catalogue produced by a credential stage."""

    endpoint: str
    credential: str
    available_models: tuple[str, ...] = ()
    provider: str = "custom"
