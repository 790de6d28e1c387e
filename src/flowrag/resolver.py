"""Upstream data resolver.

Given a consuming stage, walks its inbound edges, classifies each
producer by declared kind and maps the producer's node data through one
adapter per kind into a tagged ``ProducerOutput``:

  source-fetch, text, parse → FilesOutput
  chunk                     → ChunksOutput
  embed                     → VectorsOutput
  credential                → CredentialsOutput

Adapters tolerate the several field names producers have used for the
same payload, and fall back to a single synthesized file or chunk when
only a generic ``content``/``text`` field is present. Producers of an
unknown kind are classified by their payload shape.

The resolver only reads the graph, so ``resolve`` is safe to call
repeatedly as a readiness check.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from flowrag.exceptions import UpstreamDataAbsent
from flowrag.types import (
    Chunk,
    ChunkMetadata,
    EmbeddedChunk,
    Embedding,
    Node,
    ProviderConfig,
    SourceFile,
    StageKind,
    VectorizedFile,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from flowrag.graph import GraphStore

__all__ = [
    "ChunksOutput",
    "CredentialsOutput",
    "Expect",
    "FilesOutput",
    "ProducerOutput",
    "UpstreamResolver",
    "VectorsOutput",
    "classify",
]

logger = logging.getLogger(__name__)


class Expect(str, Enum):
    """Payload kind a consumer asks the resolver for."""

    FILES = "files"
    CHUNKS = "chunks"
    VECTORS = "vectors"
    CREDENTIALS = "credentials"


@dataclass(frozen=True)
class FilesOutput:
    source_ids: tuple[str, ...]
    files: tuple[SourceFile, ...]


@dataclass(frozen=True)
class ChunksOutput:
    source_ids: tuple[str, ...]
    chunks: tuple[Chunk, ...]


@dataclass(frozen=True)
class VectorsOutput:
    """Vectorized files keyed by the embed stage that produced them."""

    by_source: tuple[tuple[str, tuple[VectorizedFile, ...]], ...]

    @property
    def source_ids(self) -> tuple[str, ...]:
        return tuple(source_id for source_id, _ in self.by_source)

    @property
    def vectorized_files(self) -> tuple[VectorizedFile, ...]:
        return tuple(vf for _, files in self.by_source for vf in files)


@dataclass(frozen=True)
class CredentialsOutput:
    source_ids: tuple[str, ...]
    config: ProviderConfig


ProducerOutput = FilesOutput | ChunksOutput | VectorsOutput | CredentialsOutput

_EXPECTED_TYPE: dict[Expect, type] = {
    Expect.FILES: FilesOutput,
    Expect.CHUNKS: ChunksOutput,
    Expect.VECTORS: VectorsOutput,
    Expect.CREDENTIALS: CredentialsOutput,
}

# ---------------------------------------------------------------------------
# Field aliases, most specific first
# ---------------------------------------------------------------------------

_FILE_KEYS = ("files", "processedFiles", "filteredFiles", "repositoryFiles", "fetchedFiles")
_TEXT_KEYS = (
    "content",
    "text",
    "parsedContent",
    "extractedText",
    "fileContent",
    "repositoryContent",
    "output",
)
_CHUNK_KEYS = ("chunks", "processedChunks", "textChunks", "outputChunks")
_VECTOR_KEYS = ("vectorized_files", "vectorizedFiles")
_ENDPOINT_KEYS = ("endpoint", "apiEndpoint", "api_endpoint", "base_url")
_CREDENTIAL_KEYS = ("api_key", "apiKey", "token")
_MODEL_KEYS = ("available_models", "availableModels")


def _first(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def _first_text(data: Mapping[str, Any], keys: Sequence[str] = _TEXT_KEYS) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _as_items(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


# ---------------------------------------------------------------------------
# Item coercion
# ---------------------------------------------------------------------------


def _coerce_file(item: Any, index: int) -> SourceFile | None:
    if isinstance(item, SourceFile):
        return item
    if not isinstance(item, Mapping):
        return None
    if item.get("type") in ("folder", "dir", "tree"):
        return None
    content = _first_text(item, ("content", "text"))
    path = str(item.get("path") or item.get("filename") or item.get("name") or "")
    name = str(item.get("name") or item.get("filename") or posixpath.basename(path))
    if not name:
        name = f"file_{index}"
    size = item.get("size")
    return SourceFile(
        name=name,
        path=path or name,
        content=content,
        size=size if isinstance(size, int) and size > 0 else len(content),
        format=str(item.get("format") or item.get("extension") or ""),
    )


def _coerce_files(value: Any) -> list[SourceFile]:
    files = [_coerce_file(item, i) for i, item in enumerate(_as_items(value))]
    return [f for f in files if f is not None and f.content]


def _coerce_metadata(raw: Any, default_source: str) -> ChunkMetadata:
    if isinstance(raw, ChunkMetadata):
        return raw
    if not isinstance(raw, Mapping):
        return ChunkMetadata(source=default_source)
    path = str(raw.get("path") or "")
    source = str(raw.get("source") or raw.get("filename") or path or default_source)
    return ChunkMetadata(
        source=source,
        path=path,
        parser=str(raw.get("parser") or ""),
        chunk_method=str(raw.get("chunk_method") or raw.get("chunkMethod") or ""),
        source_stage=str(raw.get("source_stage") or ""),
    )


def _coerce_chunk(item: Any, index: int, default_source: str) -> Chunk | None:
    if isinstance(item, Chunk):
        return item
    if isinstance(item, str):
        if not item.strip():
            return None
        return Chunk(content=item, index=index, metadata=ChunkMetadata(source=default_source))
    if not isinstance(item, Mapping):
        return None
    content = _first_text(item, ("content", "text"))
    if not content:
        return None
    raw_index = item.get("index", item.get("chunk_index", index))
    token_count = item.get("token_count", 0)
    return Chunk(
        content=content,
        index=raw_index if isinstance(raw_index, int) else index,
        metadata=_coerce_metadata(item.get("metadata"), default_source),
        token_count=token_count if isinstance(token_count, int) else 0,
    )


def _coerce_chunks(value: Any, default_source: str) -> list[Chunk]:
    chunks = [_coerce_chunk(item, i, default_source) for i, item in enumerate(_as_items(value))]
    return [c for c in chunks if c is not None]


def _chunks_from_chunked_files(value: Any, default_source: str) -> list[Chunk]:
    """Flatten the per-file ``chunkedFiles`` layout into a chunk list."""
    chunks: list[Chunk] = []
    for i, entry in enumerate(_as_items(value)):
        if not isinstance(entry, Mapping):
            continue
        original = _coerce_file(entry.get("originalFile") or {}, i)
        source = original.name if original is not None else default_source
        chunks.extend(_coerce_chunks(entry.get("chunks"), source))
    return chunks


def _coerce_embedded_chunk(item: Any, index: int, source: str, model: str) -> EmbeddedChunk | None:
    if isinstance(item, EmbeddedChunk):
        return item
    if not isinstance(item, Mapping):
        return None
    values = item.get("embedding")
    if not isinstance(values, (list, tuple)) or not values:
        return None
    chunk = _coerce_chunk(item, index, source)
    if chunk is None:
        return None
    return EmbeddedChunk(
        chunk=chunk,
        embedding=Embedding(tuple(float(v) for v in values)),
        model=str(item.get("model") or model),
    )


def _coerce_vectorized_file(item: Any, index: int) -> VectorizedFile | None:
    if isinstance(item, VectorizedFile):
        return item
    if not isinstance(item, Mapping):
        return None
    raw_source = item.get("source") or item.get("originalFile") or {}
    source = _coerce_file(raw_source, index) or SourceFile(
        name=f"file_{index}", path=f"file_{index}", content=""
    )
    model = str(item.get("model") or "")
    embedded = [
        _coerce_embedded_chunk(c, i, source.name, model)
        for i, c in enumerate(_as_items(item.get("chunks")))
    ]
    chunks = tuple(c for c in embedded if c is not None)
    if not chunks:
        return None
    return VectorizedFile(source=source, chunks=chunks, model=model)


def _model_ids(value: Any) -> tuple[str, ...]:
    ids: list[str] = []
    for model in _as_items(value):
        if isinstance(model, str):
            ids.append(model)
        elif isinstance(model, Mapping):
            name = model.get("id") or model.get("name") or model.get("model")
            if isinstance(name, str) and name:
                ids.append(name)
    return tuple(ids)


# ---------------------------------------------------------------------------
# Per-kind adapters
# ---------------------------------------------------------------------------


def _text_file(node: Node, name: str) -> FilesOutput | None:
    text = _first_text(node.data)
    if not text:
        return None
    logger.debug("Synthesizing single file %s from %s text payload", name, node.id)
    return FilesOutput(
        source_ids=(node.id,),
        files=(SourceFile(name=name, path=name, content=text, size=len(text), format="text"),),
    )


def adapt_files(node: Node) -> FilesOutput | None:
    """Fetch and parse stage output → canonical file list."""
    files = _coerce_files(_first(node.data, _FILE_KEYS))
    if files:
        return FilesOutput(source_ids=(node.id,), files=tuple(files))
    return _text_file(node, f"{node.id}_content.txt")


def adapt_text(node: Node) -> FilesOutput | None:
    """Manual text stage → a single virtual file."""
    return _text_file(node, "text_input.txt")


def adapt_chunk(node: Node) -> ChunksOutput | None:
    """Chunk stage output → chunk list, or a single chunk from raw text."""
    chunks = _coerce_chunks(_first(node.data, _CHUNK_KEYS), node.id)
    if not chunks:
        chunks = _chunks_from_chunked_files(node.data.get("chunkedFiles"), node.id)
    if not chunks:
        text = _first_text(node.data)
        if text:
            logger.debug("Synthesizing single chunk from %s text payload", node.id)
            chunks = [Chunk(content=text, index=0, metadata=ChunkMetadata(source=node.id))]
    if not chunks:
        return None
    return ChunksOutput(source_ids=(node.id,), chunks=tuple(chunks))


def adapt_embed(node: Node) -> VectorsOutput | None:
    """Embed stage output → vectorized files."""
    raw = _first(node.data, _VECTOR_KEYS)
    if raw is None:
        nested = node.data.get("vectorizedData")
        if isinstance(nested, Mapping):
            raw = _first(nested, _VECTOR_KEYS)
    files = [_coerce_vectorized_file(item, i) for i, item in enumerate(_as_items(raw))]
    vectorized = tuple(f for f in files if f is not None)
    if not vectorized:
        return None
    return VectorsOutput(by_source=((node.id, vectorized),))


def adapt_credential(node: Node) -> CredentialsOutput | None:
    """Credential stage output → provider config."""
    endpoint = _first(node.data, _ENDPOINT_KEYS)
    credential = _first(node.data, _CREDENTIAL_KEYS)
    if not isinstance(endpoint, str) or not isinstance(credential, str):
        return None
    config = ProviderConfig(
        endpoint=endpoint,
        credential=credential,
        available_models=_model_ids(_first(node.data, _MODEL_KEYS)),
        provider=str(node.data.get("provider") or "custom"),
    )
    return CredentialsOutput(source_ids=(node.id,), config=config)


def _classify_by_shape(node: Node) -> ProducerOutput | None:
    """Classify a producer of unknown kind by the shape of its payload."""
    for adapter in (adapt_credential, adapt_embed, adapt_chunk_fields, adapt_files):
        output = adapter(node)
        if output is not None:
            logger.debug("Classified %s (kind=%r) as %s", node.id, node.kind, type(output).__name__)
            return output
    return None


def adapt_chunk_fields(node: Node) -> ChunksOutput | None:
    """Like :func:`adapt_chunk` but without the raw-text fallback (shape classification)."""
    if _first(node.data, _CHUNK_KEYS) is None and not node.data.get("chunkedFiles"):
        return None
    return adapt_chunk(node)


_ADAPTERS: dict[str, Callable[[Node], ProducerOutput | None]] = {
    StageKind.SOURCE_FETCH.value: adapt_files,
    StageKind.PARSE.value: adapt_files,
    StageKind.TEXT.value: adapt_text,
    StageKind.CHUNK.value: adapt_chunk,
    StageKind.EMBED.value: adapt_embed,
    StageKind.CREDENTIAL.value: adapt_credential,
}


def classify(node: Node) -> ProducerOutput | None:
    """Map a producer node to its tagged output, or ``None`` if it has none yet."""
    adapter = _ADAPTERS.get(node.kind)
    if adapter is not None:
        return adapter(node)
    return _classify_by_shape(node)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def _merge(expected: Expect, outputs: list[ProducerOutput]) -> ProducerOutput:
    if expected is Expect.CREDENTIALS:
        return outputs[0]

    if expected is Expect.VECTORS:
        by_source: dict[str, tuple[VectorizedFile, ...]] = {}
        for out in outputs:
            if isinstance(out, VectorsOutput):
                by_source.update(out.by_source)
        return VectorsOutput(by_source=tuple(by_source.items()))

    seen: set[str] = set()
    source_ids: list[str] = []
    items: list[Any] = []
    for out in outputs:
        if not isinstance(out, (FilesOutput, ChunksOutput)) or out.source_ids[0] in seen:
            continue
        seen.update(out.source_ids)
        source_ids.extend(out.source_ids)
        items.extend(out.files if isinstance(out, FilesOutput) else out.chunks)
    if expected is Expect.FILES:
        return FilesOutput(source_ids=tuple(source_ids), files=tuple(items))
    return ChunksOutput(source_ids=tuple(source_ids), chunks=tuple(items))


class UpstreamResolver:
    """Read-only view of what a stage's producers have written.

    Usage::

        resolver = UpstreamResolver(graph)
        files = resolver.resolve("chunk-1", Expect.FILES)
        if files is None:
            ...  # producer has not run yet
    """

    def __init__(self, graph: GraphStore, poll_interval: float = 2.0) -> None:
        self._graph = graph
        self._poll_interval = poll_interval

    def outputs(self, stage_id: str) -> list[ProducerOutput]:
        """Classify every inbound producer of ``stage_id``, in edge order."""
        results: list[ProducerOutput] = []
        for edge in self._graph.inbound_edges(stage_id):
            node = self._graph.get_node(edge.source)
            if node is None:
                logger.warning("Edge %s → %s references a missing node", edge.source, stage_id)
                continue
            output = classify(node)
            if output is not None:
                results.append(output)
        return results

    def resolve(self, stage_id: str, expected: Expect) -> ProducerOutput | None:
        """Return the merged payload of kind ``expected``, or ``None`` if absent."""
        wanted = _EXPECTED_TYPE[expected]
        matching = [out for out in self.outputs(stage_id) if isinstance(out, wanted)]
        if not matching:
            return None
        return _merge(expected, matching)

    def require(self, stage_id: str, expected: Expect) -> Any:
        """Like :meth:`resolve` but raises when the payload is absent.

        Raises:
            UpstreamDataAbsent: If no producer has written the payload yet.
        """
        output = self.resolve(stage_id, expected)
        if output is None:
            raise UpstreamDataAbsent(f"Stage {stage_id!r} has no upstream {expected.value} yet")
        return output

    async def wait_for(
        self,
        stage_id: str,
        expected: Expect,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> ProducerOutput:
        """Poll until the payload arrives, every ``interval`` seconds.

        ``interval`` defaults to the resolver's configured poll interval.

        Raises:
            UpstreamDataAbsent: If ``timeout`` elapses first.
        """
        try:
            async with asyncio.timeout(timeout):
                while True:
                    output = self.resolve(stage_id, expected)
                    if output is not None:
                        return output
                    await asyncio.sleep(self._poll_interval if interval is None else interval)
        except TimeoutError as e:
            raise UpstreamDataAbsent(
                f"Stage {stage_id!r} still has no upstream {expected.value} after {timeout}s"
            ) from e
