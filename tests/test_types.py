"""Tests for flowrag.types module — pipeline data contracts."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime

import pytest

from flowrag.types import (
    Chunk,
    ChunkMetadata,
    ConversationTurn,
    Edge,
    EmbeddedChunk,
    Embedding,
    Node,
    ProviderConfig,
    Role,
    SourceFile,
    StageKind,
    StageStatus,
    VectorizedFile,
)


class TestEnums:
    def test_stage_kinds_are_strings(self):
        assert StageKind.SOURCE_FETCH == "source-fetch"
        assert StageKind("manual-execute") is StageKind.MANUAL_EXECUTE

    def test_statuses(self):
        assert {s.value for s in StageStatus} == {
            "idle",
            "waiting",
            "running",
            "succeeded",
            "failed",
            "cancelled",
        }


class TestNode:
    def test_data_is_read_only(self):
        node = Node(id="a", kind="text", data={"text": "hi"})
        with pytest.raises(TypeError):
            node.data["text"] = "changed"  # type: ignore[index]

    def test_data_is_copied(self):
        payload = {"text": "hi"}
        node = Node(id="a", kind="text", data=payload)
        payload["text"] = "changed"
        assert node.data["text"] == "hi"

    def test_frozen(self):
        node = Node(id="a", kind="text")
        with pytest.raises(dataclasses.FrozenInstanceError):
            node.id = "b"  # type: ignore[misc]


class TestEdge:
    def test_ports_default_empty(self):
        edge = Edge(source="a", target="b")
        assert edge.source_port == ""
        assert edge.target_port == ""

    def test_equality(self):
        assert Edge("a", "b") == Edge(source="a", target="b")


class TestSourceFile:
    def test_defaults(self):
        f = SourceFile(name="a.md", path="docs/a.md", content="x")
        assert f.size == 0
        assert f.format == ""

    def test_replace(self):
        f = SourceFile(name="a.md", path="docs/a.md", content="x")
        g = dataclasses.replace(f, content="y", format="markdown")
        assert f.content == "x"
        assert g.format == "markdown"


class TestChunk:
    def test_metadata_defaults(self):
        meta = ChunkMetadata(source="a.md")
        assert meta.path == ""
        assert meta.chunk_method == ""
        assert meta.source_stage == ""

    def test_frozen(self):
        chunk = Chunk(content="hello", index=0, metadata=ChunkMetadata(source="a.md"))
        with pytest.raises(dataclasses.FrozenInstanceError):
            chunk.content = "changed"  # type: ignore[misc]


class TestEmbeddings:
    def test_dimensions(self):
        assert Embedding(values=(0.1, 0.2, 0.3)).dimensions == 3

    def test_vectorized_file_dimensions(self):
        chunk = Chunk(content="a", index=0, metadata=ChunkMetadata(source="a.md"))
        embedded = EmbeddedChunk(chunk=chunk, embedding=Embedding(values=(1.0, 0.0)))
        source = SourceFile(name="a.md", path="a.md", content="a")
        assert VectorizedFile(source=source, chunks=(embedded,)).dimensions == 2
        assert VectorizedFile(source=source).dimensions == 0


class TestConversationTurn:
    def test_defaults(self):
        turn = ConversationTurn(role=Role.USER, content="hi", timestamp=datetime.now(UTC))
        assert turn.relevant_chunks == ()
        assert turn.is_error is False
        assert turn.tokens_used == 0


class TestProviderConfig:
    def test_defaults(self):
        config = ProviderConfig(endpoint="https://api.example.com/v1", credential="sk")
        assert config.available_models == ()
        assert config.provider == "custom"
