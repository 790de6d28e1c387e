"""Tests for flowrag.embed — OpenAICompatEmbedder and embedding model selection."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from flowrag.config import EmbeddingConfig
from flowrag.embed import (
    BaseEmbedder,
    OpenAICompatEmbedder,
    is_embedding_model,
    select_embedding_model,
)
from flowrag.exceptions import EmbeddingError
from flowrag.registry import default_registry
from flowrag.types import ProviderConfig

from tests.helpers import FakeProvider, keyword_vector, make_chunk

# --- Helpers ---

PROVIDER = ProviderConfig(endpoint="https://llm.example.com/v1", credential="sk-test")


def _config(**overrides) -> EmbeddingConfig:
    cfg = EmbeddingConfig(batch_delay_seconds=0.0)
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def _embed(handler, chunks, **overrides):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            config = _config(**overrides)
            embedder = OpenAICompatEmbedder(PROVIDER, "text-embedding-3-small", config, client)
            return await embedder.embed_chunks(chunks)

    return asyncio.run(go())


class TestOpenAICompatInit:
    def test_is_base_embedder(self):
        embedder = OpenAICompatEmbedder(PROVIDER, "m", _config(), httpx.AsyncClient())
        assert isinstance(embedder, BaseEmbedder)
        assert embedder.model == "m"

    def test_rejects_zero_batch_size(self):
        with pytest.raises(EmbeddingError, match="batch_size"):
            OpenAICompatEmbedder(PROVIDER, "m", _config(batch_size=0), httpx.AsyncClient())


class TestOpenAICompatEmbedChunks:
    def test_one_request_per_chunk_in_order(self):
        provider = FakeProvider()
        chunks = [make_chunk("alpha", 0), make_chunk("beta beta", 1), make_chunk("gamma", 2)]
        embedded = _embed(provider, chunks)

        assert [e.chunk for e in embedded] == chunks
        assert [list(e.embedding.values) for e in embedded] == [
            keyword_vector(c.content) for c in chunks
        ]
        assert {e.model for e in embedded} == {"text-embedding-3-small"}
        assert len(provider.calls("/embeddings")) == 3

    def test_request_payload_and_headers(self):
        provider = FakeProvider()
        _embed(provider, [make_chunk("alpha")])
        request = provider.calls("/embeddings")[0]
        assert str(request.url) == "https://llm.example.com/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {"input": "alpha", "model": "text-embedding-3-small"}

    def test_respects_batch_size(self):
        provider = FakeProvider()
        chunks = [make_chunk(f"chunk {i}", i) for i in range(5)]
        embedded = _embed(provider, chunks, batch_size=2)
        assert [e.chunk.index for e in embedded] == [0, 1, 2, 3, 4]
        assert len(provider.calls("/embeddings")) == 5

    def test_empty_chunks_returns_empty(self):
        provider = FakeProvider()
        assert _embed(provider, []) == []
        assert provider.requests == []

    def test_raises_on_http_error(self):
        provider = FakeProvider()
        provider.status["embeddings"] = 500
        with pytest.raises(EmbeddingError, match="HTTP 500") as exc_info:
            _embed(provider, [make_chunk("alpha")])
        assert exc_info.value.status_code == 500

    def test_raises_on_missing_embedding_field(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [{}]})

        with pytest.raises(EmbeddingError, match="Unexpected response format"):
            _embed(handler, [make_chunk("alpha")])

    def test_raises_on_invalid_json_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(EmbeddingError, match="Invalid JSON"):
            _embed(handler, [make_chunk("alpha")])

    def test_raises_on_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EmbeddingError, match="failed"):
            _embed(handler, [make_chunk("alpha")])


class TestOpenAICompatEmbedQuery:
    def test_returns_vector(self):
        provider = FakeProvider()

        async def go():
            async with provider.client() as client:
                embedder = OpenAICompatEmbedder(PROVIDER, "m", _config(), client)
                return await embedder.embed_query("delta delta")

        embedding = asyncio.run(go())
        assert list(embedding.values) == keyword_vector("delta delta")
        assert embedding.dimensions == 5


class TestModelSelection:
    def test_is_embedding_model_is_case_insensitive(self):
        assert is_embedding_model("text-EMBEDDING-3-small")
        assert not is_embedding_model("gpt-4o")

    def test_custom_pattern(self):
        assert is_embedding_model("bge-large", r"bge|e5")
        assert not is_embedding_model("text-embedding-3-small", r"bge|e5")

    def test_select_lowest_id(self):
        models = ["text-embedding-3-small", "gpt-4o", "nomic-embed-text", "text-embedding-3-large"]
        assert select_embedding_model(models) == "nomic-embed-text"

    def test_select_none_when_absent(self):
        assert select_embedding_model(["gpt-4o", "llama-3"]) is None


class TestRegistryIntegration:
    def test_registry_creates_openai_embedder(self):
        embedder = default_registry.create(
            "embedding", "openai_compat", PROVIDER, "m", _config(), httpx.AsyncClient()
        )
        assert isinstance(embedder, OpenAICompatEmbedder)
