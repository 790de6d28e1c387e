"""Builders and fakes shared across the flowrag test modules."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx

from flowrag.types import (
    Chunk,
    ChunkMetadata,
    ConversationTurn,
    EmbeddedChunk,
    Embedding,
    Role,
    SourceFile,
    VectorizedFile,
)

VOCAB = ("alpha", "beta", "gamma", "delta")


def keyword_vector(text: str) -> list[float]:
    """Deterministic fake embedding: keyword counts plus a small constant component."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCAB] + [0.1]


def make_chunk(content: str, index: int = 0, source: str = "doc.md", parser: str = "") -> Chunk:
    meta = ChunkMetadata(source=source, path=source, parser=parser)
    return Chunk(content=content, index=index, metadata=meta, token_count=len(content.split()))


def make_vectorized(
    name: str,
    vectors: list[list[float]],
    *,
    model: str = "text-embedding-test",
    parser: str = "",
) -> VectorizedFile:
    chunks = tuple(
        EmbeddedChunk(
            chunk=make_chunk(f"{name} chunk {i}", i, name, parser),
            embedding=Embedding(tuple(v)),
            model=model,
        )
        for i, v in enumerate(vectors)
    )
    return VectorizedFile(
        source=SourceFile(name=name, path=name, content=""), chunks=chunks, model=model
    )


def make_turn(role: Role, content: str, *, is_error: bool = False) -> ConversationTurn:
    return ConversationTurn(
        role=role, content=content, timestamp=datetime.now(UTC), is_error=is_error
    )


class FakeProvider:
    """OpenAI-compatible provider served through ``httpx.MockTransport``.

    Records every request. ``status`` maps an endpoint suffix (``"models"``,
    ``"embeddings"``, ``"chat/completions"``) to a forced HTTP error status.
    """

    def __init__(
        self,
        models: tuple[str, ...] = ("gpt-4o-mini", "text-embedding-3-small", "whisper-1"),
        reply: str = "Here is the answer.",
    ) -> None:
        self.models = models
        self.reply = reply
        self.status: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def calls(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, status in self.status.items():
            if path.endswith(suffix):
                return httpx.Response(status, text="provider unavailable")

        if path.endswith("/models"):
            return httpx.Response(200, json={"data": [{"id": m} for m in self.models]})
        if path.endswith("/embeddings"):
            body = json.loads(request.content)
            vector = keyword_vector(body["input"])
            payload = {"data": [{"embedding": vector}], "model": body["model"]}
            return httpx.Response(200, json=payload)
        if path.endswith("/chat/completions"):
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": body["model"],
                    "choices": [{"message": {"role": "assistant", "content": self.reply}}],
                    "usage": {"total_tokens": 42},
                },
            )
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
