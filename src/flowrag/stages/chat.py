"""Chat stage: retrieval over the upstream corpus plus conversational answers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flowrag.chat import ChatComposer, PromptBuilder, select_chat_model
from flowrag.exceptions import (
    ConfigMissingError,
    EmbeddingError,
    NoRelevantContentError,
    UpstreamDataAbsent,
)
from flowrag.resolver import Expect, VectorsOutput
from flowrag.retrieval import AutoConfigurator, RetrievalEngine, RetrievalSettings, corpus_size
from flowrag.stages.base import BaseStage, Queryable
from flowrag.stages.embed import DEFAULT_BACKEND, embedding_model_for
from flowrag.types import ConversationTurn, Role, StageKind

if TYPE_CHECKING:
    from collections.abc import Mapping

    from flowrag.embed.base import BaseEmbedder
    from flowrag.stages.base import StageContext
    from flowrag.types import ProviderConfig, RetrievalResult, VectorizedFile

__all__ = ["ChatStage"]

logger = logging.getLogger(__name__)


class ChatStage(BaseStage, Queryable):
    """Answers questions grounded in the vectors of its upstream embed stages.

    A run checks that credentials, a chat model and (unless
    ``use_knowledge_base`` is false) a corpus are available, and tunes
    the retrieval settings to the corpus. :meth:`ask` then serves any
    number of queries; the conversation is written to ``messages``.
    """

    kind = StageKind.CHAT.value

    def __init__(self, stage_id: str, context: StageContext) -> None:
        super().__init__(stage_id, context)
        retrieval = context.config.retrieval
        self._autoconfig = AutoConfigurator(
            context.config.autoconfig,
            RetrievalSettings(retrieval.top_k, retrieval.similarity_threshold),
        )
        stored = self.data.get("messages") or []
        self._history: list[ConversationTurn] = [
            t for t in stored if isinstance(t, ConversationTurn)
        ]
        self._response_times: list[float] = [
            t.response_time for t in self._history if t.role is Role.ASSISTANT and not t.is_error
        ]

    # -- settings ----------------------------------------------------------

    @property
    def use_knowledge_base(self) -> bool:
        return bool(self.data.get("use_knowledge_base", True))

    def required_inputs(self) -> tuple[Expect, ...]:
        if self.use_knowledge_base:
            return (Expect.CREDENTIALS, Expect.VECTORS)
        return (Expect.CREDENTIALS,)

    def _provider(self) -> ProviderConfig:
        provider = self.provider_config()
        if provider is None:
            raise ConfigMissingError(f"Stage {self.id!r} has no provider credentials")
        return provider

    def chat_model(self, provider: ProviderConfig) -> str:
        """Configured chat model, else the first non-embedding model of the provider."""
        configured = self.settings(self.context.config.chat).model
        if configured:
            return configured
        model = select_chat_model(
            provider.available_models, self.context.config.embedding.model_pattern
        )
        if model is None:
            raise ConfigMissingError(f"Stage {self.id!r} has no chat model available")
        return model

    def corpus(self) -> tuple[VectorizedFile, ...]:
        output = self.context.resolver.resolve(self.id, Expect.VECTORS)
        if isinstance(output, VectorsOutput):
            return output.vectorized_files
        return ()

    async def wait_for_corpus(self, timeout: float) -> tuple[VectorizedFile, ...]:
        """Poll the embed stages for a corpus for up to ``timeout`` seconds."""
        if timeout <= 0:
            return ()
        try:
            output = await self.context.resolver.wait_for(self.id, Expect.VECTORS, timeout=timeout)
        except UpstreamDataAbsent as e:
            logger.info("Stage %s: %s", self.id, e)
            return ()
        return output.vectorized_files if isinstance(output, VectorsOutput) else ()

    def retrieval_settings(self, corpus: tuple[VectorizedFile, ...]) -> RetrievalSettings:
        config = self.settings(self.context.config.retrieval)
        current = RetrievalSettings(config.top_k, config.similarity_threshold)
        if not config.auto_configure or not corpus:
            return current
        return self._autoconfig.apply(corpus, current)

    def _query_embedder(
        self, provider: ProviderConfig, corpus: tuple[VectorizedFile, ...]
    ) -> BaseEmbedder | None:
        config = self.context.config.embedding
        # queries must be embedded with the model the corpus was built with
        model = next((vf.model for vf in corpus if vf.model), "")
        try:
            model = model or embedding_model_for(config.model, provider, config.model_pattern)
        except ConfigMissingError:
            return None
        return self.context.registry.create(
            "embedding", DEFAULT_BACKEND, provider, model, config, self.context.client
        )

    # -- run ---------------------------------------------------------------

    async def execute(self) -> Mapping[str, Any]:
        provider = self._provider()
        model = self.chat_model(provider)
        output: dict[str, Any] = {"chat_model": model, "ready": True}
        if self.use_knowledge_base:
            vectors: VectorsOutput = self.context.resolver.require(self.id, Expect.VECTORS)
            corpus = vectors.vectorized_files
            settings = self.retrieval_settings(corpus)
            output.update(
                corpus_files=len(corpus),
                corpus_chunks=corpus_size(corpus),
                retrieval={
                    "top_k": settings.top_k,
                    "similarity_threshold": settings.similarity_threshold,
                },
            )
        return output

    # -- conversation ------------------------------------------------------

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    async def ask(self, query: str) -> ConversationTurn:
        """Answer ``query``, appending the exchange to the conversation.

        Provider failures and an empty corpus are recorded as error turns.

        Raises:
            ConfigMissingError: If credentials or a chat model are missing.
        """
        provider = self._provider()
        model = self.chat_model(provider)
        chat_config = self.settings(self.context.config.chat)
        composer = ChatComposer(
            self.context.registry.create(
                "chat", DEFAULT_BACKEND, provider, self.context.client, chat_config.timeout_seconds
            ),
            PromptBuilder(chat_config.template_dir),
            chat_config,
        )

        retrieval: list[RetrievalResult] = []
        if self.use_knowledge_base:
            corpus = self.corpus() or await self.wait_for_corpus(chat_config.knowledge_wait_seconds)
            settings = self.retrieval_settings(corpus)
            config = self.context.config.retrieval
            engine = RetrievalEngine(
                self._query_embedder(provider, corpus),
                adaptive_scale=config.adaptive_scale,
                adaptive_floor=config.adaptive_floor,
            )
            try:
                retrieval = await engine.retrieve(
                    query,
                    corpus,
                    top_k=settings.top_k,
                    similarity_threshold=settings.similarity_threshold,
                )
            except (NoRelevantContentError, EmbeddingError) as e:
                logger.warning("Retrieval for stage %s failed: %s", self.id, e)
                turn = composer.record_failure(query, str(e), self._history)
                self._publish()
                return turn

        turn = await composer.converse(query, retrieval, self._history, model=model)
        if not turn.is_error:
            self._response_times.append(turn.response_time)
        self._publish()
        return turn

    def clear_history(self) -> None:
        self._history.clear()
        self._response_times.clear()
        self._publish()
        logger.info("Cleared conversation of stage %s", self.id)

    def stats(self) -> dict[str, Any]:
        times = self._response_times
        return {
            "total_messages": len(self._history),
            "tokens_used": sum(t.tokens_used for t in self._history),
            "average_response_time": sum(times) / len(times) if times else 0.0,
        }

    def _publish(self) -> None:
        self.commit({"messages": list(self._history), **self.stats()})
