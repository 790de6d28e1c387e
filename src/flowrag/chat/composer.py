"""Chat completion composer.

Builds a bounded prompt (system instructions with retrieved context, a
sliding window of recent turns, the new query), submits it to the chat
provider and appends the exchange to the conversation history.

The history is append-only. Failed exchanges are kept as ``is_error``
assistant turns so the conversation is a complete audit trail, but they
are never replayed to the provider.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from flowrag.exceptions import ProviderRequestError
from flowrag.types import ConversationTurn, Role

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowrag.chat.base import BaseChatProvider
    from flowrag.chat.prompt import PromptBuilder
    from flowrag.config import ChatConfig
    from flowrag.types import RetrievalResult

__all__ = ["ChatComposer"]

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class ChatComposer:
    """Composes prompts and records conversation turns.

    Usage::

        composer = ChatComposer(provider, PromptBuilder(), config.chat)
        turn = await composer.converse(query, results, history, model="gpt-4o-mini")
    """

    def __init__(
        self,
        provider: BaseChatProvider,
        prompts: PromptBuilder,
        config: ChatConfig,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._config = config

    def build_messages(
        self,
        query: str,
        retrieval: Sequence[RetrievalResult],
        history: Sequence[ConversationTurn],
    ) -> list[dict[str, str]]:
        """Build the provider message list.

        One system message, then the non-error turns among the last
        ``history_window`` turns, then the query.
        """
        system = self._prompts.render_system(
            self._config.system_prompt, retrieval, self._config.context_delimiter
        )
        messages = [{"role": "system", "content": system}]

        window = self._config.history_window
        recent = [t for t in history[-window:] if not t.is_error] if window > 0 else []
        messages.extend({"role": t.role.value, "content": t.content} for t in recent)

        messages.append({"role": Role.USER.value, "content": query})
        return messages

    async def converse(
        self,
        query: str,
        retrieval: Sequence[RetrievalResult],
        history: list[ConversationTurn],
        *,
        model: str,
    ) -> ConversationTurn:
        """Submit ``query`` and append the exchange to ``history``.

        Provider failures are not raised: they are recorded as an error
        turn, which is returned.

        Returns:
            The assistant turn appended to ``history``.
        """
        messages = self.build_messages(query, retrieval, history)
        user_turn = ConversationTurn(role=Role.USER, content=query, timestamp=_now())

        started = time.monotonic()
        try:
            completion = await self._provider.complete(
                messages,
                model=model,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
        except ProviderRequestError as e:
            logger.error("Chat request failed: %s", e)
            history.append(user_turn)
            return self._append_error(history, str(e))

        elapsed = time.monotonic() - started
        reply = ConversationTurn(
            role=Role.ASSISTANT,
            content=completion.content,
            timestamp=_now(),
            relevant_chunks=tuple(retrieval),
            response_time=elapsed,
            tokens_used=completion.tokens_used,
        )
        history.append(user_turn)
        history.append(reply)
        logger.info(
            "Chat reply from %s in %.2fs (%d tokens, %d context chunks)",
            model,
            elapsed,
            completion.tokens_used,
            len(retrieval),
        )
        return reply

    def record_failure(
        self, query: str, error: str, history: list[ConversationTurn]
    ) -> ConversationTurn:
        """Append ``query`` and an error turn without calling the provider."""
        history.append(ConversationTurn(role=Role.USER, content=query, timestamp=_now()))
        return self._append_error(history, error)

    @staticmethod
    def _append_error(history: list[ConversationTurn], error: str) -> ConversationTurn:
        turn = ConversationTurn(
            role=Role.ASSISTANT,
            content=f"Error: {error}",
            timestamp=_now(),
            is_error=True,
        )
        history.append(turn)
        return turn
