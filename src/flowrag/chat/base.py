"""Abstract base class for chat completion providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from flowrag.embed.base import is_embedding_model

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

__all__ = ["BaseChatProvider", "ChatCompletion", "select_chat_model"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatCompletion:
    """A provider reply."""

    content: str
    tokens_used: int = 0
    model: str = ""


def select_chat_model(models: Iterable[str], embedding_pattern: str = "embed") -> str | None:
    """Pick the first model that is not an embedding model, in catalogue order."""
    for model_id in models:
        if not is_embedding_model(model_id, embedding_pattern):
            return model_id
    return None


class BaseChatProvider(ABC):
    """Base class for chat completion providers."""

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> ChatCompletion:
        """Request a completion for ``messages``.

        Args:
            messages: ``{"role", "content"}`` messages, system message first.
            model: Model id.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the reply.

        Returns:
            The assistant reply and token usage.

        Raises:
            ChatError: If the request fails or the response is malformed.
        """
