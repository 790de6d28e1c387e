"""OpenAI-compatible chat completion provider.

Works with any server implementing the OpenAI /v1/chat/completions API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flowrag.chat.base import BaseChatProvider, ChatCompletion
from flowrag.exceptions import ChatError
from flowrag.http import api_base, auth_headers, post_json

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import httpx

    from flowrag.types import ProviderConfig

__all__ = ["OpenAICompatChat"]

logger = logging.getLogger(__name__)


class OpenAICompatChat(BaseChatProvider):
    """Chat provider posting to ``{endpoint}/chat/completions``."""

    def __init__(
        self,
        provider: ProviderConfig,
        client: httpx.AsyncClient,
        timeout: float | None = None,
    ) -> None:
        self._url = f"{api_base(provider.endpoint)}/chat/completions"
        self._headers = auth_headers(provider.credential)
        self._client = client
        self._timeout = timeout

    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> ChatCompletion:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [dict(m) for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = await post_json(
            self._client,
            self._url,
            payload,
            error_cls=ChatError,
            headers=self._headers,
            timeout=self._timeout,
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ChatError(
                f"Unexpected response format from {self._url}: missing 'choices[0].message.content'"
            ) from e

        usage = data.get("usage") or {}
        tokens = usage.get("total_tokens", 0) if isinstance(usage, dict) else 0
        logger.debug(
            "Chat completion from %s: %d chars, %s tokens", model, len(content or ""), tokens
        )
        return ChatCompletion(
            content=content or "",
            tokens_used=tokens if isinstance(tokens, int) else 0,
            model=str(data.get("model") or model),
        )
