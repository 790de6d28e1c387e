"""Chat engine — prompt composition and chat completion providers."""

from flowrag.chat.base import BaseChatProvider, ChatCompletion, select_chat_model
from flowrag.chat.composer import ChatComposer
from flowrag.chat.openai_compat import OpenAICompatChat
from flowrag.chat.prompt import PromptBuilder, format_context
from flowrag.registry import default_registry

__all__ = [
    "BaseChatProvider",
    "ChatComposer",
    "ChatCompletion",
    "OpenAICompatChat",
    "PromptBuilder",
    "format_context",
    "select_chat_model",
]

# Register built-in chat providers
default_registry.register(
    "chat",
    "openai_compat",
    lambda provider, client, timeout=None: OpenAICompatChat(provider, client, timeout),
)
