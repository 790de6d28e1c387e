"""Custom exception hierarchy for flowrag."""

from __future__ import annotations

__all__ = [
    "ChatError",
    "ChunkError",
    "ConfigError",
    "ConfigMissingError",
    "EmbeddingError",
    "FetchError",
    "FlowragError",
    "GraphError",
    "NoRelevantContentError",
    "ParseError",
    "PluginError",
    "ProviderRequestError",
    "StageError",
    "UpstreamDataAbsent",
]


class FlowragError(Exception):
    """Base exception for all flowrag errors."""


class ConfigError(FlowragError):
    """Raised when configuration loading or validation fails."""


class ConfigMissingError(ConfigError):
    """Raised when a run needs a credential, endpoint or model that is not set."""


class GraphError(FlowragError):
    """Raised when the stage graph is malformed or a stage id is unknown."""


class UpstreamDataAbsent(FlowragError):
    """Raised when a stage's prerequisite producer has not written its output yet.

    This is a deferred-readiness state, not a failure: the consumer is
    expected to retry on its next trigger or poll.
    """


class ProviderRequestError(FlowragError):
    """Raised when a call to an external provider fails (non-2xx or network error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(ProviderRequestError):
    """Raised when embedding generation fails."""


class ChatError(ProviderRequestError):
    """Raised when a chat completion request fails."""


class FetchError(ProviderRequestError):
    """Raised when fetching source files from a repository host fails."""


class NoRelevantContentError(FlowragError):
    """Raised when retrieval has nothing to return (empty corpus)."""


class ParseError(FlowragError):
    """Raised when a source file cannot be parsed."""


class ChunkError(FlowragError):
    """Raised when chunking operations fail."""


class PluginError(FlowragError):
    """Raised when provider or stage registration fails."""


class StageError(FlowragError):
    """Raised when a stage run fails for a reason outside the other categories."""
