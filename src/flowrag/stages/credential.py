"""Credential stage: provider endpoint, API key and model discovery."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from flowrag.exceptions import ConfigMissingError, ProviderRequestError
from flowrag.http import api_base, auth_headers, get_json
from flowrag.stages.base import BaseStage
from flowrag.types import StageKind

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = ["CredentialStage", "detect_provider", "list_models"]

logger = logging.getLogger(__name__)

_PROVIDER_HINTS = (
    ("blablador", "blablador"),
    ("juelich", "blablador"),
    ("openai.com", "openai"),
    ("anthropic.com", "anthropic"),
    ("huggingface.co", "huggingface"),
)
# Speech models are listed by some providers but serve neither chat nor embeddings
_EXCLUDED_MODEL_MARKERS = ("whisper", "tts")


def detect_provider(endpoint: str) -> str:
    """Name the provider behind ``endpoint``; ``"custom"`` when unknown."""
    lowered = endpoint.lower()
    for hint, provider in _PROVIDER_HINTS:
        if hint in lowered:
            return provider
    return "custom"


def list_models(payload: Any) -> list[str]:
    """Extract model ids from a ``GET /models`` response, minus speech models."""
    items = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []
    ids: list[str] = []
    for item in items:
        model_id = item.get("id") if isinstance(item, dict) else None
        if not isinstance(model_id, str) or not model_id:
            continue
        if any(marker in model_id for marker in _EXCLUDED_MODEL_MARKERS):
            continue
        ids.append(model_id)
    return ids


class CredentialStage(BaseStage):
    """Holds provider credentials and discovers the available models.

    The endpoint and key are read from node data (``api_key`` directly, or
    the environment variable named by ``api_key_env``). A run lists the
    provider's models so downstream embed and chat stages can pick one.
    """

    kind = StageKind.CREDENTIAL.value

    def _credentials(self) -> tuple[str, str]:
        endpoint = str(self.data.get("endpoint") or self.context.config.provider.endpoint)
        api_key = str(self.data.get("api_key") or "")
        if not api_key:
            env = str(self.data.get("api_key_env") or self.context.config.provider.api_key_env)
            api_key = os.environ.get(env, "") if env else ""
        if not endpoint:
            raise ConfigMissingError(f"Stage {self.id!r} has no endpoint")
        if not api_key:
            raise ConfigMissingError(f"Stage {self.id!r} has no API key")
        return endpoint, api_key

    async def execute(self) -> Mapping[str, Any]:
        endpoint, api_key = self._credentials()
        url = f"{api_base(endpoint)}/models"
        try:
            payload = await get_json(
                self.context.client,
                url,
                error_cls=ProviderRequestError,
                headers=auth_headers(api_key),
                timeout=self.context.config.fetch.timeout_seconds,
            )
        except ProviderRequestError:
            self.commit({"connected": False, "available_models": []})
            raise
        models = list_models(payload)
        provider = str(self.data.get("provider") or detect_provider(endpoint))
        logger.info("Provider %s at %s offers %d model(s)", provider, endpoint, len(models))
        return {
            "endpoint": endpoint,
            "api_key": api_key,
            "provider": provider,
            "available_models": models,
            "connected": True,
        }
