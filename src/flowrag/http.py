"""Shared HTTP helpers for provider clients.

All provider calls go through one ``httpx.AsyncClient`` owned by the
pipeline runtime. These helpers map transport and status failures onto
the caller's :class:`~flowrag.exceptions.ProviderRequestError` subclass.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

    from flowrag.exceptions import ProviderRequestError

__all__ = ["api_base", "auth_headers", "get_json", "get_response", "get_text", "post_json"]

logger = logging.getLogger(__name__)

_ENDPOINT_SUFFIXES = ("/chat/completions", "/embeddings", "/models")


def api_base(endpoint: str) -> str:
    """Reduce an endpoint to its API base.

    ``https://api.openai.com/v1/chat/completions`` → ``https://api.openai.com/v1``
    """
    base = endpoint.strip().rstrip("/")
    for suffix in _ENDPOINT_SUFFIXES:
        if base.endswith(suffix):
            return base[: -len(suffix)]
    return base


def auth_headers(credential: str, scheme: str = "Bearer") -> dict[str, str]:
    if not credential:
        return {}
    return {"Authorization": f"{scheme} {credential}"}


def _raise_for_status(
    response: httpx.Response, error_cls: type[ProviderRequestError]
) -> None:
    if response.is_success:
        return
    body = response.text[:200]
    raise error_cls(
        f"{response.request.method} {response.request.url} returned "
        f"HTTP {response.status_code}: {body}",
        status_code=response.status_code,
    )


async def _send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    error_cls: type[ProviderRequestError],
    **kwargs: Any,
) -> httpx.Response:
    if kwargs.get("timeout") is None:
        # None would disable the client timeout entirely
        kwargs.pop("timeout", None)
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise error_cls(f"{method} {url} timed out: {e}") from e
    except httpx.RequestError as e:
        raise error_cls(f"{method} {url} failed: {e}") from e
    _raise_for_status(response, error_cls)
    return response


def _decode(response: httpx.Response, error_cls: type[ProviderRequestError]) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise error_cls(f"Invalid JSON from {response.request.url}: {e}") from e


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: Mapping[str, Any],
    *,
    error_cls: type[ProviderRequestError],
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> Any:
    """POST a JSON body and return the decoded JSON response.

    Raises:
        ProviderRequestError: ``error_cls`` on network failure, non-2xx
            status or an undecodable body.
    """
    logger.debug("POST %s", url)
    response = await _send(
        client, "POST", url, error_cls, json=dict(payload), headers=headers, timeout=timeout
    )
    return _decode(response, error_cls)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    error_cls: type[ProviderRequestError],
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> Any:
    """GET a URL and return the decoded JSON response."""
    response = await get_response(
        client, url, error_cls=error_cls, headers=headers, params=params, timeout=timeout
    )
    return _decode(response, error_cls)


async def get_response(
    client: httpx.AsyncClient,
    url: str,
    *,
    error_cls: type[ProviderRequestError],
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> httpx.Response:
    logger.debug("GET %s", url)
    return await _send(
        client, "GET", url, error_cls, headers=headers, params=params, timeout=timeout
    )


async def get_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    error_cls: type[ProviderRequestError],
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> str:
    """GET a URL and return the body as text."""
    response = await get_response(
        client, url, error_cls=error_cls, headers=headers, params=params, timeout=timeout
    )
    return response.text
