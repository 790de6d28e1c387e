"""GitHub fetcher: git trees API listing, raw contents per file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from flowrag.exceptions import FetchError
from flowrag.fetch.base import BaseFetcher, FetchResult, TreeEntry, parse_repo_url
from flowrag.http import auth_headers, get_json, get_text

if TYPE_CHECKING:
    import httpx

    from flowrag.config import FetchConfig

__all__ = ["GitHubFetcher"]

logger = logging.getLogger(__name__)

_DEFAULT_API = "https://api.github.com"


class GitHubFetcher(BaseFetcher):
    """Fetches a GitHub repository at a ref.

    Lists every blob with ``GET /repos/{owner}/{repo}/git/trees/{ref}?recursive=1``
    and reads each accepted file through the contents API with the raw
    media type.
    """

    def __init__(self, config: FetchConfig, client: httpx.AsyncClient, token: str = "") -> None:
        super().__init__(config)
        self._client = client
        self._api = (config.endpoint or _DEFAULT_API).rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            **auth_headers(token, scheme="token"),
        }

    async def fetch(self, source: str, ref: str = "") -> FetchResult:
        repo = parse_repo_url(source)
        ref = ref or self._config.ref
        base = f"{self._api}/repos/{repo.owner}/{repo.repo}"

        tree = await get_json(
            self._client,
            f"{base}/git/trees/{quote(ref, safe='')}",
            error_cls=FetchError,
            headers=self._headers,
            params={"recursive": "1"},
            timeout=self._config.timeout_seconds,
        )
        if not isinstance(tree, dict) or not isinstance(tree.get("tree"), list):
            raise FetchError(f"Unexpected tree response for {repo.full_name}@{ref}")
        if tree.get("truncated"):
            logger.warning("Tree listing for %s@%s was truncated by GitHub", repo.full_name, ref)

        entries = [
            TreeEntry(path=item["path"], size=int(item.get("size") or 0))
            for item in tree["tree"]
            if item.get("type") == "blob" and item.get("path")
        ]
        logger.info("Listed %d files in %s@%s", len(entries), repo.full_name, ref)

        raw_headers = {**self._headers, "Accept": "application/vnd.github.raw"}

        async def read(entry: TreeEntry) -> str:
            return await get_text(
                self._client,
                f"{base}/contents/{quote(entry.path)}",
                error_cls=FetchError,
                headers=raw_headers,
                params={"ref": ref},
                timeout=self._config.timeout_seconds,
            )

        return await self._read_all(entries, read)
