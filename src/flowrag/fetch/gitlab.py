"""GitLab fetcher: paginated repository tree, raw file API per file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from flowrag.exceptions import FetchError
from flowrag.fetch.base import BaseFetcher, FetchResult, TreeEntry, parse_repo_url
from flowrag.http import auth_headers, get_response, get_text

if TYPE_CHECKING:
    import httpx

    from flowrag.config import FetchConfig

__all__ = ["GitLabFetcher"]

logger = logging.getLogger(__name__)

_DEFAULT_API = "https://gitlab.com/api/v4"
_PER_PAGE = 100
# Guard against a server that never stops paginating
_MAX_PAGES = 200


class GitLabFetcher(BaseFetcher):
    """Fetches a GitLab project at a ref.

    Tree pages are followed through the ``X-Next-Page`` header. GitLab
    does not report blob sizes in the tree, so the size cap is applied
    after download.
    """

    def __init__(self, config: FetchConfig, client: httpx.AsyncClient, token: str = "") -> None:
        super().__init__(config)
        self._client = client
        self._api = (config.endpoint or _DEFAULT_API).rstrip("/")
        self._headers = auth_headers(token)

    async def _list_tree(self, project: str, ref: str) -> list[TreeEntry]:
        entries: list[TreeEntry] = []
        page = "1"
        for _ in range(_MAX_PAGES):
            response = await get_response(
                self._client,
                f"{self._api}/projects/{project}/repository/tree",
                error_cls=FetchError,
                headers=self._headers,
                params={"recursive": "true", "per_page": _PER_PAGE, "page": page, "ref": ref},
                timeout=self._config.timeout_seconds,
            )
            try:
                items = response.json()
            except ValueError as e:
                raise FetchError(f"Invalid JSON from {response.request.url}: {e}") from e
            if not isinstance(items, list):
                raise FetchError(f"Unexpected tree response for project {project}")
            entries.extend(
                TreeEntry(path=item["path"])
                for item in items
                if item.get("type") == "blob" and item.get("path")
            )
            page = response.headers.get("x-next-page", "")
            if not page:
                break
        else:
            logger.warning("Stopped listing %s after %d pages", project, _MAX_PAGES)
        return entries

    async def fetch(self, source: str, ref: str = "") -> FetchResult:
        repo = parse_repo_url(source)
        ref = ref or self._config.ref
        project = quote(repo.full_name, safe="")

        entries = await self._list_tree(project, ref)
        logger.info("Listed %d files in %s@%s", len(entries), repo.full_name, ref)

        async def read(entry: TreeEntry) -> str:
            return await get_text(
                self._client,
                f"{self._api}/projects/{project}/repository/files/{quote(entry.path, safe='')}/raw",
                error_cls=FetchError,
                headers=self._headers,
                params={"ref": ref},
                timeout=self._config.timeout_seconds,
            )

        return await self._read_all(entries, read)
