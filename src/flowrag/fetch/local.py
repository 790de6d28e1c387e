"""Local directory fetcher."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from flowrag.exceptions import FetchError
from flowrag.fetch.base import BaseFetcher, FetchResult, TreeEntry

if TYPE_CHECKING:
    from flowrag.config import FetchConfig

__all__ = ["LocalFetcher"]

logger = logging.getLogger(__name__)


class LocalFetcher(BaseFetcher):
    """Reads files under a local directory, skipping hidden paths."""

    def __init__(self, config: FetchConfig, client: object = None, token: str = "") -> None:
        super().__init__(config)

    async def fetch(self, source: str, ref: str = "") -> FetchResult:
        root = Path(source).expanduser()
        if not root.is_dir():
            raise FetchError(f"Not a directory: {root}")

        entries: list[TreeEntry] = []
        for path in sorted(root.rglob("*")):
            relative = path.relative_to(root)
            if any(part.startswith(".") for part in relative.parts) or not path.is_file():
                continue
            entries.append(TreeEntry(path=relative.as_posix(), size=path.stat().st_size))
        logger.info("Listed %d files under %s", len(entries), root)

        async def read(entry: TreeEntry) -> str:
            target = root / entry.path
            try:
                return target.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                logger.warning("UTF-8 decode failed for %s, retrying with replacement", entry.path)
                return target.read_bytes().decode("utf-8", errors="replace")
            except OSError as e:
                raise FetchError(f"Cannot read {target}: {e}") from e

        return await self._read_all(entries, read)
