"""Producer stages with no upstream payload: repository fetch, manual text, manual trigger."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from flowrag.exceptions import ConfigMissingError
from flowrag.fetch import FetchResult, detect_platform
from flowrag.stages.base import BaseStage, Fetchable
from flowrag.types import SourceFile, StageKind

if TYPE_CHECKING:
    from collections.abc import Mapping

    from flowrag.fetch.base import BaseFetcher

__all__ = ["ManualExecuteStage", "SourceFetchStage", "TextStage"]

logger = logging.getLogger(__name__)


class SourceFetchStage(BaseStage, Fetchable):
    """Fetches the files of a repository or local directory.

    Node data::

        source = "https://github.com/octo/demo"   # or a local path
        platform = "github"                        # optional, guessed from source
        ref = "main"                               # optional, [fetch] ref
        token = "..."                              # optional, else $[fetch].api_key_env
    """

    kind = StageKind.SOURCE_FETCH.value

    def _fetcher(self) -> BaseFetcher:
        config = self.settings(self.context.config.fetch)
        source = str(self.data.get("source") or "")
        platform = str(self.data.get("platform") or detect_platform(source, config.platform))
        token = str(self.data.get("token") or "")
        if not token and config.api_key_env:
            token = os.environ.get(config.api_key_env, "")
        return self.context.registry.create("fetch", platform, config, self.context.client, token)

    async def fetch_files(self) -> FetchResult:
        source = str(self.data.get("source") or "").strip()
        if not source:
            raise ConfigMissingError(f"Stage {self.id!r} has no source to fetch")
        ref = str(self.data.get("ref") or "")
        return await self._fetcher().fetch(source, ref)

    async def execute(self) -> Mapping[str, Any]:
        result = await self.fetch_files()
        return {
            "files": list(result.files),
            "file_count": len(result.files),
            "fetch_errors": [{"path": path, "error": msg} for path, msg in result.errors],
            "skipped": result.skipped,
        }


class TextStage(BaseStage, Fetchable):
    """Manually entered text, exposed downstream as a single file."""

    kind = StageKind.TEXT.value

    def _text(self) -> str:
        text = self.data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ConfigMissingError(f"Stage {self.id!r} has no text")
        return text

    async def fetch_files(self) -> FetchResult:
        text = self._text()
        file = SourceFile(
            name="text_input.txt", path="text_input.txt", content=text, size=len(text)
        )
        return FetchResult(files=(file,))

    async def execute(self) -> Mapping[str, Any]:
        result = await self.fetch_files()
        return {"char_count": sum(f.size for f in result.files), "file_count": len(result.files)}


class ManualExecuteStage(BaseStage):
    """Starts a pipeline: running it only triggers the connected stages."""

    kind = StageKind.MANUAL_EXECUTE.value

    async def execute(self) -> Mapping[str, Any]:
        now = datetime.now(UTC).isoformat()
        logger.info("Manual trigger %s fired", self.id)
        return {"last_triggered": now}
