"""Abstract base class for source fetchers."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from flowrag.exceptions import FetchError
from flowrag.fetch.policy import FilePolicy
from flowrag.types import SourceFile

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from flowrag.config import FetchConfig

__all__ = ["BaseFetcher", "FetchResult", "RepoRef", "TreeEntry", "parse_repo_url"]

logger = logging.getLogger(__name__)

_REPO_URL_RE = re.compile(
    r"^(?:https?://)?(?:[^/@]+@)?"  # scheme, or user@ for ssh
    r"([^/:]+)[/:]"  # host
    r"([^/]+(?:/[^/]+)*?)/([^/]+?)(?:\.git)?/?$"  # owner (with subgroups), repo
)
_BROWSE_SUFFIX_RE = re.compile(r"/(?:-/)?(?:tree|blob)/")


@dataclass(frozen=True)
class RepoRef:
    """A hosted repository. On GitLab ``owner`` may contain subgroups."""

    host: str
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_repo_url(url: str) -> RepoRef:
    """Split a repository URL into host, owner and repository name.

    Accepts ``https://github.com/octo/demo``, ``github.com/octo/demo.git``
    and ``git@gitlab.com:group/sub/demo.git``.

    Raises:
        FetchError: If the URL does not name a repository.
    """
    # drop "/tree/<ref>" and "/-/blob/<ref>/..." browser suffixes
    url = _BROWSE_SUFFIX_RE.split(url.strip(), maxsplit=1)[0]
    match = _REPO_URL_RE.match(url)
    if match is None:
        raise FetchError(f"Invalid repository URL: {url!r}")
    host, owner, repo = match.groups()
    return RepoRef(host=host.lower(), owner=owner, repo=repo)


@dataclass(frozen=True)
class TreeEntry:
    """A file listed by a repository tree; ``size`` is 0 when the host omits it."""

    path: str
    size: int = 0


@dataclass(frozen=True)
class FetchResult:
    files: tuple[SourceFile, ...] = ()
    errors: tuple[tuple[str, str], ...] = ()
    skipped: int = 0


class BaseFetcher(ABC):
    """Base class for all source fetchers.

    Subclasses list the files of a source and read each one; the base
    class applies the file policy and reads with bounded concurrency,
    recording per-file failures instead of failing the whole fetch.
    """

    def __init__(self, config: FetchConfig) -> None:
        self._config = config
        self._policy = FilePolicy.from_config(config)

    @abstractmethod
    async def fetch(self, source: str, ref: str = "") -> FetchResult:
        """Fetch every accepted file of ``source``.

        Args:
            source: Repository URL or local directory.
            ref: Branch, tag or commit; empty uses the configured default.

        Returns:
            Fetched files plus per-file errors.

        Raises:
            FetchError: If the source cannot be listed at all.
        """

    async def _read_all(
        self,
        entries: Sequence[TreeEntry],
        read: Callable[[TreeEntry], Awaitable[str]],
    ) -> FetchResult:
        accepted = [e for e in entries if self._policy.accepts(e.path, e.size)]
        semaphore = asyncio.Semaphore(max(self._config.concurrency, 1))

        async def read_one(entry: TreeEntry) -> SourceFile | tuple[str, str]:
            async with semaphore:
                try:
                    content = await read(entry)
                except FetchError as e:
                    logger.warning("Failed to fetch %s: %s", entry.path, e)
                    return (entry.path, str(e))
            size = len(content.encode("utf-8"))
            if size > self._policy.max_file_size:
                return (entry.path, f"{size} bytes exceeds {self._policy.max_file_size}")
            return SourceFile(
                name=posixpath.basename(entry.path),
                path=entry.path,
                content=content,
                size=size,
            )

        outcomes = await asyncio.gather(*(read_one(e) for e in accepted))
        files = tuple(o for o in outcomes if isinstance(o, SourceFile))
        errors = tuple(o for o in outcomes if isinstance(o, tuple))
        logger.info(
            "Fetched %d file(s), %d failed, %d skipped by policy",
            len(files),
            len(errors),
            len(entries) - len(accepted),
        )
        return FetchResult(files=files, errors=errors, skipped=len(entries) - len(accepted))
