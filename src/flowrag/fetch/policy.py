"""Which repository files are worth fetching."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING

from flowrag.parse.detect import FileFormat, detect_file_type

if TYPE_CHECKING:
    from flowrag.config import FetchConfig

__all__ = ["FilePolicy"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilePolicy:
    """Extension allow/deny lists, a size cap and optional path prefixes.

    An empty ``allowed_extensions`` allows every extension not denied.
    Extension-less files are accepted only when their name is a known
    repository file such as ``README`` or ``Makefile``.
    """

    allowed_extensions: frozenset[str] = frozenset()
    denied_extensions: frozenset[str] = frozenset()
    max_file_size: int = 500 * 1024
    include_paths: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: FetchConfig) -> FilePolicy:
        return cls(
            allowed_extensions=frozenset(e.lower() for e in config.allowed_extensions),
            denied_extensions=frozenset(e.lower() for e in config.denied_extensions),
            max_file_size=config.max_file_size_kb * 1024,
            include_paths=tuple(p.strip("/") for p in config.include_paths if p.strip("/")),
        )

    def rejection(self, path: str, size: int = 0) -> str | None:
        """Why ``path`` would be skipped, or ``None`` if it is accepted."""
        if self.include_paths and not any(
            path == prefix or path.startswith(prefix + "/") for prefix in self.include_paths
        ):
            return "outside included paths"
        ext = posixpath.splitext(path)[1].lower()
        if ext in self.denied_extensions:
            return f"denied extension {ext}"
        if not ext:
            if detect_file_type(path).format is FileFormat.UNKNOWN:
                return "no extension"
        elif self.allowed_extensions and ext not in self.allowed_extensions:
            return f"extension {ext} not allowed"
        if size > self.max_file_size:
            return f"{size} bytes exceeds {self.max_file_size}"
        return None

    def accepts(self, path: str, size: int = 0) -> bool:
        reason = self.rejection(path, size)
        if reason is not None:
            logger.debug("Skipping %s: %s", path, reason)
            return False
        return True
