"""Abstract base class for source file parsers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowrag.config import ParseConfig
    from flowrag.types import SourceFile

__all__ = ["BaseParser"]

logger = logging.getLogger(__name__)


class BaseParser(ABC):
    """Base class for all source file parsers.

    Subclasses must implement ``parse`` and ``supported_formats``.
    The ``can_parse`` helper checks format membership.
    """

    @abstractmethod
    def parse(self, file: SourceFile, config: ParseConfig) -> SourceFile:
        """Normalize a fetched file.

        Args:
            file: File as produced by a fetch or text stage.
            config: Parse settings.

        Returns:
            A new SourceFile with normalized content and its detected format.

        Raises:
            ParseError: If the file cannot be parsed.
        """

    @abstractmethod
    def supported_formats(self) -> frozenset[str]:
        """Return the set of ``FileFormat`` values this parser handles."""

    def can_parse(self, file_format: str) -> bool:
        """Check whether this parser can handle the given format."""
        return file_format in self.supported_formats()
