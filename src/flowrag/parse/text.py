"""Text file parser — normalization with JSON and YAML validation.

Strips the BOM, trims trailing whitespace, optionally removes empty lines
or collapses runs of whitespace, validates (and pretty-prints) JSON and
checks that YAML loads. Binary and oversized files are rejected with
``ParseError`` so the parse stage can record them per file and carry on
with the rest.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from typing import TYPE_CHECKING

import yaml  # type: ignore[import-untyped]

from flowrag.exceptions import ParseError
from flowrag.parse.base import BaseParser
from flowrag.parse.detect import ContentClass, FileFormat, detect_file_type

if TYPE_CHECKING:
    from flowrag.config import ParseConfig
    from flowrag.types import SourceFile

__all__ = ["TextParser"]

logger = logging.getLogger(__name__)

# Matches 3+ consecutive blank lines (to collapse to 2)
_MULTI_BLANK_RE = re.compile(r"\n{3,}")
# Runs of spaces/tabs inside a line (indentation is kept)
_INLINE_SPACE_RE = re.compile(r"(?<=\S)[ \t]{2,}")


class TextParser(BaseParser):
    """Parser for every text-like format the fetch stage can produce."""

    def parse(self, file: SourceFile, config: ParseConfig) -> SourceFile:
        """Normalize ``file`` according to ``config``.

        Raises:
            ParseError: If the file is binary, oversized, or invalid JSON or YAML.
        """
        max_size = config.max_file_size_kb * 1024
        size = file.size or len(file.content)
        if size > max_size:
            msg = f"{file.path} ({size} bytes) exceeds maximum size ({max_size} bytes)"
            raise ParseError(msg)

        info = detect_file_type(file.path, file.content)
        if info.content_class is ContentClass.BINARY:
            raise ParseError(f"{file.path} looks like a binary file")

        content = file.content
        if content.startswith("\ufeff"):
            content = content[1:]

        if info.format is FileFormat.JSON_FORMAT:
            content = _normalize_json(content, file.path, pretty=config.pretty_json)
        elif info.format is FileFormat.YAML:
            _check_yaml(content, file.path)
            content = _normalize_whitespace(content, remove_empty_lines=False, collapse=False)
        else:
            content = _normalize_whitespace(
                content,
                remove_empty_lines=config.remove_empty_lines,
                collapse=config.normalize_whitespace,
            )

        logger.debug("Parsed %s: %d → %d chars", file.path, len(file.content), len(content))
        return replace(file, content=content, size=len(content), format=info.format.value)

    def supported_formats(self) -> frozenset[str]:
        """Return every non-binary format."""
        return frozenset(
            f.value for f in FileFormat if f not in (FileFormat.IMAGE, FileFormat.ARCHIVE)
        )


# ── Module-level helpers ────────────────────────────────────────────


def _normalize_json(content: str, path: str, *, pretty: bool) -> str:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}") from e
    if not pretty:
        return content.strip()
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def _check_yaml(content: str, path: str) -> None:
    try:
        for _ in yaml.safe_load_all(content):
            pass
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML in {path}: {e}") from e


def _normalize_whitespace(text: str, *, remove_empty_lines: bool, collapse: bool) -> str:
    """Normalize whitespace in text.

    - Strip trailing whitespace from each line
    - Optionally collapse runs of spaces/tabs to one space
    - Drop empty lines, or collapse 3+ consecutive blank lines to 2
    - Strip leading/trailing whitespace from the whole document
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    if collapse:
        lines = [_INLINE_SPACE_RE.sub(" ", line) for line in lines]
    if remove_empty_lines:
        lines = [line for line in lines if line.strip()]
    text = "\n".join(lines)
    text = _MULTI_BLANK_RE.sub("\n\n", text)
    return text.strip()
