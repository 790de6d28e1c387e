"""File format detection by extension and content sniffing.

Detects the structural format of a fetched file, maps it to a parser
name, and classifies its content as code, prose, data or binary. The
content class drives both the parse stage and retrieval auto-configuration.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "ContentClass",
    "FileFormat",
    "FileInfo",
    "classify_content",
    "detect_file_type",
    "is_code",
    "looks_binary",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FileFormat(str, Enum):
    """Structural file format."""

    MARKDOWN = "markdown"
    RST = "rst"
    TEXT = "text"
    HTML = "html"
    XML = "xml"
    JSON_FORMAT = "json"
    YAML = "yaml"
    TOML = "toml"
    CSV = "csv"
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    C_SOURCE = "c_source"
    C_HEADER = "c_header"
    CPP = "cpp"
    RUST = "rust"
    GO = "go"
    JAVA = "java"
    SHELL = "shell"
    CSS = "css"
    SQL = "sql"
    IMAGE = "image"
    ARCHIVE = "archive"
    UNKNOWN = "unknown"


class ContentClass(str, Enum):
    """Semantic class of a file's content."""

    CODE = "code"
    PROSE = "prose"
    DATA = "data"
    BINARY = "binary"


# ---------------------------------------------------------------------------
# Detection result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileInfo:
    """Result of file type detection."""

    path: str
    format: FileFormat
    content_class: ContentClass
    parser_name: str


# ---------------------------------------------------------------------------
# Extension → FileFormat mapping
# ---------------------------------------------------------------------------

_EXTENSION_MAP: dict[str, FileFormat] = {
    ".md": FileFormat.MARKDOWN,
    ".markdown": FileFormat.MARKDOWN,
    ".rst": FileFormat.RST,
    ".txt": FileFormat.TEXT,
    ".text": FileFormat.TEXT,
    ".html": FileFormat.HTML,
    ".htm": FileFormat.HTML,
    ".xml": FileFormat.XML,
    ".json": FileFormat.JSON_FORMAT,
    ".yaml": FileFormat.YAML,
    ".yml": FileFormat.YAML,
    ".toml": FileFormat.TOML,
    ".csv": FileFormat.CSV,
    ".py": FileFormat.PYTHON,
    ".js": FileFormat.JAVASCRIPT,
    ".jsx": FileFormat.JAVASCRIPT,
    ".mjs": FileFormat.JAVASCRIPT,
    ".ts": FileFormat.TYPESCRIPT,
    ".tsx": FileFormat.TYPESCRIPT,
    ".c": FileFormat.C_SOURCE,
    ".h": FileFormat.C_HEADER,
    ".cpp": FileFormat.CPP,
    ".cc": FileFormat.CPP,
    ".hpp": FileFormat.CPP,
    ".rs": FileFormat.RUST,
    ".go": FileFormat.GO,
    ".java": FileFormat.JAVA,
    ".sh": FileFormat.SHELL,
    ".bash": FileFormat.SHELL,
    ".css": FileFormat.CSS,
    ".scss": FileFormat.CSS,
    ".sql": FileFormat.SQL,
    ".png": FileFormat.IMAGE,
    ".jpg": FileFormat.IMAGE,
    ".jpeg": FileFormat.IMAGE,
    ".gif": FileFormat.IMAGE,
    ".ico": FileFormat.IMAGE,
    ".zip": FileFormat.ARCHIVE,
    ".gz": FileFormat.ARCHIVE,
    ".tar": FileFormat.ARCHIVE,
}

# Extension-less files commonly found at a repository root.
_FILENAME_MAP: dict[str, FileFormat] = {
    "readme": FileFormat.MARKDOWN,
    "license": FileFormat.TEXT,
    "changelog": FileFormat.MARKDOWN,
    "makefile": FileFormat.SHELL,
    "dockerfile": FileFormat.SHELL,
}

_PROSE_FORMATS = frozenset({FileFormat.MARKDOWN, FileFormat.RST, FileFormat.TEXT, FileFormat.HTML})
_DATA_FORMATS = frozenset(
    {FileFormat.JSON_FORMAT, FileFormat.YAML, FileFormat.TOML, FileFormat.CSV, FileFormat.XML}
)
_BINARY_FORMATS = frozenset({FileFormat.IMAGE, FileFormat.ARCHIVE})

# Parser tags that mark a chunk as code regardless of its filename.
_CODE_PARSER_TAGS = frozenset({"code", "source", "python", "javascript", "typescript"})

# Max characters sniffed for NUL bytes.
_SNIFF_SIZE = 8000


def classify_content(file_format: FileFormat) -> ContentClass:
    """Map a structural format to its content class."""
    if file_format in _PROSE_FORMATS or file_format is FileFormat.UNKNOWN:
        return ContentClass.PROSE
    if file_format in _DATA_FORMATS:
        return ContentClass.DATA
    if file_format in _BINARY_FORMATS:
        return ContentClass.BINARY
    return ContentClass.CODE


def looks_binary(content: str) -> bool:
    """Return ``True`` if decoded content carries NUL characters."""
    return "\x00" in content[:_SNIFF_SIZE]


def detect_file_type(path: str, content: str = "") -> FileInfo:
    """Detect file type by extension, falling back to well-known filenames.

    Args:
        path: Repository-relative path or bare filename.
        content: Optional decoded content, sniffed for binary data.

    Returns:
        A :class:`FileInfo` with format, content class and parser name.
    """
    name = posixpath.basename(path).lower()
    stem, ext = posixpath.splitext(name)
    file_format = _EXTENSION_MAP.get(ext) or _FILENAME_MAP.get(stem if not ext else name)
    if file_format is None:
        file_format = FileFormat.UNKNOWN

    content_class = classify_content(file_format)
    if content and looks_binary(content):
        content_class = ContentClass.BINARY

    if content_class is ContentClass.BINARY:
        parser_name = ""
    elif file_format is FileFormat.JSON_FORMAT:
        parser_name = "json"
    else:
        parser_name = content_class.value

    logger.debug(
        "Detected %s: format=%s, class=%s, parser=%s",
        path,
        file_format.value,
        content_class.value,
        parser_name or "-",
    )
    return FileInfo(
        path=path,
        format=file_format,
        content_class=content_class,
        parser_name=parser_name,
    )


def is_code(path: str, parser: str = "") -> bool:
    """Return ``True`` if a file is source code, judged by parser tag then filename."""
    if parser:
        tag = parser.lower()
        if tag in _CODE_PARSER_TAGS:
            return True
        if tag in {c.value for c in ContentClass}:
            return False
    return detect_file_type(path).content_class is ContentClass.CODE
