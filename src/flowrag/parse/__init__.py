"""Parse stage support: format detection and text normalization."""

from flowrag.parse.base import BaseParser
from flowrag.parse.detect import ContentClass, FileFormat, FileInfo, detect_file_type, is_code
from flowrag.parse.text import TextParser

__all__ = [
    "BaseParser",
    "ContentClass",
    "FileFormat",
    "FileInfo",
    "TextParser",
    "detect_file_type",
    "is_code",
]
