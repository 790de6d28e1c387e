"""Tests for file type detection module."""

from __future__ import annotations

import dataclasses

import pytest

from flowrag.parse.detect import (
    ContentClass,
    FileFormat,
    FileInfo,
    classify_content,
    detect_file_type,
    is_code,
    looks_binary,
)


class TestFileFormatEnum:
    """FileFormat and ContentClass enums are str-compatible."""

    def test_str_compatibility(self) -> None:
        assert FileFormat.MARKDOWN == "markdown"
        assert FileFormat.JSON_FORMAT == "json"
        assert FileFormat.UNKNOWN == "unknown"
        assert ContentClass.CODE == "code"

    def test_is_string_instance(self) -> None:
        assert isinstance(FileFormat.PYTHON, str)
        assert isinstance(ContentClass.PROSE, str)


class TestFileInfoFrozen:
    def test_frozen(self) -> None:
        info = detect_file_type("docs/guide.md")
        with pytest.raises(dataclasses.FrozenInstanceError):
            info.format = FileFormat.TEXT  # type: ignore[misc]

    def test_fields(self) -> None:
        info = detect_file_type("src/app/main.py")
        assert info == FileInfo(
            path="src/app/main.py",
            format=FileFormat.PYTHON,
            content_class=ContentClass.CODE,
            parser_name="code",
        )


class TestExtensionDetection:
    """detect_file_type returns correct format for known extensions."""

    @pytest.mark.parametrize(
        ("ext", "expected_format"),
        [
            (".md", FileFormat.MARKDOWN),
            (".rst", FileFormat.RST),
            (".txt", FileFormat.TEXT),
            (".html", FileFormat.HTML),
            (".json", FileFormat.JSON_FORMAT),
            (".yaml", FileFormat.YAML),
            (".yml", FileFormat.YAML),
            (".toml", FileFormat.TOML),
            (".py", FileFormat.PYTHON),
            (".tsx", FileFormat.TYPESCRIPT),
            (".h", FileFormat.C_HEADER),
            (".rs", FileFormat.RUST),
            (".go", FileFormat.GO),
            (".png", FileFormat.IMAGE),
            (".zip", FileFormat.ARCHIVE),
        ],
    )
    def test_known_extensions(self, ext: str, expected_format: FileFormat) -> None:
        assert detect_file_type(f"testfile{ext}").format == expected_format

    def test_unknown_extension(self) -> None:
        info = detect_file_type("data.xyz")
        assert info.format == FileFormat.UNKNOWN
        assert info.content_class == ContentClass.PROSE

    @pytest.mark.parametrize("ext", [".PY", ".Md", ".JSON", ".YML"])
    def test_case_insensitive(self, ext: str) -> None:
        assert detect_file_type(f"testfile{ext}").format != FileFormat.UNKNOWN

    @pytest.mark.parametrize(
        ("filename", "expected_format"),
        [
            ("README", FileFormat.MARKDOWN),
            ("LICENSE", FileFormat.TEXT),
            ("Makefile", FileFormat.SHELL),
            ("Dockerfile", FileFormat.SHELL),
        ],
    )
    def test_well_known_filenames(self, filename: str, expected_format: FileFormat) -> None:
        assert detect_file_type(f"repo/{filename}").format == expected_format


class TestContentClass:
    @pytest.mark.parametrize(
        ("file_format", "expected"),
        [
            (FileFormat.MARKDOWN, ContentClass.PROSE),
            (FileFormat.UNKNOWN, ContentClass.PROSE),
            (FileFormat.CSV, ContentClass.DATA),
            (FileFormat.XML, ContentClass.DATA),
            (FileFormat.JAVA, ContentClass.CODE),
            (FileFormat.SQL, ContentClass.CODE),
            (FileFormat.IMAGE, ContentClass.BINARY),
        ],
    )
    def test_classify(self, file_format: FileFormat, expected: ContentClass) -> None:
        assert classify_content(file_format) == expected

    def test_nul_bytes_mark_binary(self) -> None:
        assert looks_binary("abc\x00def")
        info = detect_file_type("notes.txt", "header\x00\x01payload")
        assert info.content_class == ContentClass.BINARY
        assert info.parser_name == ""

    def test_plain_text_is_not_binary(self) -> None:
        assert not looks_binary("just words\n")


class TestParserNameMapping:
    @pytest.mark.parametrize(
        ("path", "expected_parser"),
        [
            ("a.json", "json"),
            ("a.yaml", "data"),
            ("a.md", "prose"),
            ("a.py", "code"),
            ("a.png", ""),
        ],
    )
    def test_parser_mapping(self, path: str, expected_parser: str) -> None:
        assert detect_file_type(path).parser_name == expected_parser


class TestIsCode:
    def test_by_extension(self) -> None:
        assert is_code("src/lib.rs")
        assert not is_code("docs/guide.md")

    def test_parser_tag_wins(self) -> None:
        assert is_code("script", "python")
        assert is_code("notes.txt", "code")
        assert not is_code("main.py", "prose")

    def test_unknown_tag_falls_back_to_filename(self) -> None:
        assert is_code("main.go", "custom-parser")
        assert not is_code("guide.md", "custom-parser")
