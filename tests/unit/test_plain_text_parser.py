"""Unit tests for PlainTextParser: encoding fallback and text cleanup."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowlex.providers.parser.plain_text_parser import PlainTextParser, clean_text
from knowlex.utils.errors import FileStorageError, ParseError


def _write(tmp_path: Path, name: str, data: bytes) -> str:
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


class TestCanHandle:
    @pytest.mark.parametrize("name", ["notes.txt", "README.MD", "data.csv", "main.py", "lib.RS"])
    def test_supported(self, name: str) -> None:
        assert PlainTextParser().can_handle(name)

    @pytest.mark.parametrize("name", ["report.pdf", "deck.pptx", "archive.zip", "noext"])
    def test_unsupported(self, name: str) -> None:
        assert not PlainTextParser().can_handle(name)


class TestEncodings:
    def test_utf8(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "a.txt", "naïve café".encode())
        result = PlainTextParser().extract(path, "a.txt")

        assert result.content == "naïve café"
        assert result.metadata["encoding"] == "utf-8"
        assert result.mime_type == "text/plain"

    def test_falls_back_to_utf16le(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "b.txt", "café".encode("utf-16-le"))
        result = PlainTextParser().extract(path, "b.txt")

        assert result.content == "café"
        assert result.metadata["encoding"] == "utf-16-le"

    def test_falls_back_to_latin1(self, tmp_path: Path) -> None:
        # Odd length, so UTF-16LE cannot decode it either.
        path = _write(tmp_path, "c.txt", b"caf\xe9 noir")
        result = PlainTextParser().extract(path, "c.txt")

        assert result.content == "café noir"
        assert result.metadata["encoding"] == "latin-1"

    def test_all_encodings_fail(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "d.txt", b"\xff\xfe\xfd")
        with pytest.raises(ParseError):
            PlainTextParser(encodings=["utf-8"]).extract(path, "d.txt")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileStorageError):
            PlainTextParser().extract(str(tmp_path / "missing.txt"), "missing.txt")


class TestCleanup:
    def test_strips_bom_and_control_characters(self, tmp_path: Path) -> None:
        data = b"\xef\xbb\xbf  hello\x00\x07 world\tend\r\nnext  \n"
        path = _write(tmp_path, "e.md", data)
        result = PlainTextParser().extract(path, "e.md")

        assert result.content == "hello world\tend\r\nnext"
        assert result.mime_type == "text/markdown"

    def test_clean_text_keeps_tabs_and_newlines(self) -> None:
        assert clean_text("\ufeffa\tb\nc\x1f") == "a\tb\nc"
