"""Unit tests for PDFParser and the line-grouping helper."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowlex.providers.parser.pdf_parser import PDFParser, TextItem, group_into_lines
from knowlex.utils.errors import ParseError
from tests.conftest import make_pdf

# ---------------------------------------------------------------------------
# group_into_lines
# ---------------------------------------------------------------------------


class TestGroupIntoLines:
    def test_orders_lines_top_to_bottom_and_items_left_to_right(self) -> None:
        items = [
            TextItem(text="world", x=200.0, y=100.0),
            TextItem(text="second line", x=72.0, y=120.0),
            TextItem(text="hello ", x=72.0, y=100.0),
        ]
        assert group_into_lines(items) == ["hello world", "second line"]

    def test_groups_within_tolerance(self) -> None:
        items = [
            TextItem(text="a", x=10.0, y=50.0),
            TextItem(text="b", x=20.0, y=50.05),
            TextItem(text="c", x=30.0, y=50.5),
        ]
        assert group_into_lines(items) == ["ab", "c"]

    def test_dehyphenates_across_items(self) -> None:
        items = [
            TextItem(text="infor-", x=10.0, y=10.0),
            TextItem(text="mation retrieval", x=60.0, y=10.0),
        ]
        assert group_into_lines(items) == ["information retrieval"]

    def test_keeps_hyphen_before_non_letter(self) -> None:
        items = [
            TextItem(text="pages 10-", x=10.0, y=10.0),
            TextItem(text="12", x=60.0, y=10.0),
        ]
        assert group_into_lines(items) == ["pages 10-12"]

    def test_collapses_spaces_and_trims_right(self) -> None:
        items = [
            TextItem(text="too   many", x=0.0, y=0.0),
            TextItem(text="  spaces   ", x=50.0, y=0.0),
        ]
        assert group_into_lines(items) == ["too many spaces"]

    def test_empty(self) -> None:
        assert group_into_lines([]) == []


# ---------------------------------------------------------------------------
# PDFParser
# ---------------------------------------------------------------------------


class TestPDFParser:
    def test_extracts_pages_in_reading_order(self, tmp_path: Path) -> None:
        data = make_pdf(
            [
                [(72, 140, "Second line"), (72, 100, "First line")],
                [(72, 100, "Page two")],
            ]
        )
        path = tmp_path / "doc.pdf"
        path.write_bytes(data)

        result = PDFParser().extract(str(path), "doc.pdf")

        assert result.content.index("First line") < result.content.index("Second line")
        assert result.content.index("Second line") < result.content.index("Page two")
        assert result.mime_type == "application/pdf"
        assert result.metadata["pages"] == 2
        assert result.metadata["parser"] == "pymupdf"

    def test_blank_pages_yield_empty_content(self, tmp_path: Path) -> None:
        path = tmp_path / "blank.pdf"
        path.write_bytes(make_pdf([[], []]))

        result = PDFParser().extract(str(path), "blank.pdf")

        assert result.content == ""
        assert result.metadata["pages"] == 2

    def test_corrupt_file_raises_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf document at all")

        with pytest.raises(ParseError):
            PDFParser().extract(str(path), "broken.pdf")

    def test_can_handle(self) -> None:
        parser = PDFParser()
        assert parser.can_handle("Report.PDF")
        assert not parser.can_handle("report.docx")
