"""Parser variant for Microsoft Office and OpenDocument files.

Each format is routed to the lightest extractor that understands it:

    DOCX          → python-docx (paragraphs, then table rows)
    XLSX / ODS    → pandas.read_excel (openpyxl / odf engines), one
                    tab-separated line per row
    PPTX          → slide XML inside the zip (DrawingML ``a:t`` runs)
    ODT / ODP     → ``content.xml`` inside the zip (``text:h`` / ``text:p``)

The variant is a black box to the rest of the pipeline: it returns trimmed
text or raises :class:`~knowlex.utils.errors.ParseError`.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
import zipfile
from collections.abc import Callable
from functools import partial

import pandas as pd
import structlog
from docx import Document

from knowlex.interfaces.file_parser import IFileParser, file_extension
from knowlex.models.project_file import ParseResult
from knowlex.providers.parser.mime_types import mime_type_for
from knowlex.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)

_DRAWINGML_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
_ODF_TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"

_SLIDE_PATH = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class OfficeParser(IFileParser):
    """Extracts text from DOCX, PPTX, XLSX, ODT, ODP and ODS files."""

    def __init__(self) -> None:
        self._extractors: dict[str, Callable[[str], str]] = {
            ".docx": self._extract_docx,
            ".pptx": self._extract_pptx,
            ".xlsx": partial(self._extract_spreadsheet, engine="openpyxl"),
            ".ods": partial(self._extract_spreadsheet, engine="odf"),
            ".odt": self._extract_opendocument,
            ".odp": self._extract_opendocument,
        }

    @property
    def supported_extensions(self) -> frozenset[str]:
        return frozenset(self._extractors)

    def extract(self, file_path: str, filename: str) -> ParseResult:
        extension = file_extension(filename)
        extractor = self._extractors.get(extension)
        if extractor is None:
            raise ParseError(f"Office parser cannot handle {filename}")

        try:
            text = extractor(file_path)
        except Exception as exc:
            logger.error("office_parse_failed", filename=filename, error=str(exc))
            raise ParseError(
                f"Failed to parse office document {filename}: {exc}"
            ) from exc

        content = text.strip()
        logger.info(
            "office_parsed",
            filename=filename,
            extension=extension,
            chars=len(content),
        )
        return ParseResult(
            content=content,
            mime_type=mime_type_for(filename),
            metadata={
                "extension": extension,
                "parser": self.get_parser_name(),
            },
        )

    def get_parser_name(self) -> str:
        return "office"

    # ------------------------------------------------------------------
    # Format-specific extractors
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_docx(file_path: str) -> str:
        doc = Document(file_path)
        parts = [p.text for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append("\t".join(cells))
        return "\n".join(parts)

    @staticmethod
    def _extract_spreadsheet(file_path: str, engine: str) -> str:
        sheets = pd.read_excel(file_path, sheet_name=None, header=None, engine=engine)
        lines: list[str] = []
        for frame in sheets.values():
            for row in frame.itertuples(index=False):
                cells = ["" if pd.isna(value) else str(value) for value in row]
                line = "\t".join(cells).rstrip("\t")
                if line.strip():
                    lines.append(line)
        return "\n".join(lines)

    @staticmethod
    def _extract_pptx(file_path: str) -> str:
        with zipfile.ZipFile(file_path) as archive:
            slides = sorted(
                (int(m.group(1)), name)
                for name in archive.namelist()
                if (m := _SLIDE_PATH.match(name))
            )
            lines: list[str] = []
            for _, name in slides:
                root = ET.fromstring(archive.read(name))
                for paragraph in root.iter(f"{{{_DRAWINGML_NS}}}p"):
                    text = "".join(
                        run.text or "" for run in paragraph.iter(f"{{{_DRAWINGML_NS}}}t")
                    )
                    if text.strip():
                        lines.append(text)
        return "\n".join(lines)

    @staticmethod
    def _extract_opendocument(file_path: str) -> str:
        with zipfile.ZipFile(file_path) as archive:
            root = ET.fromstring(archive.read("content.xml"))
        wanted = {f"{{{_ODF_TEXT_NS}}}h", f"{{{_ODF_TEXT_NS}}}p"}
        lines = [
            "".join(el.itertext())
            for el in root.iter()
            if el.tag in wanted
        ]
        return "\n".join(line for line in lines if line.strip())
