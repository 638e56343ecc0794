"""Parser variant for PDF documents.

Reads PDF files using PyMuPDF (fitz) and rebuilds each page's reading order
from positioned text spans rather than trusting the content-stream order:

1. Collect every non-empty span with its baseline origin ``(x, y)``.
2. Group spans into *line buckets*: a span joins the first bucket whose y is
   within ``_Y_GROUP_TOLERANCE`` of its own, otherwise it opens a new one.
3. Sort buckets top-to-bottom and the spans in each bucket left-to-right.
4. Concatenate spans, merging words hyphenated across spans
   (``"infor-" + "mation"`` → ``"information"``), collapse runs of spaces.

PyMuPDF's coordinate system has y growing downward, so top-to-bottom is
ascending y.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from knowlex.interfaces.file_parser import IFileParser, file_extension
from knowlex.models.project_file import ParseResult
from knowlex.providers.parser.mime_types import mime_type_for
from knowlex.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)

_Y_GROUP_TOLERANCE = 0.1

_MULTI_SPACE = re.compile(r" {2,}")
_LEADING_LETTER = re.compile(r"^[A-Za-z]")


@dataclass
class TextItem:
    """A positioned run of text on a page."""

    text: str
    x: float
    y: float


@dataclass
class _LineBucket:
    y: float
    items: list[TextItem] = field(default_factory=list)


def group_into_lines(items: list[TextItem]) -> list[str]:
    """Rebuild visual lines from positioned text items.

    Returns the lines top-to-bottom; each line is right-trimmed and may be
    empty when a bucket held only whitespace.
    """
    buckets: list[_LineBucket] = []
    for item in items:
        bucket = next(
            (b for b in buckets if abs(b.y - item.y) <= _Y_GROUP_TOLERANCE),
            None,
        )
        if bucket is None:
            bucket = _LineBucket(y=item.y)
            buckets.append(bucket)
        bucket.items.append(item)

    buckets.sort(key=lambda b: b.y)

    lines: list[str] = []
    for bucket in buckets:
        bucket.items.sort(key=lambda it: it.x)
        line = ""
        for seg in bucket.items:
            # Dehyphenate: "exam-" + "ple" -> "example".
            if line.endswith("-") and _LEADING_LETTER.match(seg.text):
                line = line[:-1] + seg.text
            else:
                line += seg.text
        lines.append(_MULTI_SPACE.sub(" ", line).rstrip())
    return lines


class PDFParser(IFileParser):
    """Extracts line-ordered text from PDF files page by page."""

    @property
    def supported_extensions(self) -> frozenset[str]:
        return frozenset({".pdf"})

    def extract(self, file_path: str, filename: str) -> ParseResult:
        try:
            doc = fitz.open(file_path)
        except Exception as exc:
            logger.error("pdf_open_failed", filename=filename, error=str(exc))
            raise ParseError(
                f"Failed to parse PDF document {filename}: {exc}"
            ) from exc

        page_texts: list[str] = []
        try:
            page_count = doc.page_count
            info = {k: v for k, v in (doc.metadata or {}).items() if v}
            for page_num, page in enumerate(doc, start=1):
                lines = group_into_lines(self._page_items(page))
                page_text = "\n".join(lines).rstrip()
                if page_text:
                    logger.debug(
                        "pdf_page_parsed",
                        filename=filename,
                        page=page_num,
                        pages=page_count,
                        lines=len(lines),
                        chars=len(page_text),
                    )
                    page_texts.append(page_text)
        except Exception as exc:
            logger.error("pdf_extract_failed", filename=filename, error=str(exc))
            raise ParseError(
                f"Failed to parse PDF document {filename}: {exc}"
            ) from exc
        finally:
            doc.close()

        content = "\n".join(page_texts).strip()
        logger.info(
            "pdf_parsed",
            filename=filename,
            pages=page_count,
            chars=len(content),
        )
        return ParseResult(
            content=content,
            mime_type=mime_type_for(filename),
            metadata={
                "extension": file_extension(filename),
                "parser": self.get_parser_name(),
                "pages": page_count,
                "info": info,
            },
        )

    def get_parser_name(self) -> str:
        return "pymupdf"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _page_items(page: fitz.Page) -> list[TextItem]:
        """Return every non-empty text span on *page* with its origin."""
        items: list[TextItem] = []
        page_dict = page.get_text("dict")
        for block in page_dict.get("blocks", []):
            # Image blocks (type 1) carry no "lines".
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text:
                        continue
                    x, y = span["origin"]
                    items.append(TextItem(text=text, x=float(x), y=float(y)))
        return items
