"""Parser variant for plain-text, data and source-code files.

Reads the raw bytes once and tries each configured encoding in order with
strict decoding.  The first encoding that decodes wins; control characters
(other than tab, newline and carriage return) are stripped and the result is
trimmed.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path

import structlog

from knowlex.interfaces.file_parser import IFileParser, file_extension
from knowlex.models.project_file import ParseResult
from knowlex.providers.parser.mime_types import mime_type_for
from knowlex.utils.errors import FileStorageError, ParseError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8", "utf-16-le", "latin-1")

# C0 controls except \t (9), \n (10), \r (13), plus DEL (127).
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_EXTENSIONS = frozenset(
    {
        ".txt",
        ".md",
        ".csv",
        ".json",
        ".xml",
        ".html",
        ".htm",
        ".js",
        ".jsx",
        ".ts",
        ".tsx",
        ".py",
        ".java",
        ".cpp",
        ".c",
        ".h",
        ".cs",
        ".php",
        ".rb",
        ".go",
        ".rs",
        ".swift",
        ".kt",
    }
)


def clean_text(text: str) -> str:
    """Strip a leading BOM and control characters, then trim."""
    return _CONTROL_CHARS.sub("", text.lstrip("\ufeff")).strip()


class PlainTextParser(IFileParser):
    """Decodes text files with an ordered encoding fallback chain.

    Parameters
    ----------
    encodings:
        Codec names tried in order.  Defaults to UTF-8, UTF-16LE, Latin-1.
    """

    def __init__(self, encodings: Sequence[str] | None = None) -> None:
        self._encodings = tuple(encodings) if encodings else DEFAULT_ENCODINGS

    @property
    def supported_extensions(self) -> frozenset[str]:
        return _EXTENSIONS

    def extract(self, file_path: str, filename: str) -> ParseResult:
        try:
            raw = Path(file_path).read_bytes()
        except OSError as exc:
            raise FileStorageError(
                f"Failed to read plain text file {filename}: {exc}"
            ) from exc

        for encoding in self._encodings:
            try:
                decoded = raw.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue

            content = clean_text(decoded)
            logger.info(
                "plain_text_parsed",
                filename=filename,
                encoding=encoding,
                chars=len(content),
            )
            return ParseResult(
                content=content,
                mime_type=mime_type_for(filename),
                metadata={
                    "extension": file_extension(filename),
                    "encoding": encoding,
                },
            )

        raise ParseError(
            f"Failed to parse plain text file {filename}: "
            "unable to decode with any supported encoding"
        )

    def get_parser_name(self) -> str:
        return "plain_text"
