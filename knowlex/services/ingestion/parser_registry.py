"""Parser dispatch: pick the first parser variant that claims a filename.

Variants are checked in a fixed priority order (plain text, PDF, office).
Their extension sets are disjoint, so at most one variant ever matches; the
order only matters for readability of :meth:`ParserRegistry.supported_extensions`.

Selection happens purely on the filename, so unsupported uploads are rejected
before any bytes are written or read.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from knowlex.interfaces.file_parser import IFileParser, file_extension
from knowlex.models.project_file import ParseResult
from knowlex.providers.parser import OfficeParser, PDFParser, PlainTextParser
from knowlex.providers.parser.mime_types import mime_type_for
from knowlex.utils.errors import UnsupportedFileTypeError

logger = structlog.get_logger(logger_name=__name__)


class ParserRegistry:
    """Ordered collection of :class:`IFileParser` variants.

    Parameters
    ----------
    parsers:
        Variants in priority order.  Defaults to plain text, PDF, office.
    """

    def __init__(self, parsers: Sequence[IFileParser] | None = None) -> None:
        self._parsers: tuple[IFileParser, ...] = (
            tuple(parsers)
            if parsers is not None
            else (PlainTextParser(), PDFParser(), OfficeParser())
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def find_parser(self, filename: str) -> IFileParser | None:
        """Return the first variant whose ``can_handle`` accepts *filename*."""
        for parser in self._parsers:
            if parser.can_handle(filename):
                return parser
        return None

    def supported_extensions(self) -> list[str]:
        """Return every extension handled by any variant, sorted."""
        extensions: set[str] = set()
        for parser in self._parsers:
            extensions.update(parser.supported_extensions)
        return sorted(extensions)

    def is_supported(self, filename: str) -> bool:
        return self.find_parser(filename) is not None

    def is_binary(self, filename: str) -> bool:
        """Return ``True`` when *filename* needs a non-plain-text variant.

        Callers use this to decide between byte-based and string-based
        upload handling.
        """
        parser = self.find_parser(filename)
        return parser is not None and not isinstance(parser, PlainTextParser)

    @staticmethod
    def mime_type_for(filename: str) -> str:
        return mime_type_for(filename)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def parse_file(self, file_path: str, filename: str) -> ParseResult:
        """Extract text from *file_path* with the variant that handles *filename*.

        Raises
        ------
        UnsupportedFileTypeError
            If no variant handles the extension (raised before any I/O).
        ParseError, FileStorageError
            Propagated from the selected variant.
        """
        parser = self.find_parser(filename)
        if parser is None:
            raise UnsupportedFileTypeError(
                f"Unsupported file type: {file_extension(filename) or filename}. "
                f"Supported types: {', '.join(self.supported_extensions())}"
            )

        logger.debug(
            "parser_selected",
            filename=filename,
            parser=parser.get_parser_name(),
        )
        return parser.extract(file_path, filename)
