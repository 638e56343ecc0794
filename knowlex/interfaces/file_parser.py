"""Abstract capability for format-specific text extractors.

A parser variant answers two questions: can it handle a filename (decided
purely on the extension, before any I/O) and what text does the file
contain.  Variants share no state; the
:class:`~knowlex.services.ingestion.parser_registry.ParserRegistry` holds them
in a fixed priority order and uses the first that claims a filename.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import PurePath

from knowlex.models.project_file import ParseResult


def file_extension(filename: str) -> str:
    """Return the lower-cased extension of *filename* including the dot."""
    return PurePath(filename).suffix.lower()


# Concrete implementations: PlainTextParser, PDFParser, OfficeParser
# Located in: knowlex/providers/parser/
class IFileParser(ABC):
    """Contract for extracting plain text from one family of file formats."""

    @property
    @abstractmethod
    def supported_extensions(self) -> frozenset[str]:
        """Lower-cased extensions (with leading dot) this variant handles."""

    def can_handle(self, filename: str) -> bool:
        """Return ``True`` when *filename*'s extension belongs to this variant."""
        return file_extension(filename) in self.supported_extensions

    @abstractmethod
    def extract(self, file_path: str, filename: str) -> ParseResult:
        """Extract text from the file stored at *file_path*.

        Parameters
        ----------
        file_path:
            Location of the stored original on disk.
        filename:
            The original upload name; drives MIME type and metadata.

        Returns
        -------
        ParseResult
            Extracted content, MIME type and parser metadata.

        Raises
        ------
        knowlex.utils.errors.ParseError
            If the content cannot be extracted.
        knowlex.utils.errors.FileStorageError
            If the file cannot be read from disk.
        """

    @abstractmethod
    def get_parser_name(self) -> str:
        """Return a short identifier, e.g. ``"plain_text"`` or ``"pymupdf"``."""
