"""Parser variants, one per family of file formats."""

from knowlex.providers.parser.office_parser import OfficeParser
from knowlex.providers.parser.pdf_parser import PDFParser
from knowlex.providers.parser.plain_text_parser import PlainTextParser

__all__ = ["OfficeParser", "PDFParser", "PlainTextParser"]
