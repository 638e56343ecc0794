"""Public interface definitions for pluggable collaborators.

Business logic reaches parsers and persistence only through the abstract base
classes defined here; concrete adapters live in ``knowlex/providers/`` and are
wired together in ``knowlex/main.py``.

CONCRETE PROVIDER MAP:
    Interface             →  Concrete implementations (in knowlex/providers/)
    ─────────────────────────────────────────────────────────────────────
    IFileParser           →  PlainTextParser, PDFParser, OfficeParser
    IProjectFileStore     →  SQLiteProjectFileStore
"""

from knowlex.interfaces.file_parser import IFileParser, file_extension
from knowlex.interfaces.file_store import IProjectFileStore

__all__ = ["IFileParser", "IProjectFileStore", "file_extension"]
