"""Utility modules for Knowlex.

- **errors** -- Domain exception hierarchy rooted at KnowlexError; the queue
  and the HTTP layer decide retry / status-code behaviour from the subclass.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from knowlex.utils.errors import (
    ConfigurationError,
    DuplicateFileError,
    EmptyContentError,
    ExhaustedRetriesError,
    FileStorageError,
    InvalidStateError,
    KnowlexError,
    NotFoundError,
    ParseError,
    UnsupportedFileTypeError,
    ValidationError,
)
from knowlex.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "DuplicateFileError",
    "EmptyContentError",
    "ExhaustedRetriesError",
    "FileStorageError",
    "InvalidStateError",
    "KnowlexError",
    "NotFoundError",
    "ParseError",
    "UnsupportedFileTypeError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]
