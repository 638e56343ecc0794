"""Custom exception hierarchy for Knowlex ingestion.

All application exceptions inherit from :class:`KnowlexError`, which carries
an optional ``file_id`` so handlers and log lines can identify which project
file triggered the failure.

The hierarchy is organized by how the pipeline reacts to the error:

    KnowlexError  (base -- catch-all for any knowlex error)
    +-- ValidationError           (upload constraints -- never retried)
    |   +-- UnsupportedFileTypeError
    |   +-- DuplicateFileError
    +-- InvalidStateError         (operation not allowed in current status)
    +-- NotFoundError             (file id unknown to the store)
    +-- ParseError                (extractor failure -- retried by the queue)
    |   +-- EmptyContentError
    +-- FileStorageError          (disk read/write failure -- retried)
    +-- ExhaustedRetriesError     (terminal -- persisted as status=failed)
    +-- ConfigurationError        (startup / missing config)

Validation errors surface synchronously before any mutation.  Parse and
storage errors are routed into the processing queue's retry path.
"""

from __future__ import annotations


class KnowlexError(Exception):
    """Base exception for all Knowlex errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``file_id``.  ``__str__`` returns the bare message so it can be persisted
    on the file record as-is; the file id is kept for structured logging.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        file_id: str | None = None,
    ) -> None:
        self._message = message
        self._file_id = file_id
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def file_id(self) -> str | None:
        return self._file_id

    def __str__(self) -> str:
        return self._message


# ---------------------------------------------------------------------------
# Upload validation errors
# ---------------------------------------------------------------------------

class ValidationError(KnowlexError):
    """Raised when an upload violates a count, size, type or duplicate constraint."""

    def __init__(
        self,
        message: str = "Upload validation failed",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class UnsupportedFileTypeError(ValidationError):
    """Raised when no parser variant handles the file's extension."""

    def __init__(
        self,
        message: str = "Unsupported file type",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class DuplicateFileError(ValidationError):
    """Raised when a file with identical content already exists in the project."""

    def __init__(
        self,
        message: str = "Duplicate file detected in this project",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


# ---------------------------------------------------------------------------
# Lookup / state errors
# ---------------------------------------------------------------------------

class NotFoundError(KnowlexError):
    """Raised when a file id is unknown to the store."""

    def __init__(
        self,
        message: str = "File not found",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class InvalidStateError(KnowlexError):
    """Raised when an operation is not permitted from the file's current status."""

    def __init__(
        self,
        message: str = "Operation not allowed in the current file status",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


# ---------------------------------------------------------------------------
# Processing errors (retried by the queue)
# ---------------------------------------------------------------------------

class ParseError(KnowlexError):
    """Raised when a parser variant fails to extract text from a file."""

    def __init__(
        self,
        message: str = "Failed to parse file",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class EmptyContentError(ParseError):
    """Raised when parsing succeeds but produces no chunkable content."""

    def __init__(
        self,
        message: str = "No content extracted from file",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class FileStorageError(KnowlexError):
    """Raised when reading or writing a file on disk fails."""

    def __init__(
        self,
        message: str = "File storage operation failed",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)


class ExhaustedRetriesError(KnowlexError):
    """Raised (and persisted) once a task has failed on every allowed attempt.

    Carries the number of ``attempts`` made and the ``last_error`` that
    triggered the terminal failure.
    """

    def __init__(
        self,
        message: str = "Processing failed after exhausting retries",
        file_id: str | None = None,
        attempts: int = 0,
        last_error: BaseException | None = None,
    ) -> None:
        self._attempts = attempts
        self._last_error = last_error
        super().__init__(message=message, file_id=file_id)

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(KnowlexError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        file_id: str | None = None,
    ) -> None:
        super().__init__(message=message, file_id=file_id)
