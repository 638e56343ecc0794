"""Persistence providers for project files and chunks."""

from knowlex.providers.store.sqlite_file_store import SQLiteProjectFileStore

__all__ = ["SQLiteProjectFileStore"]
