"""SQLite-backed project-file store.

Persists project files and their chunks to a local SQLite database at
``data/knowlex.db``.  Uses ``aiosqlite`` for async I/O and opens one
connection per operation; chunk rows reference their file with
``ON DELETE CASCADE`` so foreign keys are enabled on every connection.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from knowlex.interfaces.file_store import IProjectFileStore
from knowlex.models.project_file import ChunkMetadata, FileChunk, FileStatus, ProjectFile
from knowlex.utils.errors import DuplicateFileError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowlex.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS project_files (
    id            TEXT    PRIMARY KEY,
    project_id    TEXT    NOT NULL,
    filename      TEXT    NOT NULL,
    filepath      TEXT    NOT NULL,
    status        TEXT    NOT NULL,
    chunk_count   INTEGER NOT NULL DEFAULT 0,
    size          INTEGER NOT NULL,
    mime_type     TEXT    NOT NULL,
    content_hash  TEXT    NOT NULL DEFAULT '',
    error         TEXT,
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS file_chunks (
    id           TEXT    PRIMARY KEY,
    file_id      TEXT    NOT NULL REFERENCES project_files(id) ON DELETE CASCADE,
    content      TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    metadata     TEXT    NOT NULL,
    UNIQUE(file_id, chunk_index)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_files_project ON project_files(project_id);",
    "CREATE INDEX IF NOT EXISTS idx_files_status ON project_files(status);",
    # Replaced by the unique index below on databases created before it existed.
    "DROP INDEX IF EXISTS idx_files_project_hash;",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_files_project_hash_unique "
    "ON project_files(project_id, content_hash) WHERE content_hash != '';",
    "CREATE INDEX IF NOT EXISTS idx_chunks_file ON file_chunks(file_id);",
]

_FILE_COLUMNS = (
    "id, project_id, filename, filepath, status, chunk_count, size, "
    "mime_type, content_hash, error, created_at, updated_at"
)

_INSERT_FILE_SQL = f"""\
INSERT INTO project_files ({_FILE_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO file_chunks (id, file_id, content, chunk_index, metadata)
VALUES (?, ?, ?, ?, ?);
"""


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017


def _row_to_file(row: aiosqlite.Row) -> ProjectFile:
    return ProjectFile(
        id=row["id"],
        project_id=row["project_id"],
        filename=row["filename"],
        filepath=row["filepath"],
        status=FileStatus(row["status"]),
        chunk_count=row["chunk_count"],
        size=row["size"],
        mime_type=row["mime_type"],
        content_hash=row["content_hash"],
        error=row["error"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_chunk(row: aiosqlite.Row) -> FileChunk:
    return FileChunk(
        id=row["id"],
        file_id=row["file_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        metadata=ChunkMetadata.model_validate(json.loads(row["metadata"])),
    )


def _file_params(project_file: ProjectFile) -> tuple:
    return (
        project_file.id,
        project_file.project_id,
        project_file.filename,
        project_file.filepath,
        project_file.status.value,
        project_file.chunk_count,
        project_file.size,
        project_file.mime_type,
        project_file.content_hash,
        project_file.error,
        project_file.created_at.isoformat(),
        project_file.updated_at.isoformat(),
    )


def _chunk_params(chunk: FileChunk) -> tuple:
    return (
        chunk.id,
        chunk.file_id,
        chunk.content,
        chunk.chunk_index,
        chunk.metadata.model_dump_json(),
    )


class SQLiteProjectFileStore(IProjectFileStore):
    """SQLite-backed persistence for project files and chunks."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path))

    @staticmethod
    async def _prepare(db: aiosqlite.Connection) -> None:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON;")

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await self._prepare(db)
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("file_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Project files
    # ------------------------------------------------------------------

    async def create_project_file(self, project_file: ProjectFile) -> ProjectFile:
        async with self._connect() as db:
            await self._prepare(db)
            try:
                await db.execute(_INSERT_FILE_SQL, _file_params(project_file))
            except sqlite3.IntegrityError as exc:
                if "content_hash" not in str(exc):
                    raise
                raise DuplicateFileError(
                    f"File {project_file.filename} has the same content as an "
                    f"existing file in project {project_file.project_id}",
                    file_id=project_file.id,
                ) from exc
            await db.commit()
        logger.debug(
            "project_file_created",
            file_id=project_file.id,
            project_id=project_file.project_id,
        )
        return project_file

    async def get_project_file(self, file_id: str) -> ProjectFile | None:
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                f"SELECT {_FILE_COLUMNS} FROM project_files WHERE id = ?",
                (file_id,),
            )
            row = await cursor.fetchone()
        return _row_to_file(row) if row else None

    async def list_project_files(self, project_id: str) -> list[ProjectFile]:
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                f"SELECT {_FILE_COLUMNS} FROM project_files "
                "WHERE project_id = ? ORDER BY created_at, rowid",
                (project_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_file(r) for r in rows]

    async def list_files_by_status(self, statuses: Sequence[FileStatus]) -> list[ProjectFile]:
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                f"SELECT {_FILE_COLUMNS} FROM project_files "
                f"WHERE status IN ({placeholders}) ORDER BY created_at, rowid",
                tuple(s.value for s in statuses),
            )
            rows = await cursor.fetchall()
        return [_row_to_file(r) for r in rows]

    async def find_file_by_hash(self, project_id: str, content_hash: str) -> ProjectFile | None:
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                f"SELECT {_FILE_COLUMNS} FROM project_files "
                "WHERE project_id = ? AND content_hash = ? LIMIT 1",
                (project_id, content_hash),
            )
            row = await cursor.fetchone()
        return _row_to_file(row) if row else None

    async def update_project_file_status(
        self,
        file_id: str,
        status: FileStatus,
        error: str | None = None,
    ) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            await db.execute(
                "UPDATE project_files SET status = ?, error = ?, updated_at = ? WHERE id = ?",
                (status.value, error, _now_iso(), file_id),
            )
            await db.commit()
        logger.debug("project_file_status_updated", file_id=file_id, status=status.value)

    async def update_project_file_chunks(self, file_id: str, chunk_count: int) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            await db.execute(
                "UPDATE project_files SET chunk_count = ?, updated_at = ? WHERE id = ?",
                (chunk_count, _now_iso(), file_id),
            )
            await db.commit()

    async def delete_project_file(self, file_id: str) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            await db.execute("DELETE FROM project_files WHERE id = ?", (file_id,))
            await db.commit()
        logger.debug("project_file_deleted", file_id=file_id)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def create_file_chunk(self, chunk: FileChunk) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            await db.execute(_INSERT_CHUNK_SQL, _chunk_params(chunk))
            await db.commit()

    async def replace_file_chunks(self, file_id: str, chunks: Sequence[FileChunk]) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            try:
                await db.execute("DELETE FROM file_chunks WHERE file_id = ?", (file_id,))
                await db.executemany(_INSERT_CHUNK_SQL, [_chunk_params(c) for c in chunks])
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.debug("file_chunks_replaced", file_id=file_id, chunks=len(chunks))

    async def get_file_chunks(self, file_id: str) -> list[FileChunk]:
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                "SELECT id, file_id, content, chunk_index, metadata FROM file_chunks "
                "WHERE file_id = ? ORDER BY chunk_index",
                (file_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows]

    async def count_file_chunks(self, file_id: str) -> int:
        async with self._connect() as db:
            await self._prepare(db)
            cursor = await db.execute(
                "SELECT COUNT(*) FROM file_chunks WHERE file_id = ?",
                (file_id,),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def delete_file_chunks(self, file_id: str) -> None:
        async with self._connect() as db:
            await self._prepare(db)
            await db.execute("DELETE FROM file_chunks WHERE file_id = ?", (file_id,))
            await db.commit()

    def get_provider_name(self) -> str:
        return "sqlite"
