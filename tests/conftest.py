"""Shared pytest fixtures for the Knowlex test suite."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import fitz
import pytest
import pytest_asyncio
from docx import Document

from knowlex.models.project_file import UploadLimits
from knowlex.providers.store.sqlite_file_store import SQLiteProjectFileStore
from knowlex.services.ingestion.chunker import TextChunker
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.parser_registry import ParserRegistry
from knowlex.services.ingestion.processing_queue import ProcessingQueue
from knowlex.services.ingestion.project_file_service import ProjectFileService

# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------


def make_text(size: int, seed: str = "alpha") -> bytes:
    """Return *size* bytes of sentence-shaped ASCII text, unique per *seed*."""
    sentence = f"The {seed} document describes ingestion behaviour in plain words. "
    text = (sentence * (size // len(sentence) + 1))[:size]
    return text.encode("ascii")


def make_pdf(pages: list[list[tuple[float, float, str]]]) -> bytes:
    """Build a PDF where each page holds ``(x, y, text)`` insertions."""
    doc = fitz.open()
    for items in pages:
        page = doc.new_page()
        for x, y, text in items:
            page.insert_text((x, y), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(paragraphs: list[str], table: list[list[str]] | None = None) -> bytes:
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table:
        grid = doc.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def make_pptx(slides: list[list[str]]) -> bytes:
    """Build a minimal zip carrying DrawingML slide XML (enough for text extraction)."""
    ns = "http://schemas.openxmlformats.org/drawingml/2006/main"
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for index, paragraphs in enumerate(slides, start=1):
            body = "".join(
                f"<a:p><a:r><a:t>{text}</a:t></a:r></a:p>" for text in paragraphs
            )
            archive.writestr(
                f"ppt/slides/slide{index}.xml",
                f'<?xml version="1.0"?><p:sld xmlns:a="{ns}" '
                'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main">'
                f"<p:cSld><p:spTree><p:sp><p:txBody>{body}</p:txBody></p:sp>"
                "</p:spTree></p:cSld></p:sld>",
            )
    return buffer.getvalue()


def make_odt(headings: list[str], paragraphs: list[str]) -> bytes:
    """Build a minimal OpenDocument zip with a ``content.xml``."""
    ns = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"
    office = "urn:oasis:names:tc:opendocument:xmlns:office:1.0"
    body = "".join(f"<text:h>{h}</text:h>" for h in headings)
    body += "".join(f"<text:p>{p}</text:p>" for p in paragraphs)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(
            "content.xml",
            f'<?xml version="1.0"?><office:document-content xmlns:office="{office}" '
            f'xmlns:text="{ns}"><office:body><office:text>{body}'
            "</office:text></office:body></office:document-content>",
        )
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "files"


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteProjectFileStore:
    """A SQLiteProjectFileStore on a temporary database file."""
    s = SQLiteProjectFileStore(db_path=tmp_path / "knowlex.db")
    await s.initialize()
    return s


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster()


@pytest_asyncio.fixture
async def queue(broadcaster: EventBroadcaster):
    """A fast-backoff ProcessingQueue, shut down after the test."""
    q = ProcessingQueue(
        max_concurrent=2,
        max_retries=3,
        backoff_base=0.01,
        broadcaster=broadcaster,
    )
    yield q
    await q.shutdown()


@pytest.fixture
def limits() -> UploadLimits:
    return UploadLimits(
        max_files_per_project=5,
        max_file_size=64 * 1024,
        max_total_size=128 * 1024,
    )


@pytest.fixture
def service(
    store: SQLiteProjectFileStore,
    queue: ProcessingQueue,
    broadcaster: EventBroadcaster,
    storage_root: Path,
    limits: UploadLimits,
) -> ProjectFileService:
    return ProjectFileService(
        store=store,
        queue=queue,
        parsers=ParserRegistry(),
        chunker=TextChunker(chunk_size=200, overlap=40),
        storage_root=storage_root,
        broadcaster=broadcaster,
        limits=limits,
    )
