"""File ingestion pipeline: parser dispatch, chunking, queueing and lifecycle.

- **parser_registry** -- picks a parser variant by file extension
- **chunker** -- boundary-aware overlapping character windows
- **processing_queue** -- bounded-concurrency priority queue with retries
- **event_broadcaster** -- in-process listener fan-out for pipeline events
- **project_file_service** -- upload validation and per-file status machine
"""

from knowlex.services.ingestion.chunker import TextChunker, chunk_text_content
from knowlex.services.ingestion.event_broadcaster import EventBroadcaster
from knowlex.services.ingestion.parser_registry import ParserRegistry
from knowlex.services.ingestion.processing_queue import ProcessingQueue, ProcessingTask
from knowlex.services.ingestion.project_file_service import ProjectFileService

__all__ = [
    "EventBroadcaster",
    "ParserRegistry",
    "ProcessingQueue",
    "ProcessingTask",
    "ProjectFileService",
    "TextChunker",
    "chunk_text_content",
]
