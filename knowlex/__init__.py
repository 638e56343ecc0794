"""Knowlex: project document ingestion into retrievable text chunks."""

__version__ = "0.1.0"
