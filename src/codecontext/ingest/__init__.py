"""codecontext ingest pipeline: file taxonomy, chunking, embedding writer."""

from codecontext.ingest.categorize import categorize_file, section_for_type
from codecontext.ingest.chunker import FileChunker, create_records
from codecontext.ingest.embedding_writer import DocumentWriter, WriteResult

__all__ = [
    "DocumentWriter",
    "FileChunker",
    "WriteResult",
    "categorize_file",
    "create_records",
    "section_for_type",
]
