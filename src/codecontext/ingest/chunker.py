"""File chunker: one complete record plus overlapping search chunks.

Every ingested file yields exactly one record with ``isComplete=True`` holding
the whole text. Files typed code / documentation / core-architecture also
yield fixed-window chunk records (``section='chunks'``):

  window = 1500 chars, step = 1500 - 500 = 1000 chars
  at most 50 records per file, complete record included

``totalChunks`` is an upfront estimate (ceil(len / step)); whitespace-only
windows and the record cap make the emitted count smaller.
"""

from __future__ import annotations

import math

from codecontext.db.models import Record, byte_size, utc_timestamp
from codecontext.ingest.categorize import CHUNKED_TYPES, categorize_file, section_for_type

CHUNK_SIZE = 1500
CHUNK_OVERLAP = 500
MAX_CHUNKS_PER_FILE = 50


class FileChunker:
    """Split a file into storable records.

    Args:
        chunk_size: Window width in characters.
        overlap: Characters shared by consecutive windows.
        max_records: Cap on records per file, complete record included.
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        overlap: int = CHUNK_OVERLAP,
        max_records: int = MAX_CHUNKS_PER_FILE,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.max_records = max_records

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap

    def chunk(self, text: str, filename: str, timestamp: str | None = None) -> list[Record]:
        """Return the complete record followed by any chunk records for *filename*."""
        timestamp = timestamp or utc_timestamp()
        file_type = categorize_file(filename)

        records = [
            Record(
                text=text,
                metadata={
                    "filename": filename,
                    "type": file_type,
                    "section": section_for_type(file_type),
                    "timestamp": timestamp,
                    "isComplete": True,
                    "size": byte_size(text),
                },
            )
        ]

        if file_type not in CHUNKED_TYPES:
            return records

        total_chunks = math.ceil(len(text) / self.step)
        for chunk_index, window in enumerate(self._split_fixed_window(text, len(records))):
            records.append(
                Record(
                    text=window,
                    metadata={
                        "filename": filename,
                        "type": file_type,
                        "section": "chunks",
                        "timestamp": timestamp,
                        "chunkIndex": chunk_index,
                        "totalChunks": total_chunks,
                        "isComplete": False,
                        "size": byte_size(window),
                    },
                )
            )
        return records

    def _split_fixed_window(self, text: str, already: int) -> list[str]:
        """Overlapping windows of *text*, whitespace-only windows omitted.

        Windows are returned unstripped. Stops once the window start passes
        the end of *text* or ``already + len(windows)`` reaches the cap.
        """
        windows: list[str] = []
        pos = 0
        length = len(text)

        while pos < length and already + len(windows) < self.max_records:
            window = text[pos:pos + self.chunk_size]
            if window.strip():
                windows.append(window)
            pos += self.step

        return windows


def create_records(text: str, filename: str, timestamp: str | None = None) -> list[Record]:
    """Chunk *text* with the default window settings."""
    return FileChunker().chunk(text, filename, timestamp=timestamp)
