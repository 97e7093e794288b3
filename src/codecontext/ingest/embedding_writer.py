"""Document writer: chunk, embed, and upsert one file into a namespace.

Records are written sequentially, one upsert round trip per record, with no
batching: a failure mid-file leaves a partial chunk set in the index (there is
no automatic cleanup; re-ingesting creates fresh ids and read-time dedup
prefers the complete record).

Ids are caller-generated and not content-addressed:
  complete record  {filename}-{section}-{epochMillis}
  chunk record     {filename}-chunk-{chunkIndex}-{epochMillis}
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from codecontext.db.models import Record
from codecontext.db.pinecone import PineconeGateway
from codecontext.ingest.chunker import FileChunker

logger = logging.getLogger(__name__)


def record_id(filename: str, metadata: dict[str, Any], epoch_ms: int | None = None) -> str:
    """Storage id for a record of *filename* written at *epoch_ms*."""
    millis = epoch_ms if epoch_ms is not None else int(time.time() * 1000)
    if metadata.get("isComplete"):
        return f"{filename}-{metadata.get('section')}-{millis}"
    return f"{filename}-chunk-{metadata.get('chunkIndex')}-{millis}"


@dataclass
class WriteResult:
    """Outcome of writing one document."""

    filename: str
    namespace: str
    ids: list[str] = field(default_factory=list)

    @property
    def records_written(self) -> int:
        return len(self.ids)


class DocumentWriter:
    """Write files to the vector index with embeddings.

    For each record produced by the chunker:
    1. Embed the record text.
    2. Merge caller metadata over the chunk metadata.
    3. Upsert the single record.

    Args:
        gateway:  Pinecone gateway for the target index.
        embedder: Callable turning text into a vector.
        chunker:  Chunker used to split files (defaults to 1500/500/50).
    """

    def __init__(
        self,
        gateway: PineconeGateway,
        embedder: Callable[[str], list[float]],
        chunker: FileChunker | None = None,
    ) -> None:
        self._gateway = gateway
        self._embed = embedder
        self._chunker = chunker or FileChunker()

    def write(
        self,
        namespace: str,
        text: str,
        filename: str,
        metadata: dict[str, Any] | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> WriteResult:
        """Chunk, embed and upsert *text* as *filename*. Returns the written ids."""
        records = self._chunker.chunk(text, filename)
        logger.debug("Chunked '%s' into %d record(s)", filename, len(records))

        result = WriteResult(filename=filename, namespace=namespace)
        for i, record in enumerate(records):
            stored = Record(
                id=record_id(filename, record.metadata),
                text=record.text,
                metadata={**record.metadata, **(metadata or {})},
                values=self._embed(record.text),
            )
            self._gateway.upsert(namespace, [stored])
            result.ids.append(stored.id)
            if on_progress is not None:
                on_progress(i + 1, len(records))

        logger.info(
            "Stored '%s' in '%s' (%d record(s))", filename, namespace, result.records_written
        )
        return result
