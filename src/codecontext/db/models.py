"""Domain models for the vector store layer.

Metadata keys use the stored (camelCase) names so records round-trip through
Pinecone unchanged: filename, type, section, timestamp, isComplete, size,
chunkIndex, totalChunks, planId, plan, text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

FileType = Literal["project-structure", "core-architecture", "code", "documentation", "plan"]
Section = Literal["full", "chunks", "plans", "documentation"]

VECTOR_DIMENSION = 1536
MAX_QUERY_RESULTS = 10_000


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def byte_size(text: str | None) -> int:
    """UTF-8 byte length of *text* (0 for None)."""
    if not text:
        return 0
    return len(text.encode("utf-8"))


@dataclass
class Record:
    """One storable unit: text + metadata, embedding attached before upsert."""

    text: str
    metadata: dict[str, Any]
    id: str = ""
    values: list[float] | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.metadata.get("isComplete"))


@dataclass
class Match:
    """A record returned by a query, re-hydrated from its metadata."""

    id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float | None = None
    values: list[float] | None = None

    @property
    def text(self) -> str:
        return str(self.metadata.get("text") or "")

    @property
    def filename(self) -> str | None:
        return self.metadata.get("filename")

    @property
    def type(self) -> str | None:
        return self.metadata.get("type")

    @property
    def section(self) -> str | None:
        return self.metadata.get("section")

    @property
    def is_complete(self) -> bool:
        return bool(self.metadata.get("isComplete"))

    @property
    def timestamp(self) -> str:
        return str(self.metadata.get("timestamp") or "")

    def to_dict(self) -> dict[str, Any]:
        """Shape returned by the query_context operation."""
        return {
            "id": self.id,
            "text": self.text,
            "filename": self.filename,
            "type": self.type,
            "section": self.section,
            "isComplete": self.is_complete,
            "metadata": self.metadata,
            "score": self.score,
            "values": self.values,
        }

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Match":
        return cls(
            id=str(raw.get("id", "")),
            metadata=dict(raw.get("metadata") or {}),
            score=raw.get("score"),
            values=raw.get("values") or None,
        )


@dataclass
class NamespaceSummary:
    """Per-namespace listing entry (complete, non-chunk records only)."""

    record_count: int = 0
    has_documentation: bool = False
    total_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordCount": self.record_count,
            "hasDocumentation": self.has_documentation,
            "totalSize": self.total_size,
        }
