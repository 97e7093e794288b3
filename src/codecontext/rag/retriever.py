"""Context retriever: filter composition + similarity query + dedup.

Filter precedence:
  1. An explicit caller filter is used verbatim; it overrides every default
     (callers add their own section constraints when they need them).
  2. ``include_types`` → {type ∈ include_types} AND {section ∈ full|chunks|plans}
  3. Otherwise → {section ∈ full|chunks|plans}

Documentation-section records are therefore only reachable through an
explicit filter; the chunks of documentation files still match rule 2/3.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from codecontext.db.models import MAX_QUERY_RESULTS, Match
from codecontext.db.pinecone import PineconeGateway
from codecontext.rag.dedup import deduplicate

logger = logging.getLogger(__name__)

CONTEXT_SECTIONS: tuple[str, ...] = ("full", "chunks", "plans")
ALL_FILE_TYPES: list[str] = ["project-structure", "core-architecture", "code", "documentation"]


def section_filter() -> dict[str, Any]:
    return {"$or": [{"section": {"$eq": s}} for s in CONTEXT_SECTIONS]}


def build_filter(
    filter: dict[str, Any] | None = None,
    include_types: list[str] | None = None,
) -> dict[str, Any]:
    """Compose the metadata filter for a context query (see module docstring)."""
    if filter is not None:
        return filter
    if include_types:
        return {"$and": [{"type": {"$in": list(include_types)}}, section_filter()]}
    return section_filter()


@dataclass
class RetrieverConfig:
    """Configuration for the context retriever.

    Attributes:
        top_k: Upper bound on matches fetched before deduplication.
        include_values: Whether to return stored embeddings with each match.
    """

    top_k: int = MAX_QUERY_RESULTS
    include_values: bool = False


@dataclass
class Retriever:
    """Embed a query, fetch matching records from one namespace, deduplicate."""

    gateway: PineconeGateway
    embedder: Callable[[str], list[float]]
    config: RetrieverConfig = field(default_factory=RetrieverConfig)

    def query_context(
        self,
        namespace: str,
        text: str,
        filter: dict[str, Any] | None = None,
        include_types: list[str] | None = None,
    ) -> list[Match]:
        """Return one representative match per filename for *text* in *namespace*."""
        query_filter = build_filter(filter, include_types)
        logger.debug("Context query in '%s' with filter %s", namespace, query_filter)

        vector = self.embedder(text)
        matches = self.gateway.query(
            namespace,
            vector,
            query_filter,
            top_k=self.config.top_k,
            include_values=self.config.include_values,
        )
        unique = deduplicate(matches)
        logger.debug("%d match(es), %d unique file(s)", len(matches), len(unique))
        return unique
