"""Pinecone gateway: the only I/O boundary to the vector index.

Talks to the Pinecone REST API directly:
  control plane  https://api.pinecone.io/indexes[/{name}]   (host lookup, create)
  data plane     https://{host}/vectors/upsert | /query | /describe_index_stats
                 | /vectors/delete

Every query needs a vector, even for metadata-only lookups; those use the
constant probe vector from ``probe_vector()``. Record text lives in
``metadata.text`` so matches can be re-hydrated without a second store.

Any non-2xx reply raises UpstreamServiceError carrying the upstream message.
Missing api_key / index_name raise ConfigurationError before any request.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from codecontext.db.models import (
    MAX_QUERY_RESULTS,
    VECTOR_DIMENSION,
    Match,
    NamespaceSummary,
    Record,
    byte_size,
    utc_timestamp,
)
from codecontext.errors import ConfigurationError, UpstreamServiceError

logger = logging.getLogger(__name__)

_CONTROL_PLANE = "https://api.pinecone.io"
_API_VERSION = "2024-07"
_TIMEOUT = 30  # seconds
_PROBE_STRIDE = 100
_PROBE_VALUE = 0.0001
_INIT_VECTOR_COUNT = 3


def probe_vector(dimension: int = VECTOR_DIMENSION) -> list[float]:
    """Non-semantic placeholder vector for filter-only queries.

    Zero everywhere except every 100th index, which is 0.0001.
    """
    return [_PROBE_VALUE if i % _PROBE_STRIDE == 0 else 0.0 for i in range(dimension)]


# ------------------------------------------------------------------
# HTTP transport
# ------------------------------------------------------------------


def _http_json(
    method: str,
    url: str,
    api_key: str,
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Send one JSON request and return the decoded reply body.

    Raises:
        UpstreamServiceError: On non-2xx status or transport failure.
    """
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    request = urllib.request.Request(
        url,
        data=data,
        method=method,
        headers={
            "Api-Key": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Pinecone-API-Version": _API_VERSION,
        },
    )
    try:
        with urllib.request.urlopen(request, timeout=_TIMEOUT) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        raise UpstreamServiceError(_error_message(exc), status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise UpstreamServiceError(f"fetch failed: {exc.reason}") from exc

    if not body:
        return {}
    return json.loads(body.decode("utf-8"))


def _error_message(exc: urllib.error.HTTPError) -> str:
    """Pull the upstream message out of a Pinecone error body."""
    try:
        raw = exc.read().decode("utf-8", errors="replace")
    except OSError:
        raw = ""
    try:
        body = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return raw or str(exc.reason)
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or err)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return raw or str(exc.reason)


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Pinecone rejects null metadata values."""
    return {k: v for k, v in metadata.items() if v is not None}


# ------------------------------------------------------------------
# Gateway
# ------------------------------------------------------------------


class PineconeGateway:
    """Upsert / query / namespace management for one Pinecone index.

    Args:
        api_key: Pinecone API key.
        index_name: Name of the index (must already exist unless
            ``ensure_index()`` is called first).
        cloud: Serverless cloud used when the index has to be created.
        region: Serverless region used when the index has to be created.
    """

    def __init__(
        self,
        api_key: str,
        index_name: str,
        cloud: str = "aws",
        region: str = "us-east-1",
    ) -> None:
        if not api_key or not index_name:
            raise ConfigurationError("Missing required configuration")
        self.api_key = api_key
        self.index_name = index_name
        self.cloud = cloud
        self.region = region
        self._host: str | None = None

    @classmethod
    def from_config(cls, cfg) -> "PineconeGateway":
        """Build a gateway from a ContextConfig."""
        return cls(
            api_key=cfg.api_keys.pinecone,
            index_name=cfg.vectordb.index_name,
            cloud=cfg.vectordb.cloud,
            region=cfg.vectordb.region,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _index_host(self) -> str:
        if self._host is None:
            info = _http_json("GET", f"{_CONTROL_PLANE}/indexes/{self.index_name}", self.api_key)
            host = info.get("host")
            if not host:
                raise UpstreamServiceError(f"Index '{self.index_name}' has no host")
            self._host = str(host)
        return self._host

    def _data(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return _http_json("POST", f"https://{self._index_host()}{path}", self.api_key, payload)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def upsert(self, namespace: str, records: list[Record]) -> int:
        """Upsert *records* (embeddings attached) into *namespace*. Idempotent per id."""
        vectors = []
        for record in records:
            if record.values is None:
                raise ValueError(f"Record '{record.id}' has no embedding")
            vectors.append(
                {
                    "id": record.id,
                    "values": record.values,
                    "metadata": _clean_metadata({**record.metadata, "text": record.text}),
                }
            )
        reply = self._data("/vectors/upsert", {"vectors": vectors, "namespace": namespace})
        return int(reply.get("upsertedCount", len(vectors)))

    def query(
        self,
        namespace: str,
        vector: list[float],
        filter: dict[str, Any] | None = None,
        top_k: int = MAX_QUERY_RESULTS,
        include_values: bool = False,
    ) -> list[Match]:
        """Similarity query in *namespace*; *filter* is a Pinecone metadata filter."""
        payload: dict[str, Any] = {
            "namespace": namespace,
            "vector": vector,
            "topK": top_k,
            "includeMetadata": True,
            "includeValues": include_values,
        }
        if filter:
            payload["filter"] = filter
        reply = self._data("/query", payload)
        return [Match.from_api(m) for m in reply.get("matches") or []]

    def query_by_section(
        self,
        namespace: str,
        section: str,
        extra_filter: dict[str, Any] | None = None,
    ) -> list[Match]:
        """Metadata-only lookup of every record in *section* (probe vector)."""
        base = {"section": {"$eq": section}}
        combined = {"$and": [base, extra_filter]} if extra_filter else base
        return self.query(namespace, probe_vector(), combined)

    def delete_ids(self, namespace: str, ids: list[str]) -> None:
        self._data("/vectors/delete", {"ids": ids, "namespace": namespace})

    def delete_by_filter(self, namespace: str, filter: dict[str, Any]) -> int:
        """Delete every record matching *filter*; returns the number deleted.

        Ids are collected with one probe query (bounded by 10 000) and deleted
        one request at a time. A failure mid-loop leaves earlier deletes applied.
        """
        matches = self.query(namespace, probe_vector(), filter)
        for match in matches:
            self.delete_ids(namespace, [match.id])
        logger.info("Deleted %d record(s) from '%s'", len(matches), namespace)
        return len(matches)

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def describe_index(self) -> dict[str, Any]:
        """Overall index statistics (per-namespace vector counts)."""
        return self._data("/describe_index_stats", {})

    def describe_namespace(self, namespace: str | None = None) -> dict[str, Any]:
        """Index stats, plus namespace stats and one sample record when *namespace* is set."""
        stats = self.describe_index()
        if not namespace:
            return {"stats": stats}

        namespace_stats = (stats.get("namespaces") or {}).get(namespace, {"vectorCount": 0})
        sample = self.query(namespace, probe_vector(), top_k=1)
        return {
            "stats": stats,
            "namespaceStats": namespace_stats,
            "sampleRecord": [m.to_dict() for m in sample],
        }

    def list_namespaces(self) -> dict[str, NamespaceSummary]:
        """Summaries of every non-empty namespace, counting complete file records only."""
        stats = self.describe_index()
        summaries: dict[str, NamespaceSummary] = {}
        for name in stats.get("namespaces") or {}:
            if not name or not name.strip():
                continue
            complete = self.query(
                name,
                probe_vector(),
                {"isComplete": {"$eq": True}, "section": {"$ne": "chunks"}},
            )
            summaries[name] = NamespaceSummary(
                record_count=len(complete),
                has_documentation=any(m.type == "documentation" for m in complete),
                total_size=sum(
                    int(m.metadata.get("size") or byte_size(m.metadata.get("text")))
                    for m in complete
                ),
            )
        return summaries

    def create_namespace(self, namespace: str) -> None:
        """Make *namespace* discoverable by writing placeholder vectors."""
        timestamp = utc_timestamp()
        vectors = [
            {
                "id": f"{namespace}-init-{i}",
                "values": probe_vector(),
                "metadata": {"initialized": True, "timestamp": timestamp},
            }
            for i in range(_INIT_VECTOR_COUNT)
        ]
        self._data("/vectors/upsert", {"vectors": vectors, "namespace": namespace})

    def delete_namespace(self, namespace: str) -> None:
        """Delete every record in *namespace*."""
        self._data("/vectors/delete", {"deleteAll": True, "namespace": namespace})

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def ensure_index(self, dimension: int = VECTOR_DIMENSION, metric: str = "cosine") -> dict[str, Any]:
        """Create the serverless index if it does not exist, then return its stats."""
        try:
            self._index_host()
        except UpstreamServiceError as exc:
            if exc.status != 404:
                raise
            logger.info(
                "Index '%s' not found; creating it in %s/%s",
                self.index_name, self.cloud, self.region,
            )
            info = _http_json(
                "POST",
                f"{_CONTROL_PLANE}/indexes",
                self.api_key,
                {
                    "name": self.index_name,
                    "dimension": dimension,
                    "metric": metric,
                    "spec": {"serverless": {"cloud": self.cloud, "region": self.region}},
                },
            )
            if info.get("host"):
                self._host = str(info["host"])
        return self.describe_index()
