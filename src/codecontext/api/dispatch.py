"""Operation dispatcher behind ``POST /api/vector``.

Request body:
    {operation, config: {apiKeys: {pinecone, voyage}, vectordb: {indexName, cloud, region}},
     namespace?, text?, filename?, filter?, includeTypes?, metadata?}

``dispatch()`` returns ``(status, payload)`` and never raises:
  400  missing Pinecone key / index name (checked before any network call),
       missing operation fields, unknown operation
  500  any failure while running the operation → {error, details}
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from codecontext.config import ContextConfig, config_from_request
from codecontext.db.models import utc_timestamp
from codecontext.db.pinecone import PineconeGateway, probe_vector
from codecontext.errors import ConfigurationError, UpstreamServiceError
from codecontext.ingest.embedding_writer import DocumentWriter
from codecontext.rag.llm_client import Embedder
from codecontext.rag.retriever import Retriever

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
EmbedFn = Callable[[str], list[float]]


class RequestError(ValueError):
    """Malformed operation request; reported as HTTP 400."""


def default_embedder(cfg: ContextConfig) -> EmbedFn:
    return Embedder(model=cfg.embedding.model, api_key=cfg.api_keys.voyage or None)


@dataclass
class OperationContext:
    """Everything one operation handler may touch."""

    body: dict[str, Any]
    config: ContextConfig
    gateway: PineconeGateway
    embedder_factory: Callable[[ContextConfig], EmbedFn]

    @property
    def namespace(self) -> str:
        return str(self.body.get("namespace") or "")

    def embedder(self) -> EmbedFn:
        return self.embedder_factory(self.config)


# ------------------------------------------------------------------
# Handlers
# ------------------------------------------------------------------


def _describe_namespace(ctx: OperationContext) -> Payload:
    return ctx.gateway.describe_namespace(ctx.namespace or None)


def _list_namespaces(ctx: OperationContext) -> Payload:
    summaries = ctx.gateway.list_namespaces()
    return {"namespaces": {name: s.to_dict() for name, s in summaries.items()}}


def _create_namespace(ctx: OperationContext) -> Payload:
    if not ctx.namespace:
        raise RequestError("Namespace name is required")
    ctx.gateway.create_namespace(ctx.namespace)
    return {"success": True, "namespace": ctx.namespace, "timestamp": utc_timestamp()}


def _delete_namespace(ctx: OperationContext) -> Payload:
    if not ctx.namespace:
        raise RequestError("Namespace is required")
    ctx.gateway.delete_namespace(ctx.namespace)
    return {"success": True, "namespace": ctx.namespace, "timestamp": utc_timestamp()}


def _delete_document(ctx: OperationContext) -> Payload:
    filter = ctx.body.get("filter")
    if not ctx.namespace or not filter:
        raise RequestError("Namespace and filter are required")
    deleted = ctx.gateway.delete_by_filter(ctx.namespace, filter)
    payload: Payload = {"success": True, "namespace": ctx.namespace, "timestamp": utc_timestamp()}
    if deleted:
        payload["deletedCount"] = deleted
    else:
        payload["message"] = "No matching documents found to delete"
    return payload


def _process_document(ctx: OperationContext) -> Payload:
    text = ctx.body.get("text")
    filename = ctx.body.get("filename")
    if not text or not filename:
        raise RequestError("Text content and filename are required")

    writer = DocumentWriter(ctx.gateway, ctx.embedder())
    result = writer.write(ctx.namespace, text, filename, metadata=ctx.body.get("metadata") or None)
    _log_verification(ctx, filename, result.records_written)

    return {
        "success": True,
        "chunksProcessed": result.records_written,
        "filename": filename,
        "namespace": ctx.namespace,
        "timestamp": utc_timestamp(),
    }


def _log_verification(ctx: OperationContext, filename: str, expected: int) -> None:
    """Read the file's records back; the outcome is only logged."""
    try:
        matches = ctx.gateway.query(
            ctx.namespace,
            probe_vector(),
            {"filename": {"$eq": filename}},
            top_k=max(expected, 1),
        )
    except UpstreamServiceError as exc:
        logger.warning("Verification for '%s' in '%s' failed: %s", filename, ctx.namespace, exc)
        return
    logger.info(
        "Verification for '%s' in '%s': %d of %d record(s) visible",
        filename, ctx.namespace, len(matches), expected,
    )


def _query_context(ctx: OperationContext) -> Payload:
    text = ctx.body.get("text")
    if not text:
        raise RequestError("Query text is required")
    retriever = Retriever(ctx.gateway, ctx.embedder())
    matches = retriever.query_context(
        ctx.namespace,
        text,
        filter=ctx.body.get("filter"),
        include_types=ctx.body.get("includeTypes") or None,
    )
    return {"matches": [m.to_dict() for m in matches]}


def _ensure_index(ctx: OperationContext) -> Payload:
    stats = ctx.gateway.ensure_index(dimension=ctx.config.embedding.dimensions)
    return {"success": True, "stats": stats}


Handler = Callable[[OperationContext], Payload]

OPERATIONS: dict[str, tuple[Handler, str]] = {
    "describe_namespace": (_describe_namespace, "Failed to describe namespace"),
    "list_namespaces": (_list_namespaces, "Failed to list namespaces"),
    "create_namespace": (_create_namespace, "Failed to create namespace"),
    "delete_namespace": (_delete_namespace, "Failed to delete namespace"),
    "delete_document": (_delete_document, "Failed to delete document"),
    "process_document": (_process_document, "Failed to process document"),
    "query_context": (_query_context, "Failed to query context"),
    "ensure_index": (_ensure_index, "Failed to ensure index exists"),
}


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def dispatch(
    body: dict[str, Any],
    gateway_factory: Callable[[ContextConfig], PineconeGateway] = PineconeGateway.from_config,
    embedder_factory: Callable[[ContextConfig], EmbedFn] = default_embedder,
) -> tuple[int, Payload]:
    """Run one vector operation and return ``(http_status, json_payload)``."""
    if not isinstance(body, dict):
        return 400, {"error": "Request body must be a JSON object"}

    try:
        cfg = config_from_request(body.get("config"))
    except ConfigurationError as exc:
        return 400, {"error": str(exc)}

    operation = body.get("operation")
    entry = OPERATIONS.get(operation) if isinstance(operation, str) else None
    if entry is None:
        return 400, {"error": "Invalid operation"}
    handler, failure = entry

    logger.info(
        "Vector operation %s (namespace=%r, index=%s)",
        operation, body.get("namespace"), cfg.vectordb.index_name,
    )
    try:
        ctx = OperationContext(body, cfg, gateway_factory(cfg), embedder_factory)
        return 200, handler(ctx)
    except RequestError as exc:
        return 400, {"error": str(exc)}
    except Exception as exc:
        logger.exception("%s", failure)
        return 500, {"error": failure, "details": str(exc)}
