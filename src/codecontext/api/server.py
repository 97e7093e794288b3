"""HTTP surface: ``POST /api/vector`` (operation dispatcher) and ``POST /api/chat``.

Build with ``create_app()``; ``codecontext serve`` runs it under uvicorn.
Both routes are synchronous and run in FastAPI's threadpool.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Body, FastAPI
from fastapi.responses import JSONResponse

from codecontext import __version__
from codecontext.api.dispatch import EmbedFn, default_embedder, dispatch
from codecontext.config import ApiKeysCfg, ContextConfig, VectorDbCfg
from codecontext.db.pinecone import PineconeGateway
from codecontext.errors import ConfigurationError
from codecontext.ingest.embedding_writer import DocumentWriter
from codecontext.plans.store import PlanStore
from codecontext.rag import llm_client
from codecontext.rag.chat import ChatService
from codecontext.rag.retriever import Retriever

logger = logging.getLogger(__name__)

DEFAULT_CHAT_INDEX = "chat-context"


def model_string(model: Any) -> tuple[str, str]:
    """Return ``(litellm_model, provider)`` for a model given as a string or {id, provider}."""
    if isinstance(model, dict):
        provider = str(model.get("provider") or "")
        model_id = str(model.get("id") or "")
        return (f"{provider}/{model_id}" if provider else model_id), provider
    text = str(model)
    provider = text.split("/", 1)[0] if "/" in text else ""
    return text, provider


def chat_config(api_keys: dict[str, Any]) -> ContextConfig:
    """Chat requests carry the index settings inside ``apiKeys``."""
    return ContextConfig(
        api_keys=ApiKeysCfg(
            pinecone=str(api_keys.get("pinecone") or ""),
            voyage=str(api_keys.get("voyage") or ""),
            anthropic=str(api_keys.get("anthropic") or ""),
            openai=str(api_keys.get("openai") or ""),
        ),
        vectordb=VectorDbCfg(
            index_name=str(api_keys.get("vectorIndexName") or DEFAULT_CHAT_INDEX),
            cloud=str(api_keys.get("vectorCloud") or "aws"),
            region=str(api_keys.get("vectorRegion") or "us-east-1"),
        ),
    )


def create_app(
    gateway_factory: Callable[[ContextConfig], PineconeGateway] = PineconeGateway.from_config,
    embedder_factory: Callable[[ContextConfig], EmbedFn] = default_embedder,
    complete: Callable[..., str] = llm_client.complete,
) -> FastAPI:
    """Build the FastAPI application. Factories are injectable for tests."""
    router = APIRouter(prefix="/api", tags=["codecontext"])

    @router.post("/vector")
    def vector_operation(body: dict[str, Any] = Body(...)) -> JSONResponse:
        status, payload = dispatch(body, gateway_factory, embedder_factory)
        return JSONResponse(status_code=status, content=payload)

    @router.post("/chat")
    def chat(body: dict[str, Any] = Body(...)) -> JSONResponse:
        messages = body.get("messages")
        api_keys = body.get("apiKeys")
        if not messages or not body.get("model") or not isinstance(api_keys, dict):
            return JSONResponse(status_code=400, content={"error": "Missing required fields"})

        model, provider = model_string(body["model"])
        if provider and not api_keys.get(provider):
            return JSONResponse(
                status_code=400,
                content={"error": f"Please provide an API key for {provider} in settings"},
            )

        namespace = str(body.get("namespace") or "")
        logger.info("Chat request for namespace '%s' using %s", namespace, model)
        try:
            cfg = chat_config(api_keys)
            gateway = gateway_factory(cfg)
            embedder = embedder_factory(cfg)
            service = ChatService(
                Retriever(gateway, embedder),
                model=model,
                api_key=api_keys.get(provider) or None,
                plan_store=PlanStore(DocumentWriter(gateway, embedder), Retriever(gateway, embedder), gateway),
                create_plans=bool(body.get("createPlans")),
                complete=complete,
            )
            reply = service.respond(messages, namespace, plan_context=body.get("planContext"))
        except ConfigurationError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        except Exception as exc:
            logger.exception("Error in chat route")
            return JSONResponse(
                status_code=500,
                content={"error": str(exc) or "Failed to get response from LLM"},
            )
        return JSONResponse(content=reply.to_dict())

    app = FastAPI(title="codecontext", version=__version__)
    app.include_router(router)
    return app
