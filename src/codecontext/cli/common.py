"""Shared CLI plumbing: config loading and service construction."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from codecontext.cli.errors import err_missing_config, err_no_api_key
from codecontext.config import ContextConfig, load_config
from codecontext.db.pinecone import PineconeGateway
from codecontext.errors import ConfigurationError
from codecontext.ingest.embedding_writer import DocumentWriter
from codecontext.plans.store import PlanStore, PollPolicy
from codecontext.rag.llm_client import Embedder
from codecontext.rag.retriever import Retriever

console = Console()


def load_or_exit(project_dir: Path | None = None) -> ContextConfig:
    """Load config and check the vector store settings; exit 1 with a hint otherwise."""
    try:
        cfg = load_config(project_dir)
        cfg.require_vector_store()
    except ConfigurationError as exc:
        if "Missing required configuration" in str(exc):
            console.print(err_missing_config())
        else:
            console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    return cfg


def open_gateway(cfg: ContextConfig) -> PineconeGateway:
    return PineconeGateway.from_config(cfg)


def embedder_or_exit(cfg: ContextConfig) -> Embedder:
    if not cfg.api_keys.voyage and cfg.embedding.model.startswith("voyage/"):
        console.print(err_no_api_key("voyage"))
        raise typer.Exit(1)
    return Embedder(model=cfg.embedding.model, api_key=cfg.api_keys.voyage or None)


def plan_store(cfg: ContextConfig, gateway: PineconeGateway, embedder: Embedder) -> PlanStore:
    poll = PollPolicy(attempts=cfg.plans.poll_attempts, initial_delay=cfg.plans.poll_initial_delay)
    return PlanStore(DocumentWriter(gateway, embedder), Retriever(gateway, embedder), gateway, poll)
