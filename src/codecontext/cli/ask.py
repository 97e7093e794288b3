"""codecontext ask: one chat turn grounded in a namespace."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown

from codecontext.cli.common import console, embedder_or_exit, load_or_exit, open_gateway, plan_store
from codecontext.cli.errors import err_upstream
from codecontext.plans.models import plan_context
from codecontext.rag.chat import ChatService
from codecontext.rag.retriever import Retriever


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the project.")],
    namespace: Annotated[str, typer.Option("--namespace", "-n", help="Namespace to ground on.")],
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="LiteLLM model string (default: generation.model)."),
    ] = None,
    with_plan: Annotated[
        bool,
        typer.Option("--with-plan", help="Include the most recent active plan in the prompt."),
    ] = False,
    save_plan: Annotated[
        bool,
        typer.Option("--save-plan", help="Store a plan found in the reply."),
    ] = False,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", hidden=True, help="Directory holding codecontext.yaml."),
    ] = None,
) -> None:
    """Ask a question; the answer is grounded in the namespace's files."""
    cfg = load_or_exit(project_dir)
    gateway = open_gateway(cfg)
    embedder = embedder_or_exit(cfg)
    store = plan_store(cfg, gateway, embedder)

    chosen = model or cfg.generation.model
    provider = chosen.split("/", 1)[0] if "/" in chosen else ""
    service = ChatService(
        Retriever(gateway, embedder),
        model=chosen,
        api_key=getattr(cfg.api_keys, provider, "") or None,
        plan_store=store,
        create_plans=save_plan,
        max_tokens=cfg.generation.max_tokens,
    )
    try:
        active = None
        if with_plan:
            active = next((p for p in store.get_active_plans(namespace) if p.status == "active"), None)
        reply = service.respond(
            [{"role": "user", "content": question}],
            namespace,
            plan_context=plan_context(active) if active else None,
        )
    except Exception as exc:
        console.print(err_upstream("Chat request", exc))
        raise typer.Exit(1)

    console.print(Markdown(reply.content))
    for block in reply.tools:
        console.rule(block.language)
        console.print(block.code, markup=False, highlight=False)
    if reply.plan is not None:
        console.print(f"\n[green]✓[/] Stored plan {reply.plan.id}: {reply.plan.title}")
