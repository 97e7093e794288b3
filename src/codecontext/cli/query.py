"""codecontext query: show which files a question retrieves from a namespace."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.syntax import Syntax
from rich.table import Table

from codecontext.cli.common import console, embedder_or_exit, load_or_exit, open_gateway
from codecontext.cli.errors import err_upstream
from codecontext.errors import UpstreamServiceError
from codecontext.rag.assembler import language_tag
from codecontext.rag.retriever import Retriever


def query_cmd(
    text: Annotated[str, typer.Argument(help="Query text.")],
    namespace: Annotated[str, typer.Option("--namespace", "-n", help="Namespace to search.")],
    file_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Restrict to a file type (repeatable)."),
    ] = None,
    show: Annotated[bool, typer.Option("--show", help="Print each file body.")] = False,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", hidden=True, help="Directory holding codecontext.yaml."),
    ] = None,
) -> None:
    """Run a context query and list the matching files (one per filename)."""
    cfg = load_or_exit(project_dir)
    retriever = Retriever(open_gateway(cfg), embedder_or_exit(cfg))
    try:
        matches = retriever.query_context(namespace, text, include_types=file_type or None)
    except UpstreamServiceError as exc:
        console.print(err_upstream("Context query", exc))
        raise typer.Exit(1)

    if not matches:
        console.print(f"[yellow]No matching files in '{namespace}'.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Matches in '{namespace}'", show_header=True, header_style="bold")
    table.add_column("File", style="bold")
    table.add_column("Type")
    table.add_column("Section")
    table.add_column("Score", justify="right")
    for m in matches:
        score = f"{m.score:.3f}" if m.score is not None else ""
        table.add_row(m.filename or "", m.type or "", m.section or "", score)
    console.print(table)

    if show:
        for m in matches:
            console.rule(m.filename or m.id)
            console.print(Syntax(m.text, language_tag(m.filename) or "text", word_wrap=True))
