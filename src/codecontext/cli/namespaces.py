"""codecontext namespaces: list, create and delete namespaces.

Commands:
  codecontext namespaces list
  codecontext namespaces create <name>
  codecontext namespaces delete <name> [--yes]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from codecontext.cli.common import console, load_or_exit, open_gateway
from codecontext.cli.errors import err_upstream
from codecontext.errors import UpstreamServiceError

namespaces_app = typer.Typer(
    name="namespaces",
    help="Manage namespaces (list, create, delete).",
    add_completion=False,
)

_ProjectDir = Annotated[
    Path | None,
    typer.Option("--project-dir", hidden=True, help="Directory holding codecontext.yaml."),
]


@namespaces_app.command("list")
def namespaces_list_cmd(project_dir: _ProjectDir = None) -> None:
    """List namespaces with their file counts."""
    gateway = open_gateway(load_or_exit(project_dir))
    try:
        summaries = gateway.list_namespaces()
    except UpstreamServiceError as exc:
        console.print(err_upstream("Listing namespaces", exc))
        raise typer.Exit(1)

    if not summaries:
        console.print("[yellow]No namespaces found.[/]")
        raise typer.Exit(0)

    table = Table(title="Namespaces", show_header=True, header_style="bold")
    table.add_column("Namespace", style="bold")
    table.add_column("Files", justify="right")
    table.add_column("Docs")
    table.add_column("Size", justify="right")
    for name, summary in sorted(summaries.items()):
        table.add_row(
            name,
            str(summary.record_count),
            "[green]✓[/]" if summary.has_documentation else "",
            f"{summary.total_size:,} B",
        )
    console.print(table)


@namespaces_app.command("create")
def namespaces_create_cmd(
    name: Annotated[str, typer.Argument(help="Namespace to create.")],
    project_dir: _ProjectDir = None,
) -> None:
    """Create a namespace (writes placeholder records so it shows up in listings)."""
    gateway = open_gateway(load_or_exit(project_dir))
    try:
        gateway.create_namespace(name)
    except UpstreamServiceError as exc:
        console.print(err_upstream(f"Creating namespace '{name}'", exc))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Created namespace '{name}'")


@namespaces_app.command("delete")
def namespaces_delete_cmd(
    name: Annotated[str, typer.Argument(help="Namespace to delete.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    project_dir: _ProjectDir = None,
) -> None:
    """Delete a namespace and every record in it."""
    if not yes and not typer.confirm(f"Delete namespace '{name}' and all its records?", default=False):
        console.print("[dim]Aborted.[/]")
        raise typer.Exit(0)

    gateway = open_gateway(load_or_exit(project_dir))
    try:
        gateway.delete_namespace(name)
    except UpstreamServiceError as exc:
        console.print(err_upstream(f"Deleting namespace '{name}'", exc))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted namespace '{name}'")
