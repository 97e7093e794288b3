"""codecontext CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from codecontext.cli.ask import ask_cmd
from codecontext.cli.ingest import ingest_cmd
from codecontext.cli.namespaces import namespaces_app
from codecontext.cli.plans import plans_app
from codecontext.cli.query import query_cmd
from codecontext.cli.serve import serve_cmd
from codecontext.logging_config import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("codecontext")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codecontext {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="codecontext",
    help=(
        "codecontext: retrieval-augmented chat over your codebase.\n\n"
        "  codecontext ingest   Store project files in a namespace.\n"
        "  codecontext ask      Ask a question grounded in a namespace.\n"
        "  codecontext serve    Run the HTTP API."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output."),
    ] = False,
) -> None:
    """codecontext: retrieval-augmented chat over your codebase."""
    setup_logging("DEBUG" if verbose else "WARNING")


app.command("ingest")(ingest_cmd)
app.command("query")(query_cmd)
app.command("ask")(ask_cmd)
app.command("serve")(serve_cmd)
app.add_typer(namespaces_app, name="namespaces")
app.add_typer(plans_app, name="plans")


@app.command("version")
def version_cmd() -> None:
    """Show the installed codecontext version."""
    typer.echo(f"codecontext {_installed_version()}")


if __name__ == "__main__":
    app()
