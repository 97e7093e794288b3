"""codecontext ingest: write project files into a namespace.

Each file becomes one complete record plus overlapping chunks (code,
documentation and core-architecture files only). Directories expand to
the files they contain; --recursive descends into subdirectories. Files
that are not UTF-8 text are skipped.
"""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from codecontext.cli.common import console, embedder_or_exit, load_or_exit, open_gateway
from codecontext.cli.errors import err_upstream
from codecontext.errors import UpstreamServiceError
from codecontext.ingest.categorize import categorize_file
from codecontext.ingest.chunker import FileChunker
from codecontext.ingest.embedding_writer import DocumentWriter

_MAX_DEPTH = 10
_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".next"}


def ingest_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files or directories to ingest.")],
    namespace: Annotated[str, typer.Option("--namespace", "-n", help="Target namespace.")],
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Recurse into subdirectories (max 10 levels)."),
    ] = False,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be written without calling any service."),
    ] = False,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", hidden=True, help="Directory holding codecontext.yaml."),
    ] = None,
) -> None:
    """Chunk, embed and store files in a namespace."""
    files = expand_paths(paths, recursive=recursive, exclude=exclude or [])
    if not files:
        console.print("[yellow]No files found to ingest.[/]")
        raise typer.Exit(0)

    if dry_run:
        _show_plan(files)
        return

    cfg = load_or_exit(project_dir)
    writer = DocumentWriter(open_gateway(cfg), embedder_or_exit(cfg))

    written = failed = 0
    for path in files:
        text = _read_text(path)
        if text is None:
            console.print(f"  [dim]↷ {path} (not UTF-8 text, skipped)[/]")
            continue
        filename = path.as_posix()
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task(f"{filename}", total=None)
            try:
                result = writer.write(
                    namespace,
                    text,
                    filename,
                    on_progress=lambda done, total: prog.update(task, completed=done, total=total),
                )
            except UpstreamServiceError as exc:
                console.print(err_upstream(f"Writing {filename}", exc))
                failed += 1
                continue
        written += 1
        console.print(f"  [green]✓[/] {filename} ({result.records_written} records)")

    console.print(f"\n  {written} file(s) stored in '{namespace}'" + (f", {failed} failed" if failed else ""))
    if failed:
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def expand_paths(paths: list[Path], recursive: bool, exclude: list[str]) -> list[Path]:
    """Files named by *paths*, directories expanded, in a stable order."""
    out: list[Path] = []
    for path in paths:
        if path.is_file():
            out.append(path)
        elif path.is_dir():
            out.extend(_walk(path, recursive=recursive, depth=0))
        else:
            console.print(f"  [red]✗ Not found:[/] {path}")
    return [p for p in dict.fromkeys(out) if not _excluded(p, exclude)]


def _walk(directory: Path, recursive: bool, depth: int) -> list[Path]:
    found: list[Path] = []
    for child in sorted(directory.iterdir()):
        if child.is_file():
            found.append(child)
        elif recursive and child.is_dir() and child.name not in _SKIP_DIRS and depth < _MAX_DEPTH:
            found.extend(_walk(child, recursive=True, depth=depth + 1))
    return found


def _excluded(path: Path, patterns: list[str]) -> bool:
    return any(
        fnmatch.fnmatch(path.name, pat) or fnmatch.fnmatch(path.as_posix(), pat) for pat in patterns
    )


def _read_text(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return None
    return text if text.strip() else None


def _show_plan(files: list[Path]) -> None:
    chunker = FileChunker()
    table = Table(title="Dry run", show_header=True, header_style="bold")
    table.add_column("File", style="bold")
    table.add_column("Type")
    table.add_column("Records", justify="right")
    for path in files:
        text = _read_text(path)
        if text is None:
            table.add_row(path.as_posix(), "[dim]skipped[/]", "0")
            continue
        filename = path.as_posix()
        table.add_row(filename, categorize_file(filename), str(len(chunker.chunk(text, filename))))
    console.print(table)
    console.print("  [dim]Dry run: nothing written[/]")
