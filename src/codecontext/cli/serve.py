"""codecontext serve: run the HTTP API under uvicorn."""

from __future__ import annotations

from typing import Annotated

import typer
import uvicorn

from codecontext.api.server import create_app
from codecontext.cli.common import console


def serve_cmd(
    host: Annotated[str, typer.Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port.")] = 8000,
) -> None:
    """Serve POST /api/vector and POST /api/chat."""
    console.print(f"Serving codecontext on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, log_level="info")
