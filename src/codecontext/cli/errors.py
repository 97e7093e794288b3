"""Rich error messages for the CLI: what went wrong plus the action that fixes it.

Usage:
    from codecontext.cli.errors import err_missing_config
    console.print(err_missing_config())
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_missing_config() -> str:
    """Pinecone key or index name not configured."""
    return (
        "[red]Error:[/] Missing required configuration (Pinecone key or index name).\n"
        "  Set:  export PINECONE_API_KEY=...\n"
        "  and:  export CODECONTEXT_INDEX_NAME=my-index  (or vectordb.index_name in codecontext.yaml)"
    )


def err_no_api_key(provider: str) -> str:
    """No API key for an LLM / embedding *provider*.

    Example:
        No API key for 'voyage'. Set:  export VOYAGE_API_KEY=...
    """
    env_var = f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_upstream(action: str, exc: Exception) -> str:
    """A Pinecone / embedding / LLM call failed."""
    return (
        f"[red]Error:[/] {action} failed: {exc}\n"
        "  Check your API keys and network access, then retry."
    )


def err_plan_not_found(plan_id: str, namespace: str) -> str:
    return (
        f"[red]Error:[/] Plan '{plan_id}' not found in namespace '{namespace}'.\n"
        f"  List plans with:  codecontext plans list -n {namespace}"
    )


def err_no_plan_in_text(source: str) -> str:
    return (
        f"[yellow]No plan found in {source}.[/]\n"
        '  Plans start with a "## Plan: <title>" heading followed by numbered steps.'
    )
