"""Context assembler: renders deduplicated matches into system-prompt text.

No truncation and no token budgeting: the prompt grows with the corpus.
"""

from __future__ import annotations

from codecontext.db.models import Match

BUCKETS: dict[str, str] = {
    "project-structure": "Project Structure",
    "core-architecture": "Core Architecture",
    "documentation": "Documentation",
}
DEFAULT_BUCKET = "Component Code"
BUCKET_ORDER: tuple[str, ...] = (
    "Project Structure",
    "Core Architecture",
    "Documentation",
    "Component Code",
)

_LEGEND = """File Types:
- Project Structure (configuration and setup files)
- Core Architecture (app layout, API routes, services)
- Documentation (guides and explanations)
- Component Code (UI components and utilities)"""


def language_tag(filename: str | None) -> str:
    """Fence language for *filename*: the text after the last '.'."""
    if not filename:
        return ""
    return filename.rsplit(".", 1)[-1]


def fenced(filename: str | None, text: str) -> str:
    return f"```{language_tag(filename)}\n{text}\n```"


def group_by_bucket(matches: list[Match]) -> dict[str, list[str]]:
    """Filenames per display bucket, each filename listed once."""
    buckets: dict[str, list[str]] = {name: [] for name in BUCKET_ORDER}
    seen: set[str] = set()
    for match in matches:
        filename = match.filename
        if not filename or filename in seen:
            continue
        seen.add(filename)
        buckets[BUCKETS.get(match.type or "", DEFAULT_BUCKET)].append(filename)
    return buckets


def build_project_context(namespace: str, matches: list[Match]) -> str:
    """Project overview: bucketed file listing followed by every full file body."""
    listing = "\n\n".join(
        f"{bucket} Files:\n" + "\n".join(f"- {f}" for f in files)
        for bucket, files in group_by_bucket(matches).items()
        if files
    )
    bodies = "\n".join(
        f"\nFile: {m.filename}\n{fenced(m.filename, m.text)}" for m in matches
    )
    return (
        f'Project Overview for namespace "{namespace}":\n'
        "This namespace is a collection of project files organized together in the "
        "vector database. The namespace serves as a container for related files and "
        "their context, similar to a project folder.\n\n"
        f"{listing}\n\n"
        f'Full File Contents from namespace "{namespace}":\n'
        f"{bodies}\n\n"
        f"{_LEGEND}\n\n"
        f'Note: This namespace "{namespace}" is an organizational concept for grouping '
        "project files together. When discussing programming concepts like C# namespaces "
        "or JavaScript modules, those are separate from this organizational namespace."
    )


def build_query_context(matches: list[Match]) -> str:
    """Fenced bodies of the files relevant to one query; empty when none matched."""
    if not matches:
        return ""
    return "\n\n".join(
        f"Complete file {m.filename}:\n{fenced(m.filename, m.text)}" for m in matches
    )
