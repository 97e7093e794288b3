"""File taxonomy: filename → type → storage section.

Rules are tested in priority order; the first matching tier wins.
"""

from __future__ import annotations

from codecontext.db.models import FileType, Section

_PROJECT_STRUCTURE = ("package.json", "tsconfig.json", "next.config", ".env", "README")
_CORE_ARCHITECTURE = ("/app/", "/api/", "layout.", "route.", "/lib/", "/services/")
_DOCUMENTATION = ("/docs/", ".md")

# Types that get overlapping search chunks in addition to the complete record.
CHUNKED_TYPES: frozenset[str] = frozenset({"code", "documentation", "core-architecture"})


def is_plan_filename(filename: str) -> bool:
    return "plan-" in filename and filename.endswith((".json", ".md"))


def categorize_file(filename: str) -> FileType:
    """Return the storage type for *filename*.

    Examples:
        >>> categorize_file("plan-123.json")
        'plan'
        >>> categorize_file("src/app/page.tsx")
        'core-architecture'
        >>> categorize_file("notes.md")
        'documentation'
    """
    if is_plan_filename(filename):
        return "plan"
    if any(p in filename for p in _PROJECT_STRUCTURE):
        return "project-structure"
    if any(p in filename for p in _CORE_ARCHITECTURE):
        return "core-architecture"
    if any(p in filename for p in _DOCUMENTATION):
        return "documentation"
    return "code"


def section_for_type(file_type: str) -> Section:
    """Section of the complete record for *file_type*. Chunks always use 'chunks'."""
    if file_type == "plan":
        return "plans"
    if file_type == "documentation":
        return "documentation"
    return "full"
