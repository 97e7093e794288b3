"""codecontext: context indexing, retrieval and plan tracking for project-aware chat."""

__version__ = "0.1.0"
