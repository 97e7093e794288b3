"""Error taxonomy shared by the gateway, retrieval and plan layers.

Parse failures are not exceptions: plan extraction returns ``None``.
"""

from __future__ import annotations


class CodeContextError(Exception):
    """Base class for all codecontext failures."""


class ConfigurationError(CodeContextError, ValueError):
    """Missing or invalid keys / index parameters. Never retried."""


class UpstreamServiceError(CodeContextError):
    """Non-2xx reply (or transport failure) from Pinecone, Voyage or the LLM provider.

    Attributes:
        status: HTTP status code, or None when no response was received.
        message: Message reported by the upstream service.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class ConsistencyError(CodeContextError):
    """An expected record is not visible yet (eventually consistent index)."""
