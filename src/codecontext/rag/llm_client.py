"""LiteLLM client wrapper: chat completions with retry/backoff, embeddings.

Retry policy for completions (LiteLLM's own retries are disabled so the
policy below is the only one in play):
  - at most 3 attempts
  - delay before attempt n+1 = 1000 ms * 2**n + jitter(0-200 ms)
  - retried: HTTP 429, HTTP >= 500, or a message containing
    "fetch failed", "rate limit" or "Server error"
  - anything else aborts immediately; exhausting attempts re-raises the last error
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

import litellm

from codecontext.errors import UpstreamServiceError

litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_MS = 1000
_JITTER_MS = 200
_RETRYABLE_MESSAGES = ("fetch failed", "rate limit", "Server error")

DEFAULT_EMBEDDING_MODEL = "voyage/voyage-code-2"


def error_status(exc: BaseException) -> int | None:
    """HTTP status carried by *exc* (LiteLLM uses ``status_code``), if any."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_retryable(exc: BaseException) -> bool:
    status = error_status(exc)
    if status is not None and (status == 429 or status >= 500):
        return True
    message = str(exc)
    return any(marker in message for marker in _RETRYABLE_MESSAGES)


def backoff_delay(attempt: int, backoff_ms: int = DEFAULT_BACKOFF_MS) -> float:
    """Seconds to wait after failed attempt number *attempt* (1-based)."""
    jitter = random.random() * _JITTER_MS
    return (backoff_ms * 2**attempt + jitter) / 1000.0


def with_retry(
    fn: Callable[[], T],
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_ms: int = DEFAULT_BACKOFF_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn* until it succeeds, a non-retryable error occurs, or attempts run out."""
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts or not is_retryable(exc):
                raise
            delay = backoff_delay(attempt, backoff_ms)
            logger.warning(
                "LLM request failed (attempt %d/%d): %s; retrying in %.2fs",
                attempt, attempts, exc, delay,
            )
            sleep(delay)
            attempt += 1


def complete(
    model: str,
    messages: list[dict],
    system: str | None = None,
    api_key: str | None = None,
    max_tokens: int = 4000,
    attempts: int = DEFAULT_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Call litellm.completion() under the retry policy. Returns the content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style user/assistant message list.
        system: Optional system prompt, sent as the first message.
        api_key: Provider key; LiteLLM falls back to its env vars when None.
        max_tokens: Maximum output tokens.
        attempts: Total attempts including the first one.
    """
    full_messages = [{"role": "system", "content": system}] if system else []
    full_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)

    def _call() -> str:
        response = litellm.completion(
            model=model,
            messages=full_messages,
            max_tokens=max_tokens,
            api_key=api_key or None,
            num_retries=0,
        )
        return response.choices[0].message.content or ""

    return with_retry(_call, attempts=attempts, sleep=sleep)


def embed(text: str, model: str = DEFAULT_EMBEDDING_MODEL, api_key: str | None = None) -> list[float]:
    """Call litellm.embedding() and return the embedding vector.

    Raises:
        UpstreamServiceError: If the embedding provider call fails.
    """
    try:
        response = litellm.embedding(model=model, input=[text], api_key=api_key or None)
    except Exception as exc:
        raise UpstreamServiceError(
            f"Failed to get embeddings: {exc}", status=error_status(exc)
        ) from exc
    return response.data[0]["embedding"]


class Embedder:
    """Callable text → vector bound to one model and key."""

    def __init__(self, model: str = DEFAULT_EMBEDDING_MODEL, api_key: str | None = None) -> None:
        self.model = model
        self.api_key = api_key

    def __call__(self, text: str) -> list[float]:
        return embed(text, model=self.model, api_key=self.api_key)
