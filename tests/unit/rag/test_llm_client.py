"""Tests for the LiteLLM wrapper and its retry policy."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from codecontext.errors import UpstreamServiceError
from codecontext.rag.llm_client import (
    Embedder,
    backoff_delay,
    complete,
    embed,
    is_retryable,
    with_retry,
)


class FakeAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _response(content):
    mock_response = MagicMock()
    mock_response.choices[0].message.content = content
    return mock_response


# ------------------------------------------------------------------
# Retry classification
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "exc, expected",
    [
        (FakeAPIError("Too many requests", 429), True),
        (FakeAPIError("Internal", 500), True),
        (FakeAPIError("Bad gateway", 502), True),
        (FakeAPIError("Bad request", 400), False),
        (FakeAPIError("Unauthorized", 401), False),
        (RuntimeError("fetch failed"), True),
        (RuntimeError("You hit the rate limit"), True),
        (RuntimeError("Server error: 503"), True),
        (RuntimeError("invalid model"), False),
        (UpstreamServiceError("overloaded", status=529), True),
    ],
)
def test_is_retryable(exc, expected):
    assert is_retryable(exc) is expected


def test_backoff_delay_doubles_per_attempt():
    with patch("codecontext.rag.llm_client.random.random", return_value=0.0):
        assert backoff_delay(1) == 2.0
        assert backoff_delay(2) == 4.0
    with patch("codecontext.rag.llm_client.random.random", return_value=1.0):
        assert backoff_delay(1) == pytest.approx(2.2)


# ------------------------------------------------------------------
# with_retry
# ------------------------------------------------------------------


def test_with_retry_gives_up_after_three_attempts():
    fn = MagicMock(side_effect=FakeAPIError("Service unavailable", 503))
    sleep = MagicMock()

    with patch("codecontext.rag.llm_client.random.random", return_value=0.0):
        with pytest.raises(FakeAPIError, match="Service unavailable"):
            with_retry(fn, sleep=sleep)

    assert fn.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [2.0, 4.0]


def test_with_retry_does_not_retry_client_errors():
    fn = MagicMock(side_effect=FakeAPIError("Bad request", 400))
    sleep = MagicMock()
    with pytest.raises(FakeAPIError):
        with_retry(fn, sleep=sleep)
    assert fn.call_count == 1
    sleep.assert_not_called()


def test_with_retry_returns_after_transient_failure():
    fn = MagicMock(side_effect=[RuntimeError("fetch failed"), "ok"])
    sleep = MagicMock()
    assert with_retry(fn, sleep=sleep) == "ok"
    assert fn.call_count == 2
    assert sleep.call_count == 1


def test_with_retry_raises_the_last_error():
    errors = [FakeAPIError("overloaded", 529), FakeAPIError("rate limit", 429), FakeAPIError("Bad gateway", 502)]
    fn = MagicMock(side_effect=errors)
    with pytest.raises(FakeAPIError) as excinfo:
        with_retry(fn, sleep=MagicMock())
    assert excinfo.value is errors[-1]


def test_with_retry_respects_attempts():
    fn = MagicMock(side_effect=FakeAPIError("rate limit", 429))
    with pytest.raises(FakeAPIError):
        with_retry(fn, attempts=1, sleep=MagicMock())
    assert fn.call_count == 1


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def test_complete_returns_content():
    with patch("codecontext.rag.llm_client.litellm.completion", return_value=_response("Hello")):
        assert complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}]) == "Hello"


def test_complete_returns_empty_string_on_none_content():
    with patch("codecontext.rag.llm_client.litellm.completion", return_value=_response(None)):
        assert complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}]) == ""


def test_complete_sends_system_first_and_disables_litellm_retries():
    with patch("codecontext.rag.llm_client.litellm.completion", return_value=_response("ok")) as m:
        complete(
            "anthropic/claude-3-5-sonnet-20241022",
            [{"role": "user", "content": "Hi", "tools": []}],
            system="You are helpful.",
            api_key="sk-ant",
            max_tokens=123,
        )

    kwargs = m.call_args.kwargs
    assert kwargs["messages"] == [
        {"role": "system", "content": "You are helpful."},
        {"role": "user", "content": "Hi"},
    ]
    assert kwargs["num_retries"] == 0
    assert kwargs["max_tokens"] == 123
    assert kwargs["api_key"] == "sk-ant"


def test_complete_retries_server_errors():
    side_effect = [FakeAPIError("Server error: 500", 500), _response("second time")]
    with patch("codecontext.rag.llm_client.litellm.completion", side_effect=side_effect) as m:
        result = complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}], sleep=MagicMock())
    assert result == "second time"
    assert m.call_count == 2


# ------------------------------------------------------------------
# embed()
# ------------------------------------------------------------------


def test_embed_returns_vector():
    mock_embedding = MagicMock()
    mock_embedding.data = [{"embedding": [0.1, 0.2]}]
    with patch("codecontext.rag.llm_client.litellm.embedding", return_value=mock_embedding) as m:
        assert embed("hello", api_key="pa-key") == [0.1, 0.2]
    assert m.call_args.kwargs["model"] == "voyage/voyage-code-2"
    assert m.call_args.kwargs["input"] == ["hello"]


def test_embed_failure_becomes_upstream_error():
    with patch(
        "codecontext.rag.llm_client.litellm.embedding",
        side_effect=FakeAPIError("invalid key", 401),
    ):
        with pytest.raises(UpstreamServiceError, match="Failed to get embeddings") as excinfo:
            embed("hello")
    assert excinfo.value.status == 401


def test_embedder_binds_model_and_key():
    with patch("codecontext.rag.llm_client.embed", return_value=[1.0]) as m:
        assert Embedder("voyage/voyage-3", "k")("text") == [1.0]
    m.assert_called_once_with("text", model="voyage/voyage-3", api_key="k")
