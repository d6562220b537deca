"""Tests for the OpenRouter adapter and its helpers."""

from unittest.mock import Mock, patch

import pytest
import requests

from shared.adapters.openrouter_adapter import OpenRouterAdapter, chat, flatten_mappings
from shared.utils.retry import retry_with_backoff
from shared.utils.tokens import extract_cost_info, extract_token_usage


RESPONSE = {
    "choices": [{"message": {"content": "ACTION: hint\nCLUE: cat"}, "finish_reason": "stop"}],
    "usage": {
        "prompt_tokens": 120,
        "completion_tokens": 15,
        "total_tokens": 135,
        "cost": 0.0021,
        "cost_details": {"upstream_inference_cost": 0.0019},
    },
}


class TestTokenExtraction:
    """Test cases for usage and cost extraction."""

    def test_extract_token_usage(self):
        assert extract_token_usage(RESPONSE) == (120, 15, 135)

    def test_missing_usage_is_zero(self):
        assert extract_token_usage({}) == (0, 0, 0)

    def test_extract_cost_info(self):
        assert extract_cost_info(RESPONSE) == (0.0021, 0.0019)

    def test_cost_without_upstream(self):
        assert extract_cost_info({"usage": {"cost": 0.5}}) == (0.5, None)


class TestRetryWithBackoff:
    """Test cases for retry_with_backoff."""

    @patch("shared.utils.retry.time.sleep")
    def test_retries_then_succeeds(self, mock_sleep):
        calls = Mock(side_effect=[requests.ConnectionError("down"), "ok"])

        @retry_with_backoff(max_retries=2, base_delay=1.0, exceptions=(requests.RequestException,))
        def flaky():
            return calls()

        assert flaky() == "ok"
        assert mock_sleep.call_count == 1

    @patch("shared.utils.retry.time.sleep")
    def test_reraises_after_last_retry(self, mock_sleep):
        @retry_with_backoff(max_retries=2, exceptions=(ValueError,))
        def always_fails():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            always_fails()
        assert mock_sleep.call_count == 2

    @patch("shared.utils.retry.time.sleep")
    def test_honours_retry_after_header(self, mock_sleep):
        response = Mock(status_code=429, headers={"Retry-After": "7"})
        error = requests.HTTPError("rate limited")
        error.response = response
        calls = Mock(side_effect=[error, "ok"])

        @retry_with_backoff(max_retries=1, base_delay=1.0)
        def limited():
            return calls()

        assert limited() == "ok"
        mock_sleep.assert_called_once_with(7.0)

    @patch("shared.utils.retry.time.sleep")
    def test_other_exceptions_are_not_retried(self, mock_sleep):
        @retry_with_backoff(max_retries=3, exceptions=(requests.RequestException,))
        def broken():
            raise KeyError("x")

        with pytest.raises(KeyError):
            broken()
        mock_sleep.assert_not_called()


class TestChat:
    """Test cases for the chat request function."""

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"})
    @patch("shared.adapters.openrouter_adapter._get_thinking_models", return_value=set())
    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_non_thinking_model_payload(self, mock_post, _mock_thinking):
        mock_post.return_value = Mock(ok=True, json=Mock(return_value=RESPONSE))

        assert chat([{"role": "user", "content": "hi"}], "openai/gpt-4o") == RESPONSE

        kwargs = mock_post.call_args.kwargs
        assert kwargs["json"]["temperature"] == 0.0
        assert kwargs["json"]["max_tokens"] == 8000
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["timeout"] == 300

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"})
    @patch("shared.adapters.openrouter_adapter._get_thinking_models", return_value={"openai/o3"})
    @patch("shared.adapters.openrouter_adapter.requests.post")
    def test_thinking_model_payload(self, mock_post, _mock_thinking):
        mock_post.return_value = Mock(ok=True, json=Mock(return_value=RESPONSE))

        chat([{"role": "user", "content": "hi"}], "openai/o3")

        kwargs = mock_post.call_args.kwargs
        assert "temperature" not in kwargs["json"]
        assert kwargs["timeout"] == 600


class TestOpenRouterAdapter:
    """Test cases for OpenRouterAdapter."""

    @patch.dict("os.environ", {}, clear=True)
    def test_missing_api_key(self):
        with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
            OpenRouterAdapter()

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"})
    def test_resolve_model(self, tmp_path):
        mappings = tmp_path / "mappings.yml"
        mappings.write_text(
            "models:\n  thinking:\n    o3: openai/o3\n  non_thinking:\n    gpt4o: openai/gpt-4o\n"
        )
        adapter = OpenRouterAdapter(str(mappings))

        assert adapter.resolve_model("gpt4o") == "openai/gpt-4o"
        assert adapter.resolve_model("o3") == "openai/o3"
        assert adapter.resolve_model("vendor/unknown") == "vendor/unknown"

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"})
    @patch("shared.adapters.openrouter_adapter.chat", return_value=RESPONSE)
    def test_call_chat_with_metadata(self, mock_chat):
        adapter = OpenRouterAdapter()
        messages = [{"role": "system", "content": "rules"}, {"role": "user", "content": "puzzle"}]

        content, metadata = adapter.call_chat_with_metadata("some/model", messages)

        assert content == "ACTION: hint\nCLUE: cat"
        mock_chat.assert_called_once_with(messages, "some/model")
        assert metadata["input_tokens"] == 120
        assert metadata["output_tokens"] == 15
        assert metadata["total_tokens"] == 135
        assert metadata["openrouter_cost"] == 0.0021
        assert metadata["upstream_cost"] == 0.0019
        assert metadata["request_text"] == "puzzle"
        assert metadata["response_text"] == content
        assert metadata["latency_ms"] >= 0

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"})
    @patch("shared.adapters.openrouter_adapter.chat", return_value=RESPONSE)
    def test_call_without_text(self, _mock_chat):
        _, metadata = OpenRouterAdapter().call_chat_with_metadata(
            "some/model", [{"role": "user", "content": "x"}], include_text=False
        )

        assert "request_text" not in metadata
        assert "response_text" not in metadata


def test_flatten_mappings():
    flat = flatten_mappings({
        "thinking": {"o3": "openai/o3"},
        "non_thinking": {"gpt4o": "openai/gpt-4o"},
        "legacy": "vendor/legacy",
    })

    assert flat == {"o3": "openai/o3", "gpt4o": "openai/gpt-4o", "legacy": "vendor/legacy"}
