"""OpenRouter API adapter for LLM calls.

Provides a function-based `chat` call with retry, and a stateful
`OpenRouterAdapter` that resolves CLI model names from
shared/inputs/model_mappings.yml and returns per-call metadata
(tokens, latency, cost).
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import requests
import yaml

from ..utils.retry import retry_with_backoff
from ..utils.tokens import extract_cost_info, extract_token_usage

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _get_shared_inputs_path() -> Path:
    """Get path to shared/inputs directory."""
    return Path(__file__).parent.parent / "inputs"


def _load_model_mappings(mappings_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the `models` section of the model mappings YAML file."""
    if mappings_file is None:
        mappings_file = _get_shared_inputs_path() / "model_mappings.yml"

    try:
        with open(mappings_file, "r") as f:
            data = yaml.safe_load(f) or {}
        return data.get("models", {})
    except FileNotFoundError:
        logger.warning(f"Model mappings file not found: {mappings_file}")
        return {}


def _load_canonical_models(mappings_file: Optional[Path] = None) -> List[str]:
    """Load the list of models run by a full evaluation."""
    if mappings_file is None:
        mappings_file = _get_shared_inputs_path() / "model_mappings.yml"

    try:
        with open(mappings_file, "r") as f:
            data = yaml.safe_load(f) or {}
        return data.get("canonical_models", [])
    except FileNotFoundError:
        logger.warning(f"Model mappings file not found: {mappings_file}")
        return []


def flatten_mappings(mappings: Dict[str, Any]) -> Dict[str, str]:
    """Flatten thinking/non_thinking sections into one name -> id dict."""
    flat: Dict[str, str] = {}
    if "thinking" in mappings:
        flat.update(mappings["thinking"])
    if "non_thinking" in mappings:
        flat.update(mappings["non_thinking"])
    for k, v in mappings.items():
        if k not in ("thinking", "non_thinking") and isinstance(v, str):
            flat[k] = v
    return flat


# Cache the thinking models set (loaded once)
_THINKING_MODELS: Optional[Set[str]] = None


def _get_thinking_models() -> Set[str]:
    """Get cached set of thinking model IDs."""
    global _THINKING_MODELS
    if _THINKING_MODELS is None:
        _THINKING_MODELS = set(_load_model_mappings().get("thinking", {}).values())
    return _THINKING_MODELS


def _get_api_key() -> str:
    """Get OpenRouter API key from environment."""
    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY environment variable not set")
    return api_key


@retry_with_backoff(max_retries=5, base_delay=2.0, exceptions=(requests.RequestException,))
def chat(messages: List[Dict], model: str, timeout: int = 300) -> Dict:
    """
    Call OpenRouter Chat Completions API.

    Args:
        messages: List of message objects with 'role' and 'content'
        model: OpenRouter model ID (e.g., 'openai/o3', 'anthropic/claude-sonnet-4')
        timeout: Request timeout in seconds

    Returns:
        Raw API response JSON including usage and cost info

    Raises:
        requests.RequestException: On API errors
    """
    headers = {
        "Authorization": f"Bearer {_get_api_key()}",
        "Content-Type": "application/json",
        "X-Title": "Bracket City Eval",
    }

    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "usage": {"include": True},
    }

    if model in _get_thinking_models():
        # Reasoning models reject temperature/max_tokens and think for a while
        timeout = max(timeout, 600)
    else:
        payload.update({
            "max_tokens": 8000,
            "temperature": 0.0,
        })

    response = requests.post(OPENROUTER_URL, json=payload, headers=headers, timeout=timeout)

    if not response.ok:
        try:
            error_msg = response.json().get("error", {}).get("message", "")
        except ValueError:
            error_msg = ""
        if "data policy" in error_msg.lower() and response.status_code == 404:
            logger.error(f"[OpenRouter] Data policy configuration required for model: {model}")
            error = requests.HTTPError(
                f"OpenRouter data policy error for model '{model}': {error_msg}\n"
                f"Configure your data policy settings at: https://openrouter.ai/settings/privacy"
            )
            error.response = response
            raise error

    response.raise_for_status()
    response_data = response.json()

    choices = response_data.get("choices") or []
    if choices:
        content = choices[0].get("message", {}).get("content") or ""
        _, completion_tokens, _ = extract_token_usage(response_data)
        if not content.strip() and completion_tokens > 0:
            logger.warning(
                f"[OpenRouter] Model generated {completion_tokens} tokens but content is empty "
                f"(finish_reason: {choices[0].get('finish_reason')})"
            )

    return response_data


class OpenRouterAdapter:
    """Stateful adapter for calling models through OpenRouter."""

    def __init__(self, model_mappings_file: Optional[str] = None):
        self.api_key = _get_api_key()

        if model_mappings_file:
            self.model_mappings = _load_model_mappings(Path(model_mappings_file))
        else:
            self.model_mappings = _load_model_mappings()

        logger.info(f"Loaded model mappings with {len(flatten_mappings(self.model_mappings))} models")

    def resolve_model(self, model_name: str) -> str:
        """Resolve CLI model name to OpenRouter model ID."""
        flat = flatten_mappings(self.model_mappings)
        # Unknown names are assumed to be full model IDs already
        return flat.get(model_name, model_name)

    def call_chat_with_metadata(
        self, model_name: str, messages: List[Dict], include_text: bool = True
    ) -> Tuple[str, Dict]:
        """Send a full chat transcript. Returns (content, metadata)."""
        model_id = self.resolve_model(model_name)
        if model_name not in flatten_mappings(self.model_mappings):
            logger.warning(f"Model '{model_name}' not found in mappings, using as-is: {model_id}")

        logger.debug(f"Calling model {model_id} (from {model_name}) with {len(messages)} messages")

        start_time = time.time()
        response_data = chat(messages, model_id)
        latency_ms = (time.time() - start_time) * 1000

        content = ""
        choices = response_data.get("choices") or []
        if choices:
            content = choices[0].get("message", {}).get("content") or ""

        input_tokens, output_tokens, total_tokens = extract_token_usage(response_data)
        cost, upstream_cost = extract_cost_info(response_data)
        metadata = {
            "model_id": model_id,
            "latency_ms": latency_ms,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": total_tokens,
            "openrouter_cost": cost,
            "upstream_cost": upstream_cost or 0.0,
        }
        if include_text:
            metadata["request_text"] = messages[-1].get("content", "") if messages else ""
            metadata["response_text"] = content

        logger.info(
            f"Model call completed. Tokens: {metadata['total_tokens']}, "
            f"Latency: {latency_ms:.1f}ms"
        )

        return content, metadata
