"""Token usage and cost extraction from OpenRouter responses."""

from typing import Optional, Tuple


def extract_token_usage(response_data: dict) -> Tuple[int, int, int]:
    """
    Extract token usage from API response.

    Args:
        response_data: Raw API response data

    Returns:
        Tuple of (prompt_tokens, completion_tokens, total_tokens);
        missing counts are reported as 0
    """
    usage = response_data.get("usage") or {}

    prompt_tokens = usage.get("prompt_tokens") or 0
    completion_tokens = usage.get("completion_tokens") or 0
    total_tokens = usage.get("total_tokens") or prompt_tokens + completion_tokens

    return prompt_tokens, completion_tokens, total_tokens


def extract_cost_info(response_data: dict) -> Tuple[float, Optional[float]]:
    """
    Extract cost information from API response.

    Args:
        response_data: Raw API response data

    Returns:
        Tuple of (total_cost, upstream_cost) in USD; upstream_cost is
        None unless the request was billed to the caller's own key
    """
    usage = response_data.get("usage") or {}

    # Total cost charged by OpenRouter
    total_cost = usage.get("cost") or 0.0

    # Upstream cost (for BYOK requests)
    cost_details = usage.get("cost_details") or {}
    upstream_cost = cost_details.get("upstream_inference_cost")
    if upstream_cost is not None:
        upstream_cost = float(upstream_cost)

    return float(total_cost), upstream_cost
