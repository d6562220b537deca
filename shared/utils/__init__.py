"""Shared utility modules for all games.

- retry: Exponential backoff with HTTP 429 Retry-After support
- tokens: Token usage and cost extraction
- logging: JSON-formatted logging setup
"""

from .retry import retry_with_backoff
from .tokens import extract_token_usage, extract_cost_info
from .logging import JSONFormatter, setup_logging

__all__ = [
    "retry_with_backoff",
    "extract_token_usage",
    "extract_cost_info",
    "JSONFormatter",
    "setup_logging",
]
