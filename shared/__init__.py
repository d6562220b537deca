"""Bracket City Eval - Shared infrastructure.

This module contains the common utilities the puzzle runner is built on:
- controllog: Double-entry accounting SDK for structured logging
- adapters: OpenRouter API adapter for LLM calls
- utils: Common utilities (retry, tokens, logging)
"""

__version__ = "0.1.0"
