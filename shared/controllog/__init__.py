"""Controllable logging SDK (events + balanced postings).

This provides double-entry accounting for:
- Token usage (resource.tokens)
- Time tracking (resource.time_ms)
- Cost tracking (resource.money)
- State transitions (truth.state)
- Utility/reward (value.utility)
"""

from .sdk import init, event, post, new_id
from .builders import (
    model_prompt,
    model_completion,
    state_move,
    puzzle_complete,
)

__all__ = [
    "init",
    "event",
    "post",
    "new_id",
    "model_prompt",
    "model_completion",
    "state_move",
    "puzzle_complete",
]
