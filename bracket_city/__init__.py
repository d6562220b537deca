"""Bracket City: a nested-clue word puzzle for LLM evaluation.

A puzzle is one sentence with bracketed clues nested inside each other.
Only innermost clues can be answered; solving one splices its answer into
the text and may expose the clue that enclosed it. The run is scored:
- Start at 100 points
- Hint (first letter of an answer): -5 per clue
- Reveal (full answer): -15 per clue
- Wrong guess: -2 each
- An unfinished puzzle scores 0
"""

from bracket_city.engine import PuzzleEngine
from bracket_city.game import BracketCityGame
from bracket_city.state import PuzzleData, PuzzleState

__version__ = "0.1.0"

__all__ = ["BracketCityGame", "PuzzleData", "PuzzleEngine", "PuzzleState"]
