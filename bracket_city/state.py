"""Puzzle records and immutable solve state for Bracket City."""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bracket_city.parser import Clue, find_active_clues


@dataclass(frozen=True)
class PuzzleData:
    """A puzzle input record: the initial document and its answer key."""
    initial_puzzle: str
    solutions: Mapping[str, str]
    puzzle_date: str = ""
    completion_text: str = ""
    completion_url: str = ""
    puzzle_solution: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PuzzleData":
        """Create PuzzleData from a stored puzzle record."""
        return cls(
            initial_puzzle=data["initialPuzzle"],
            solutions=MappingProxyType(dict(data["solutions"])),
            puzzle_date=data.get("puzzleDate", ""),
            completion_text=data.get("completionText", ""),
            completion_url=data.get("completionURL", ""),
            puzzle_solution=data.get("puzzleSolution", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initialPuzzle": self.initial_puzzle,
            "solutions": dict(self.solutions),
            "puzzleDate": self.puzzle_date,
            "completionText": self.completion_text,
            "completionURL": self.completion_url,
            "puzzleSolution": self.puzzle_solution,
        }

    @property
    def total_clues(self) -> int:
        return len(self.solutions)


def _with_member(members: Tuple[str, ...], item: str) -> Tuple[str, ...]:
    """Ordered-set insert: append item unless already present."""
    if item in members:
        return members
    return members + (item,)


@dataclass(frozen=True)
class PuzzleState:
    """Snapshot of a puzzle being solved.

    Never mutated: each action returns a new PuzzleState, so earlier
    snapshots stay valid for replay. The expression collections are
    ordered sets keyed on the exact pre-replacement clue text, in the
    order the expressions were first added.
    """
    display_state: str
    total_clues: int
    solved_expressions: Tuple[str, ...] = field(default_factory=tuple)
    hinted_expressions: Tuple[str, ...] = field(default_factory=tuple)
    revealed_expressions: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def initial(cls, puzzle: PuzzleData) -> "PuzzleState":
        """State at puzzle load: nothing solved, every bracket unresolved."""
        return cls(display_state=puzzle.initial_puzzle, total_clues=puzzle.total_clues)

    def active_clues(self) -> List[Clue]:
        return find_active_clues(self.display_state)

    def find_active(self, expression: str) -> Optional[Clue]:
        """First active clue whose expression is exactly `expression`."""
        for clue in self.active_clues():
            if clue.expression == expression:
                return clue
        return None

    @property
    def clues_remaining(self) -> int:
        return len(self.active_clues())

    @property
    def is_complete(self) -> bool:
        return not self.active_clues()

    @property
    def completion_percentage(self) -> float:
        if self.total_clues <= 0:
            return 0.0
        return len(self.solved_expressions) / self.total_clues * 100

    def with_solved(self, display_state: str, expression: str) -> "PuzzleState":
        return replace(
            self,
            display_state=display_state,
            solved_expressions=_with_member(self.solved_expressions, expression),
        )

    def with_hinted(self, expression: str) -> "PuzzleState":
        return replace(
            self,
            hinted_expressions=_with_member(self.hinted_expressions, expression),
        )

    def with_revealed(self, display_state: str, expression: str) -> "PuzzleState":
        return replace(
            self,
            display_state=display_state,
            solved_expressions=_with_member(self.solved_expressions, expression),
            revealed_expressions=_with_member(self.revealed_expressions, expression),
        )
