"""Action engine for Bracket City.

Guess, hint and reveal are the only ways a puzzle advances. Each action
takes the current PuzzleState and the answer key and returns an
ActionOutcome holding the next state. Failed actions return the input
state unchanged, so an outcome can always be adopted as the new state.

Player mistakes never raise: they come back as failed outcomes with a
message that can be shown to the player as-is.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from bracket_city.parser import replace_clue
from bracket_city.state import PuzzleState

logger = logging.getLogger(__name__)


class OutcomeKind(Enum):
    """What happened when an action was applied."""
    SOLVED = "solved"
    HINTED = "hinted"
    REVEALED = "revealed"
    INCORRECT = "incorrect"
    NO_ACTIVE_CLUE = "no_active_clue"
    NO_SOLUTION = "no_solution"


@dataclass(frozen=True)
class ActionOutcome:
    """Result of applying one action to a puzzle."""
    action: str  # "guess", "hint" or "reveal"
    kind: OutcomeKind
    message: str
    state: PuzzleState
    expression: str
    matched_expression: Optional[str] = None
    hint: Optional[str] = None
    solution: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.kind in (OutcomeKind.SOLVED, OutcomeKind.HINTED, OutcomeKind.REVEALED)

    @property
    def display_state(self) -> str:
        return self.state.display_state

    @property
    def clues_remaining(self) -> int:
        return self.state.clues_remaining

    def to_dict(self) -> Dict[str, Any]:
        """Action outcome record as exchanged with players."""
        record: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "displayState": self.display_state,
            "cluesRemaining": self.clues_remaining,
        }
        if self.hint is not None:
            record["hint"] = self.hint
        if self.solution is not None:
            record["solution"] = self.solution
        return record


def _normalize(text: str) -> str:
    return text.strip().lower()


class PuzzleEngine:
    """Rules for applying actions to a Bracket City puzzle.

    All methods are pure: the same inputs always give the same outcome,
    and nothing is stored between calls.
    """

    @classmethod
    def guess(
        cls,
        expression: str,
        guess_text: str,
        state: PuzzleState,
        solutions: Mapping[str, str],
    ) -> ActionOutcome:
        """Try `guess_text` against the active clues.

        The guess is checked against every active clue, not only the one
        named by `expression`; the first clue in document order whose
        solution matches (ignoring case and surrounding whitespace) is
        solved. The stored solution text replaces the clue, not the guess.
        """
        normalized_guess = _normalize(guess_text)

        for clue in state.active_clues():
            solution = solutions.get(clue.expression)
            if solution and normalized_guess == _normalize(solution):
                new_state = state.with_solved(
                    replace_clue(state.display_state, clue, solution),
                    clue.expression,
                )
                if clue.expression != expression:
                    logger.debug(
                        f"Guess {guess_text!r} for {expression!r} matched {clue.expression!r}"
                    )
                return ActionOutcome(
                    action="guess",
                    kind=OutcomeKind.SOLVED,
                    message=f'Correct! "{clue.expression}" = "{solution}"',
                    state=new_state,
                    expression=expression,
                    matched_expression=clue.expression,
                )

        if state.find_active(expression) is not None and solutions.get(expression):
            return ActionOutcome(
                action="guess",
                kind=OutcomeKind.INCORRECT,
                message=f'Incorrect guess "{guess_text}" for "{expression}".',
                state=state,
                expression=expression,
            )

        return cls._no_active_clue("guess", expression, state)

    @classmethod
    def hint(
        cls,
        expression: str,
        state: PuzzleState,
        solutions: Mapping[str, str],
    ) -> ActionOutcome:
        """Disclose the first character of an active clue's solution."""
        failure = cls._check_target("hint", expression, state, solutions)
        if failure:
            return failure

        first_letter = solutions[expression][0]
        return ActionOutcome(
            action="hint",
            kind=OutcomeKind.HINTED,
            message=f'Hint for "{expression}": The answer begins with "{first_letter}".',
            state=state.with_hinted(expression),
            expression=expression,
            hint=first_letter,
        )

    @classmethod
    def reveal(
        cls,
        expression: str,
        state: PuzzleState,
        solutions: Mapping[str, str],
    ) -> ActionOutcome:
        """Replace an active clue with its solution."""
        failure = cls._check_target("reveal", expression, state, solutions)
        if failure:
            return failure

        clue = state.find_active(expression)
        solution = solutions[expression]
        return ActionOutcome(
            action="reveal",
            kind=OutcomeKind.REVEALED,
            message=f'Revealed answer for "{expression}": "{solution}"',
            state=state.with_revealed(
                replace_clue(state.display_state, clue, solution), expression
            ),
            expression=expression,
            matched_expression=expression,
            solution=solution,
        )

    @classmethod
    def _check_target(
        cls,
        action: str,
        expression: str,
        state: PuzzleState,
        solutions: Mapping[str, str],
    ) -> Optional[ActionOutcome]:
        """Failed outcome if `expression` is not an active clue with a solution."""
        if state.find_active(expression) is None:
            return cls._no_active_clue(action, expression, state)

        if not solutions.get(expression):
            logger.warning(f"Answer key has no entry for active clue {expression!r}")
            return ActionOutcome(
                action=action,
                kind=OutcomeKind.NO_SOLUTION,
                message=f'No solution found for clue "{expression}".',
                state=state,
                expression=expression,
            )
        return None

    @staticmethod
    def _no_active_clue(action: str, expression: str, state: PuzzleState) -> ActionOutcome:
        return ActionOutcome(
            action=action,
            kind=OutcomeKind.NO_ACTIVE_CLUE,
            message=f'No active bracketed clue found for "{expression}".',
            state=state,
            expression=expression,
        )
