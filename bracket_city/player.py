"""Player classes for Bracket City."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from bracket_city.prompt_manager import PromptManager
from shared.adapters.openrouter_adapter import OpenRouterAdapter

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_FILE = "prompts/solver.md"

ACTION_ALIASES = {
    "GUESS": "guess",
    "MAKEGUESS": "guess",
    "HINT": "hint",
    "GETHINT": "hint",
    "REVEAL": "reveal",
    "REVEALCLUE": "reveal",
}

# "ACTION: ...", "- **CLUE:** ...", "`ANSWER`: ..."
FIELD_LINE = re.compile(r"^\s*(?:[-*]\s+)?[*_`]*(ACTION|CLUE|ANSWER)[*_`]*\s*:(?:\*\*|__)?\s*(.*)$", re.IGNORECASE)

WRAPPERS = ("**", "__", "`", "\"", "'")


def _unwrap(value: str) -> str:
    """Remove markdown markers or quotes that wrap the whole value, once each."""
    value = value.strip()
    for marker in WRAPPERS:
        if len(value) >= 2 * len(marker) and value.startswith(marker) and value.endswith(marker):
            value = value[len(marker):-len(marker)].strip()
    return value


@dataclass(frozen=True)
class Action:
    """One move chosen by a player."""
    kind: str  # "guess", "hint" or "reveal"
    clue: str
    guess: Optional[str] = None


class Player(ABC):
    """Abstract base class for all players."""

    def start(self, display_state: str, context: Dict[str, Any]) -> None:
        """Called once before the first action with the initial puzzle."""

    @abstractmethod
    def get_next_action(
        self, display_state: str, feedback: Optional[Dict[str, Any]]
    ) -> Optional[Action]:
        """Choose the next action, or None to stop playing.

        `feedback` is the outcome record of the previous action, or None
        before the first action.
        """

    def drain_call_metadata(self) -> List[Dict[str, Any]]:
        """Model call metadata recorded since the last drain."""
        return []


class HumanPlayer(Player):
    """Interactive terminal player."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def get_next_action(
        self, display_state: str, feedback: Optional[Dict[str, Any]]
    ) -> Optional[Action]:
        if feedback:
            style = "green" if feedback["success"] else "red"
            self.console.print(f"[{style}]{escape(feedback['message'])}[/{style}]")
        self.console.print(f"\n[bold]{escape(display_state)}[/bold]\n")

        while True:
            kind = typer.prompt("Action (guess/hint/reveal, blank to stop)", default="", show_default=False)
            kind = kind.strip().lower()
            if not kind:
                return None
            if kind in ("guess", "hint", "reveal"):
                break
            self.console.print(f"[yellow]Unknown action '{escape(kind)}', try again[/yellow]")

        clue = typer.prompt("Clue (text inside the brackets)").strip()
        guess = typer.prompt("Answer").strip() if kind == "guess" else None
        return Action(kind=kind, clue=clue, guess=guess)


class AIPlayer(Player):
    """AI player using OpenRouter models.

    Holds the whole conversation for one puzzle: the rules, the puzzle,
    then alternating model replies and action results.
    """

    def __init__(self, model_name: str, prompt_file: str = DEFAULT_PROMPT_FILE):
        self.model_name = model_name
        self.prompt_file = prompt_file
        self._adapter = None
        self.prompt_manager = PromptManager()
        self.messages: List[Dict[str, str]] = []
        self._last_call_metadata: Optional[Dict[str, Any]] = None
        self._pending_metadata: List[Dict[str, Any]] = []

        logger.info(f"Created AI player with model: {model_name}")

    @property
    def adapter(self):
        """Lazy initialization of OpenRouter adapter."""
        if self._adapter is None:
            self._adapter = OpenRouterAdapter()
        return self._adapter

    def get_last_call_metadata(self) -> Optional[Dict]:
        """Get metadata from the last AI call."""
        return self._last_call_metadata

    def drain_call_metadata(self) -> List[Dict[str, Any]]:
        pending, self._pending_metadata = self._pending_metadata, []
        return pending

    def start(self, display_state: str, context: Dict[str, Any]) -> None:
        system_prompt = self.prompt_manager.load_prompt(self.prompt_file, context)
        self.messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Solve the following puzzle:\n---\n{display_state}"},
        ]

    def get_next_action(
        self, display_state: str, feedback: Optional[Dict[str, Any]]
    ) -> Optional[Action]:
        if not self.messages:
            raise RuntimeError("AIPlayer.start() must be called before get_next_action()")
        if feedback is not None:
            self.messages.append({"role": "user", "content": self._format_feedback(feedback)})
        return self._get_next_action_with_retry(is_retry=False)

    def _get_next_action_with_retry(self, is_retry: bool) -> Optional[Action]:
        """Internal method to get the next action with retry tracking."""
        try:
            response, metadata = self.adapter.call_chat_with_metadata(self.model_name, self.messages)
        except Exception as e:
            logger.error(f"Error calling {self.model_name}: {e}")
            if not is_retry:
                logger.warning("Solver API call failed, retrying once...")
                return self._get_next_action_with_retry(is_retry=True)
            # A second API failure fails the whole run
            raise

        metadata["is_retry"] = is_retry
        self._last_call_metadata = metadata
        self._pending_metadata.append(metadata)
        self.messages.append({"role": "assistant", "content": response})

        logger.debug(f"Raw AI response: {response}")
        action = self._parse_action_response(response)

        if action is None and not is_retry:
            logger.warning(f"Could not parse an action from {self.model_name}, retrying once...")
            self.messages.append({
                "role": "user",
                "content": "Reply with exactly one action in the required ACTION/CLUE/ANSWER format.",
            })
            return self._get_next_action_with_retry(is_retry=True)

        if action:
            logger.info(
                f"AI Solver ({self.model_name}) chose {action.kind} on [{action.clue}]"
                + (f" = '{action.guess}'" if action.guess else "")
                + (" (retry)" if is_retry else "")
            )
        return action

    @staticmethod
    def _format_feedback(feedback: Dict[str, Any]) -> str:
        lines = [
            f"Result: {'success' if feedback['success'] else 'failure'}",
            f"Message: {feedback['message']}",
        ]
        if "hint" in feedback:
            lines.append(f"Hint: {feedback['hint']}")
        if "solution" in feedback:
            lines.append(f"Solution: {feedback['solution']}")
        lines.append(f"Clues remaining: {feedback['cluesRemaining']}")
        lines.append(f"Puzzle:\n---\n{feedback['displayState']}")
        return "\n".join(lines)

    def _parse_action_response(self, response: str) -> Optional[Action]:
        """Parse the last ACTION/CLUE/ANSWER block of a response.

        Markdown emphasis around the field names is ignored. Values keep
        their inner characters; only a pair of markers or quotes wrapping
        the whole value is removed.
        """
        fields: Dict[str, str] = {}
        for raw_line in response.strip().split("\n"):
            match = FIELD_LINE.match(raw_line)
            if not match:
                continue

            key = match.group(1).upper()
            value = _unwrap(match.group(2))
            if key == "ACTION":
                # A new block starts; earlier fields belong to reasoning text
                fields = {"ACTION": value}
            elif "ACTION" in fields:
                fields[key] = value

        if "ACTION" not in fields:
            return None

        kind = ACTION_ALIASES.get(fields["ACTION"].replace(" ", "").upper())
        clue = self._clean_clue(fields.get("CLUE", ""))
        if kind is None or not clue:
            return None

        if kind == "guess":
            answer = fields.get("ANSWER", "")
            if not answer:
                return None
            return Action(kind=kind, clue=clue, guess=answer)
        return Action(kind=kind, clue=clue)

    @staticmethod
    def _clean_clue(clue: str) -> str:
        clue = _unwrap(clue)
        if clue.startswith("[") and clue.endswith("]") and "[" not in clue[1:-1]:
            clue = clue[1:-1]
        return clue.strip()
